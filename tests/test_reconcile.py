"""Tests for reconciling the state document against live tmux sessions."""

import pytest

from resumer.errors import EnumerationError
from resumer.models import LiveSession, Project, SessionRecord, StateDocument
from resumer.reconcile import (
    ENV_COMMAND,
    ENV_CREATED_AT,
    ENV_MANAGED,
    ENV_PROJECT_ID,
    ENV_PROJECT_PATH,
    provenance_env,
    reconcile,
)
from resumer.state import compute_project_id


class FakeLive:
    """In-memory stand-in for the tmux backend."""

    def __init__(self, envs=None, fail=False):
        self.envs = envs or {}
        self.fail = fail

    def list_sessions(self):
        if self.fail:
            raise EnumerationError("tmux exploded")
        return [LiveSession(name=name) for name in self.envs]

    def get_env(self, name, key):
        return self.envs.get(name, {}).get(key)


def record(name, pid="p1"):
    return SessionRecord(name=name, project_id=pid, project_path="/tmp/x", created_at="2024-01-01T00:00:00.000Z")


class TestReconcile:
    """Tests for pruning and adoption."""

    def test_prunes_dead_sessions(self):
        doc = StateDocument(sessions={"alive": record("alive"), "dead": record("dead")})
        result = reconcile(doc, FakeLive({"alive": {}}))
        assert result.removed == ["dead"]
        assert set(doc.sessions) == {"alive"}
        assert result.changed

    def test_adopts_managed_session(self):
        live = FakeLive({
            "res_alpha_abc_123456": {
                ENV_PROJECT_PATH: "/tmp/alpha",
                ENV_PROJECT_ID: "alpha-id",
                ENV_COMMAND: "codex --yolo",
                ENV_CREATED_AT: "2024-05-01T00:00:00.000Z",
                ENV_MANAGED: "1",
            }
        })
        doc = StateDocument()
        result = reconcile(doc, live)

        assert result.adopted == ["res_alpha_abc_123456"]
        assert result.created_projects == ["alpha-id"]
        project = doc.projects["alpha-id"]
        assert project.name == "alpha"
        assert project.path == "/tmp/alpha"
        session = doc.sessions["res_alpha_abc_123456"]
        assert session.project_id == "alpha-id"
        assert session.command == "codex --yolo"
        assert session.created_at == "2024-05-01T00:00:00.000Z"
        assert session.kind == "managed"

    def test_adopts_linked_session(self):
        live = FakeLive({"work": {ENV_PROJECT_PATH: "/tmp/alpha", ENV_MANAGED: "0"}})
        doc = StateDocument()
        reconcile(doc, live)
        assert doc.sessions["work"].kind == "linked"
        assert doc.sessions["work"].command is None

    def test_empty_project_id_is_recomputed(self):
        live = FakeLive({"work": {ENV_PROJECT_PATH: "/tmp/alpha", ENV_PROJECT_ID: "  "}})
        doc = StateDocument()
        reconcile(doc, live)
        assert doc.sessions["work"].project_id == compute_project_id("/tmp/alpha")

    def test_existing_project_is_reused(self):
        existing = Project(id="p1", name="Alpha", path="/tmp/alpha", created_at="2024-01-01T00:00:00.000Z")
        doc = StateDocument(projects={"p1": existing})
        live = FakeLive({"work": {ENV_PROJECT_PATH: "/tmp/alpha", ENV_PROJECT_ID: "p1"}})
        result = reconcile(doc, live)
        assert result.created_projects == []
        assert doc.projects["p1"] is existing
        assert doc.projects["p1"].name == "Alpha"

    def test_session_without_provenance_stays_untracked(self):
        doc = StateDocument()
        result = reconcile(doc, FakeLive({"scratch": {}, "blank": {ENV_PROJECT_PATH: ""}}))
        assert doc.sessions == {}
        assert not result.changed

    def test_tracked_session_is_not_readopted(self):
        doc = StateDocument(sessions={"work": record("work")})
        live = FakeLive({"work": {ENV_PROJECT_PATH: "/tmp/other", ENV_PROJECT_ID: "other"}})
        result = reconcile(doc, live)
        assert not result.changed
        assert doc.sessions["work"].project_id == "p1"

    def test_is_idempotent(self):
        live = FakeLive({
            "a": {ENV_PROJECT_PATH: "/tmp/alpha", ENV_MANAGED: "1"},
            "b": {},
        })
        doc = StateDocument(sessions={"gone": record("gone")})
        first = reconcile(doc, live)
        snapshot = doc.to_dict()
        second = reconcile(doc, live)
        assert first.changed
        assert not second.changed
        assert doc.to_dict() == snapshot

    def test_enumeration_failure_propagates(self):
        doc = StateDocument(sessions={"work": record("work")})
        with pytest.raises(EnumerationError):
            reconcile(doc, FakeLive(fail=True))
        assert "work" in doc.sessions

    def test_no_live_sessions_prunes_everything(self):
        doc = StateDocument(sessions={"a": record("a"), "b": record("b")})
        result = reconcile(doc, FakeLive({}))
        assert sorted(result.removed) == ["a", "b"]
        assert doc.sessions == {}


class TestProvenanceEnv:
    """Tests for the variables stamped on new sessions."""

    def test_round_trips_through_reconcile(self):
        project = Project(id="p1", name="alpha", path="/tmp/alpha", created_at="2024-01-01T00:00:00.000Z")
        env = provenance_env(project, "claude", managed=True, created_at="2024-06-01T00:00:00.000Z")
        assert env[ENV_MANAGED] == "1"

        doc = StateDocument()
        reconcile(doc, FakeLive({"s": env}))
        assert doc.sessions["s"].project_id == "p1"
        assert doc.sessions["s"].command == "claude"
        assert doc.sessions["s"].created_at == "2024-06-01T00:00:00.000Z"

    def test_linked_without_command(self):
        project = Project(id="p1", name="alpha", path="/tmp/alpha", created_at="2024-01-01T00:00:00.000Z")
        env = provenance_env(project, None, managed=False)
        assert env[ENV_COMMAND] == ""
        assert env[ENV_MANAGED] == "0"
        assert env[ENV_CREATED_AT]
