"""Tests for the res command line."""

import pytest

from resumer import __version__, main as cli
from resumer.models import LiveSession
from resumer.reconcile import ENV_MANAGED, ENV_PROJECT_ID, ENV_PROJECT_PATH
from resumer.state import load_state


class FakeTmux:
    """Records what the CLI asks tmux to do."""

    sessions: dict = {}

    def __init__(self):
        self.sessions = FakeTmux.sessions

    def is_installed(self):
        return True

    def list_sessions(self):
        return [info for info, _ in self.sessions.values()]

    def get_env(self, name, key):
        return self.sessions[name][1].get(key)

    def has_session(self, name):
        return name in self.sessions

    def set_env(self, name, key, value):
        self.sessions[name][1][key] = value

    def unset_env(self, name, key):
        self.sessions[name][1].pop(key, None)

    def new_session(self, name, cwd, command=None, env=None):
        self.sessions[name] = (LiveSession(name=name, current_command=command, current_path=cwd), dict(env or {}))

    def kill_session(self, name):
        del self.sessions[name]


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    monkeypatch.setenv("XDG_STATE_HOME", str(tmp_path / "state"))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.delenv("RESUMER_COMMANDS", raising=False)
    FakeTmux.sessions = {}
    monkeypatch.setattr(cli, "TmuxBackend", FakeTmux)


@pytest.fixture
def project_dir(tmp_path):
    path = tmp_path / "proj"
    path.mkdir()
    return path


class TestMain:
    """Tests for argument handling and exit codes."""

    def test_version(self, capsys):
        assert cli.main(["--version"]) == 0
        assert __version__ in capsys.readouterr().out

    def test_default_command_lists_projects(self, capsys):
        assert cli.main([]) == 0
        assert "No projects" in capsys.readouterr().out

    def test_add_and_list(self, project_dir, capsys):
        assert cli.main(["add", str(project_dir)]) == 0
        doc = load_state()
        assert [p.name for p in doc.projects.values()] == ["proj"]

        assert cli.main(["projects"]) == 0
        assert "proj" in capsys.readouterr().out

    def test_projects_counts_only_live_sessions(self, project_dir):
        assert cli.main(["new", str(project_dir)]) == 0
        FakeTmux.sessions.clear()
        assert cli.main(["projects"]) == 0
        assert load_state().sessions == {}

    def test_add_invalid_path(self, tmp_path, capsys):
        assert cli.main(["add", str(tmp_path / "missing")]) == 1
        assert "error:" in capsys.readouterr().err

    def test_unknown_project(self, capsys):
        assert cli.main(["rm-project", "nope"]) == 1
        assert "unknown project" in capsys.readouterr().err


class TestSessionCommands:
    """Tests for commands that touch tmux."""

    def test_new_records_managed_session(self, project_dir, capsys):
        assert cli.main(["new", str(project_dir), "npm", "run", "dev"]) == 0
        name = capsys.readouterr().out.strip()
        assert name.startswith("res_proj_")

        doc = load_state()
        record = doc.sessions[name]
        assert record.command == "npm run dev"
        assert record.kind == "managed"
        env = FakeTmux.sessions[name][1]
        assert env[ENV_PROJECT_ID] == record.project_id
        assert env[ENV_MANAGED] == "1"

    def test_new_with_configured_command(self, project_dir, monkeypatch, capsys):
        monkeypatch.setenv("RESUMER_COMMANDS", "make watch,cargo run")
        assert cli.main(["new", "--use", "2", str(project_dir)]) == 0
        name = capsys.readouterr().out.strip()
        assert load_state().sessions[name].command == "cargo run"

        assert cli.main(["new", "--use", "3", str(project_dir)]) == 1

    def test_sessions_adopts_and_prunes(self, project_dir, capsys):
        FakeTmux.sessions["orphan"] = (
            LiveSession(name="orphan", attached=1),
            {ENV_PROJECT_PATH: str(project_dir), ENV_MANAGED: "0"},
        )
        FakeTmux.sessions["scratch"] = (LiveSession(name="scratch"), {})
        assert cli.main(["sessions"]) == 0

        doc = load_state()
        assert set(doc.sessions) == {"orphan"}
        assert doc.sessions["orphan"].kind == "linked"
        assert doc.sessions["orphan"].last_attached_at

        del FakeTmux.sessions["orphan"]
        assert cli.main(["sessions"]) == 0
        assert load_state().sessions == {}

    def test_unlink_clears_provenance(self, project_dir):
        assert cli.main(["new", str(project_dir)]) == 0
        name = next(iter(FakeTmux.sessions))
        assert cli.main(["unlink", name]) == 0
        assert FakeTmux.sessions[name][1] == {}

        assert cli.main(["sessions"]) == 0
        assert name not in load_state().sessions

    def test_link_refuses_to_move_without_yes(self, project_dir, tmp_path):
        other = tmp_path / "other"
        other.mkdir()
        FakeTmux.sessions["work"] = (LiveSession(name="work"), {})
        assert cli.main(["link", str(project_dir), "-s", "work"]) == 0
        assert cli.main(["link", str(other), "-s", "work"]) == 1
        assert cli.main(["link", str(other), "-s", "work", "--yes"]) == 0
        assert load_state().sessions["work"].project_path.endswith("other")

    def test_link_missing_session(self, project_dir):
        assert cli.main(["link", str(project_dir), "-s", "ghost"]) == 1

    def test_kill(self, project_dir):
        assert cli.main(["new", str(project_dir)]) == 0
        name = next(iter(FakeTmux.sessions))
        assert cli.main(["kill", name]) == 0
        assert FakeTmux.sessions == {}
        assert name not in load_state().sessions


class TestProviderCommands:
    """Tests for the log provider commands."""

    @pytest.fixture(autouse=True)
    def no_logs(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path / "user"))
        for var in ("CLAUDE_HOME", "RESUMER_CLAUDE_HOME", "CODEX_HOME", "RESUMER_CODEX_HOME"):
            monkeypatch.delenv(var, raising=False)

    def test_external_without_logs_names_the_env_vars(self, capsys):
        assert cli.main(["codex"]) == 0
        out = capsys.readouterr().out
        assert "No Codex logs found" in out
        assert "CODEX_HOME" in out

    def test_external_lists_sessions(self, tmp_path, monkeypatch, capsys):
        home = tmp_path / "codex-home"
        home.mkdir()
        (home / "history.jsonl").write_text('{"session_id": "s1", "ts": 60, "text": "ship it"}\n')
        monkeypatch.setenv("CODEX_HOME", str(home))
        assert cli.main(["codex"]) == 0
        out = capsys.readouterr().out
        assert "s1" in out
        assert "ship it" in out

    def test_providers(self, capsys):
        assert cli.main(["providers"]) == 0
        out = capsys.readouterr().out
        assert "✓ tmux" in out
        assert "Claude Code" in out
        assert "not found" in out
