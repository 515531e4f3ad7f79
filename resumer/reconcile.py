"""Bring the state document in line with the sessions tmux actually has."""

import logging
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Optional

from .models import Project, SessionRecord, StateDocument
from .state import compute_project_id, now_iso
from .tmux import LiveEnumeration

logger = logging.getLogger(__name__)

# Session-scoped tmux variables recording who created a session and for what
ENV_PROJECT_PATH = "RESUMER_PROJECT_PATH"
ENV_PROJECT_ID = "RESUMER_PROJECT_ID"
ENV_COMMAND = "RESUMER_COMMAND"
ENV_CREATED_AT = "RESUMER_CREATED_AT"
ENV_MANAGED = "RESUMER_MANAGED"

PROVENANCE_KEYS = (ENV_PROJECT_PATH, ENV_PROJECT_ID, ENV_COMMAND, ENV_CREATED_AT, ENV_MANAGED)

TRUTHY = {"1", "true", "yes", "on"}


@dataclass
class ReconcileResult:
    """What a reconcile pass changed."""

    doc: StateDocument
    removed: list[str] = field(default_factory=list)
    adopted: list[str] = field(default_factory=list)
    created_projects: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.removed or self.adopted or self.created_projects)


def provenance_env(
    project: Project,
    command: Optional[str],
    managed: bool = True,
    created_at: Optional[str] = None,
) -> dict[str, str]:
    """Variables to stamp on a new session so it can be recovered later."""
    return {
        ENV_PROJECT_PATH: project.path,
        ENV_PROJECT_ID: project.id,
        ENV_COMMAND: command or "",
        ENV_CREATED_AT: created_at or now_iso(),
        ENV_MANAGED: "1" if managed else "0",
    }


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _project_name(path: str) -> str:
    parts = [p for p in PurePosixPath(path).parts if p not in ("/", "")]
    return parts[-1] if parts else path


def _adopt(doc: StateDocument, name: str, live: LiveEnumeration, result: ReconcileResult) -> None:
    project_path = _clean(live.get_env(name, ENV_PROJECT_PATH))
    if not project_path:
        # No provenance: leave it untracked rather than guess a project
        return

    project_id = _clean(live.get_env(name, ENV_PROJECT_ID)) or compute_project_id(project_path)
    command = _clean(live.get_env(name, ENV_COMMAND))
    created_at = _clean(live.get_env(name, ENV_CREATED_AT)) or now_iso()
    managed = (_clean(live.get_env(name, ENV_MANAGED)) or "").lower() in TRUTHY

    if project_id not in doc.projects:
        doc.projects[project_id] = Project(
            id=project_id,
            name=_project_name(project_path),
            path=project_path,
            created_at=created_at,
            last_used_at=created_at,
        )
        result.created_projects.append(project_id)

    doc.sessions[name] = SessionRecord(
        name=name,
        project_id=project_id,
        project_path=project_path,
        created_at=created_at,
        command=command,
        kind="managed" if managed else "linked",
    )
    result.adopted.append(name)
    logger.debug(f"Adopted live session {name} into project {project_id}")


def reconcile(doc: StateDocument, live: LiveEnumeration) -> ReconcileResult:
    """Prune dead session records and adopt live sessions with provenance.

    Mutates doc in place. Running it twice against the same live sessions
    changes nothing the second time. Errors from live.list_sessions()
    (EnumerationError) propagate: an unreachable tmux is not "no sessions".
    """
    result = ReconcileResult(doc=doc)
    live_names = {s.name for s in live.list_sessions()}

    for name in list(doc.sessions):
        if name not in live_names:
            del doc.sessions[name]
            result.removed.append(name)
            logger.debug(f"Pruned session record {name}: no longer running")

    for name in sorted(live_names):
        if name in doc.sessions:
            continue
        _adopt(doc, name, live, result)

    return result
