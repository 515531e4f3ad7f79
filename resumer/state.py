"""Project identity and the persisted state document."""

import hashlib
import json
import logging
import os
import random
import re
import string
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .errors import InvalidPathError, StateError
from .models import Project, SessionRecord, StateDocument

logger = logging.getLogger(__name__)

PROJECT_ID_LENGTH = 12
SESSION_NAME_PREFIX = "res"
SESSION_SLUG_MAX = 24
SESSION_SUFFIX_LENGTH = 6


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def compute_project_id(canonical_path: str) -> str:
    """Content-addressed project id: the same path always yields the same id."""
    return hashlib.sha256(canonical_path.encode("utf-8")).hexdigest()[:PROJECT_ID_LENGTH]


def _resolve(raw_path: str, cwd: str) -> str:
    # Unnormalized: ".." after a symlink resolves through the link target
    return os.path.join(cwd, os.path.expanduser(raw_path))


def canonicalize_path(raw_path: str, cwd: str) -> str:
    """Resolve raw_path against cwd and follow symlinks.

    Raises InvalidPathError unless the result is an existing directory.
    """
    resolved = _resolve(raw_path, cwd)
    if not os.path.exists(resolved):
        raise InvalidPathError(os.path.normpath(resolved), "no such directory")
    real = os.path.realpath(resolved)
    if not os.path.isdir(real):
        raise InvalidPathError(real, "not a directory")
    return real


def normalize_and_ensure_project(doc: StateDocument, raw_path: str, cwd: str) -> Project:
    """Return the project for raw_path, registering it if needed."""
    path = canonicalize_path(raw_path, cwd)
    project_id = compute_project_id(path)
    now = now_iso()

    project = doc.projects.get(project_id)
    if project:
        project.last_used_at = now
        return project

    project = Project(
        id=project_id,
        name=Path(path).name or path,
        path=path,
        created_at=now,
        last_used_at=now,
    )
    doc.projects[project_id] = project
    logger.debug(f"Registered project {project.name} ({project_id}) at {path}")
    return project


def find_project(doc: StateDocument, token: str, cwd: str) -> Optional[Project]:
    """Look up a project by id, absolute path or relative path."""
    if token in doc.projects:
        return doc.projects[token]

    resolved = _resolve(token, cwd)
    candidates = {os.path.normpath(resolved)}
    if os.path.exists(resolved):
        candidates.add(os.path.realpath(resolved))

    for project in doc.projects.values():
        if project.path in candidates:
            return project
    return None


def _slugify(name: str) -> str:
    slug = re.sub(r"[^A-Za-z0-9-]+", "-", name).strip("-").lower()
    slug = slug[:SESSION_SLUG_MAX].strip("-")
    return slug or "project"


def format_new_session_name(project_name: str, project_id_prefix: str) -> str:
    """Build a tmux-safe session name that embeds the project id prefix.

    Shape: res_<slug>_<id prefix>_<random suffix>. tmux treats '.' and ':'
    as target separators, so neither can appear.
    """
    alphabet = string.ascii_lowercase + string.digits
    suffix = "".join(random.choice(alphabet) for _ in range(SESSION_SUFFIX_LENGTH))
    prefix = re.sub(r"[^A-Za-z0-9]", "", project_id_prefix)
    return f"{SESSION_NAME_PREFIX}_{_slugify(project_name)}_{prefix}_{suffix}"


def project_id_from_session_name(name: str) -> Optional[str]:
    """Recover the project id prefix from a name made by format_new_session_name."""
    parts = name.split("_")
    if len(parts) != 4 or parts[0] != SESSION_NAME_PREFIX or not parts[2]:
        return None
    return parts[2]


def project_for_session_name(doc: StateDocument, name: str) -> Optional[Project]:
    """Find the project a session name points at, without a session record."""
    prefix = project_id_from_session_name(name)
    if not prefix:
        return None
    matches = [p for pid, p in doc.projects.items() if pid.startswith(prefix)]
    return matches[0] if len(matches) == 1 else None


# Queries and mutations


def list_projects(doc: StateDocument) -> list[Project]:
    """Projects, most recently used first."""
    return sorted(
        doc.projects.values(),
        key=lambda p: (p.last_used_at or p.created_at, p.created_at),
        reverse=True,
    )


def list_sessions_for_project(doc: StateDocument, project_id: str) -> list[SessionRecord]:
    """A project's sessions, most recently attached (or created) first."""
    sessions = [s for s in doc.sessions.values() if s.project_id == project_id]
    return sorted(
        sessions,
        key=lambda s: (s.last_attached_at or s.created_at, s.created_at),
        reverse=True,
    )


def upsert_session(doc: StateDocument, record: SessionRecord) -> SessionRecord:
    """Insert a record, or merge its set fields into the existing one."""
    existing = doc.sessions.get(record.name)
    if existing is None:
        doc.sessions[record.name] = record
        return record

    for attr in ("project_id", "project_path", "command", "last_attached_at", "kind"):
        value = getattr(record, attr)
        if value:
            setattr(existing, attr, value)
    return existing


def remove_session(doc: StateDocument, name: str) -> Optional[SessionRecord]:
    return doc.sessions.pop(name, None)


def remove_project(doc: StateDocument, project_id: str) -> list[str]:
    """Delete a project and every session that belongs to it.

    Returns the removed session names.
    """
    doc.projects.pop(project_id, None)
    removed = [name for name, s in doc.sessions.items() if s.project_id == project_id]
    for name in removed:
        del doc.sessions[name]
    return removed


def touch_session_attached(doc: StateDocument, name: str) -> None:
    session = doc.sessions.get(name)
    if not session:
        return
    now = now_iso()
    session.last_attached_at = now
    project = doc.projects.get(session.project_id)
    if project:
        project.last_used_at = now


# Persistence


def state_file_path() -> Path:
    base = os.environ.get("XDG_STATE_HOME", "").strip()
    state_home = Path(base) if base else Path.home() / ".local" / "state"
    return state_home / "resumer" / "state.json"


def load_state(path: Optional[Path] = None) -> StateDocument:
    """Load the state document.

    FileNotFoundError propagates so callers can tell "no state yet" apart
    from a broken file, which raises StateError.
    """
    path = path or state_file_path()
    try:
        with open(path) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise StateError(f"{path}: invalid JSON ({e})") from e
    except FileNotFoundError:
        raise
    except OSError as e:
        raise StateError(f"{path}: {e}") from e

    try:
        return StateDocument.from_dict(data)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise StateError(f"{path}: invalid state document ({e})") from e


def load_state_or_default(path: Optional[Path] = None) -> StateDocument:
    try:
        return load_state(path)
    except FileNotFoundError:
        return StateDocument()


def write_state(doc: StateDocument, path: Optional[Path] = None) -> None:
    """Persist the document atomically (temp file in the same directory, then rename)."""
    path = path or state_file_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=".state-", suffix=".json", dir=path.parent)
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(doc.to_dict(), f, indent=2)
            f.write("\n")
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
