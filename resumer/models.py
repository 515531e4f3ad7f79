"""Projects, session records and the persisted state document."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

STATE_VERSION = 1

SESSION_KINDS = ("managed", "linked")


class ActivityState(str, Enum):
    """Whose turn it is in an assistant session."""

    USER = "user"  # waiting on the model
    ASSISTANT = "assistant"  # waiting on the human
    EXITED = "exited"


@dataclass
class Project:
    """A tracked working directory."""

    id: str
    name: str
    path: str  # canonical (symlinks resolved)
    created_at: str
    last_used_at: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "path": self.path,
            "createdAt": self.created_at,
        }
        if self.last_used_at:
            data["lastUsedAt"] = self.last_used_at
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Project":
        return cls(
            id=data["id"],
            name=data["name"],
            path=data["path"],
            created_at=data["createdAt"],
            last_used_at=data.get("lastUsedAt"),
        )


@dataclass
class SessionRecord:
    """A tmux session associated with a project, keyed by session name."""

    name: str
    project_id: str
    project_path: str
    created_at: str
    command: Optional[str] = None
    last_attached_at: Optional[str] = None
    kind: str = "managed"  # "managed" or "linked"

    def to_dict(self) -> dict:
        data = {
            "name": self.name,
            "projectId": self.project_id,
            "projectPath": self.project_path,
            "createdAt": self.created_at,
            "kind": self.kind,
        }
        if self.command:
            data["command"] = self.command
        if self.last_attached_at:
            data["lastAttachedAt"] = self.last_attached_at
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "SessionRecord":
        kind = data.get("kind", "managed")
        if kind not in SESSION_KINDS:
            raise ValueError(f"unknown session kind: {kind!r}")
        return cls(
            name=data["name"],
            project_id=data["projectId"],
            project_path=data.get("projectPath", ""),
            created_at=data["createdAt"],
            command=data.get("command"),
            last_attached_at=data.get("lastAttachedAt"),
            kind=kind,
        )


@dataclass
class StateDocument:
    """Which sessions belong to which projects.

    Says nothing about whether a named session is still alive; that is the
    reconciler's job.
    """

    version: int = STATE_VERSION
    projects: dict[str, Project] = field(default_factory=dict)
    sessions: dict[str, SessionRecord] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "projects": {pid: p.to_dict() for pid, p in self.projects.items()},
            "sessions": {name: s.to_dict() for name, s in self.sessions.items()},
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StateDocument":
        if not isinstance(data, dict):
            raise ValueError("state document must be an object")
        if data.get("version") != STATE_VERSION:
            raise ValueError(f"unsupported state version: {data.get('version')!r}")
        projects = data.get("projects") or {}
        sessions = data.get("sessions") or {}
        if not isinstance(projects, dict) or not isinstance(sessions, dict):
            raise ValueError("projects and sessions must be objects")
        return cls(
            version=STATE_VERSION,
            projects={pid: Project.from_dict(p) for pid, p in projects.items()},
            sessions={name: SessionRecord.from_dict(s) for name, s in sessions.items()},
        )


@dataclass
class LiveSession:
    """A session as reported by tmux right now."""

    name: str
    attached: int = 0
    windows: int = 1
    current_command: Optional[str] = None
    current_path: Optional[str] = None


@dataclass
class ExternalSessionSummary:
    """One Claude or Codex conversation, derived from its logs on every refresh."""

    id: str
    tool: str  # provider name: "claude" or "codex"

    cwd: Optional[str] = None
    project_path: Optional[str] = None

    last_activity_at: Optional[str] = None  # ISO-8601, UTC
    last_prompt: Optional[str] = None
    last_message_type: Optional[ActivityState] = None

    # Transcript metadata
    model: Optional[str] = None
    version: Optional[str] = None
    git_branch: Optional[str] = None
    session_file: Optional[str] = None
