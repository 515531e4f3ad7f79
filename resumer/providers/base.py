"""Base class for assistant log providers.

Every supported CLI writes the same two kinds of log:

- a history index (one JSON object per prompt, across all sessions), and
- one JSON-lines transcript per session.

The base class owns the shared algorithm: find the tool's home directory,
group the history by session, locate each transcript, read a bounded head
for metadata and a bounded tail for activity. Subclasses only describe
their tool's file layout and line shapes.
"""

import logging
import math
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from ..activity import Turn, apply_recency, infer_activity
from ..jsonl import READ_BUDGET, iter_json_objects, read_head, read_tail
from ..models import ActivityState, ExternalSessionSummary

logger = logging.getLogger(__name__)

NO_PROMPT_PLACEHOLDER = "(no prompt yet)"
METADATA_FIELDS = ("cwd", "model", "version", "git_branch")
MAX_TIMESTAMP = 253402300799  # 9999-12-31T23:59:59Z

SessionLocator = Callable[[str, Optional[str]], Optional[Path]]


def is_real_prompt(text: str) -> bool:
    """Filter out history lines that are not something the user asked for.

    Rejects blank text, shell escapes ("! ls") and bare slash commands
    ("/exit", "/help"). A path such as "/usr/bin is slow" still counts.
    """
    trimmed = text.strip()
    if not trimmed:
        return False
    if trimmed.startswith("!"):
        return False
    first = trimmed.split()[0]
    if first.startswith("/") and len(first) > 1 and "/" not in first[1:]:
        return False
    return True


def history_seconds(value, scale: float = 1.0) -> Optional[float]:
    """Unix seconds from a raw history timestamp, or None when unusable.

    json.loads accepts NaN, Infinity and huge literals, so the range is
    checked here rather than left to datetime.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        seconds = value / scale
    except OverflowError:
        return None
    if not math.isfinite(seconds) or not 0 < seconds <= MAX_TIMESTAMP:
        return None
    return float(seconds)


def iso_from_timestamp(seconds: float) -> Optional[str]:
    try:
        dt = datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, ValueError, OSError):
        return None
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class HistoryEntry:
    """One parsed line of a history index."""

    session_id: str
    timestamp: float  # unix seconds
    prompt: Optional[str] = None
    project_path: Optional[str] = None


@dataclass
class HistoryGroup:
    """Everything the history index says about one session."""

    session_id: str
    last_ts: float
    project_path: Optional[str] = None
    last_prompt: Optional[str] = None
    last_prompt_ts: Optional[float] = None

    def add(self, entry: HistoryEntry) -> None:
        if entry.timestamp >= self.last_ts:
            self.last_ts = entry.timestamp
            if entry.project_path:
                self.project_path = entry.project_path
        if entry.prompt is not None and is_real_prompt(entry.prompt):
            if self.last_prompt_ts is None or entry.timestamp >= self.last_prompt_ts:
                self.last_prompt = entry.prompt
                self.last_prompt_ts = entry.timestamp


class LogProvider(ABC):
    """Abstract base class for a CLI whose conversations we track."""

    # Provider identity
    name: str = ""  # unique identifier: "claude", "codex"
    display_name: str = ""
    icon: str = ""
    color: str = ""

    # Environment variables that override the home directory, in priority order
    home_env_vars: tuple[str, ...] = ()
    history_filename: str = "history.jsonl"

    # Substrings marking a user turn as an echo of a locally run shell command
    shell_markers: tuple[str, ...] = ()

    # Seconds within which a fresh "waiting on user" is still treated as working;
    # None for tools that log explicit turn boundaries
    recency_window: Optional[float] = None

    head_budget: int = READ_BUDGET
    tail_budget: int = READ_BUDGET

    @abstractmethod
    def default_homes(self) -> list[Path]:
        """Conventional home directories to probe when no override is set."""
        ...

    @abstractmethod
    def parse_history_line(self, data: dict) -> Optional[HistoryEntry]:
        """Turn a history object into an entry, or None to skip it."""
        ...

    @abstractmethod
    def find_session_file(self, home: Path, session_id: str, project_path: Optional[str]) -> Optional[Path]:
        """Locate the transcript for one session."""
        ...

    @abstractmethod
    def metadata_from_line(self, data: dict) -> dict:
        """Extract any of METADATA_FIELDS present on one transcript line."""
        ...

    @abstractmethod
    def parse_turn(self, data: dict) -> Turn:
        """Map one transcript line onto a Turn variant."""
        ...

    @abstractmethod
    def resume_command(self, session_id: str) -> str:
        """Get the command to resume a session."""
        ...

    def candidate_homes(self) -> list[Path]:
        candidates = []
        for var in self.home_env_vars:
            value = os.environ.get(var, "").strip()
            if value:
                candidates.append(Path(value).expanduser())
        candidates.extend(self.default_homes())
        return candidates

    def resolve_home(self) -> Optional[Path]:
        """First candidate directory that exists and holds a history file."""
        for candidate in self.candidate_homes():
            try:
                if candidate.is_dir() and (candidate / self.history_filename).is_file():
                    logger.debug(f"{self.name}: using home {candidate}")
                    return candidate
            except OSError:
                continue
        return None

    def is_available(self) -> bool:
        return self.resolve_home() is not None

    def read_history(self, path: Path) -> dict[str, HistoryGroup]:
        """Stream the history index once, grouping entries by session id."""
        groups: dict[str, HistoryGroup] = {}
        try:
            with open(path, encoding="utf-8", errors="replace") as f:
                for data in iter_json_objects(f):
                    entry = self.parse_history_line(data)
                    if entry is None:
                        continue
                    group = groups.get(entry.session_id)
                    if group is None:
                        group = HistoryGroup(session_id=entry.session_id, last_ts=entry.timestamp)
                        groups[entry.session_id] = group
                    group.add(entry)
        except OSError as e:
            logger.warning(f"{self.name}: cannot read history {path}: {e}")
            return {}
        return groups

    def session_locator(self, home: Path) -> SessionLocator:
        """Return a lookup function used for every session in one listing."""
        return lambda session_id, project_path: self.find_session_file(home, session_id, project_path)

    def read_metadata(self, path: Path) -> dict:
        """First value wins per field; stops once every field is known."""
        meta: dict = {}
        for data in iter_json_objects(read_head(path, self.head_budget)):
            for key, value in self.metadata_from_line(data).items():
                if value and key not in meta:
                    meta[key] = value
            if all(key in meta for key in METADATA_FIELDS):
                break
        return meta

    def read_turns(self, path: Path) -> list[Turn]:
        return [self.parse_turn(data) for data in iter_json_objects(read_tail(path, self.tail_budget))]

    def read_activity(self, path: Path, now: Optional[datetime] = None) -> Optional[ActivityState]:
        state = infer_activity(self.read_turns(path), self.shell_markers)
        if self.recency_window is None:
            return state
        now = now or datetime.now(timezone.utc)
        modified = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
        return apply_recency(state, modified, now, self.recency_window)

    def summarize(self, group: HistoryGroup, session_file: Optional[Path], now: datetime) -> ExternalSessionSummary:
        summary = ExternalSessionSummary(
            id=group.session_id,
            tool=self.name,
            project_path=group.project_path,
            last_activity_at=iso_from_timestamp(group.last_ts),
            last_prompt=group.last_prompt if group.last_prompt is not None else NO_PROMPT_PLACEHOLDER,
            session_file=str(session_file) if session_file else None,
        )
        if session_file is None:
            return summary

        try:
            meta = self.read_metadata(session_file)
            summary.cwd = meta.get("cwd")
            summary.model = meta.get("model")
            summary.version = meta.get("version")
            summary.git_branch = meta.get("git_branch")
        except (OSError, ValueError) as e:
            logger.warning(f"{self.name}: cannot read metadata from {session_file}: {e}")

        try:
            summary.last_message_type = self.read_activity(session_file, now)
        except (OSError, ValueError) as e:
            logger.warning(f"{self.name}: cannot read activity from {session_file}: {e}")

        return summary

    def list_sessions(self) -> list[ExternalSessionSummary]:
        """One summary per session id, most recent activity first.

        A missing home directory or history file means the tool is not
        installed, which yields an empty list.
        """
        home = self.resolve_home()
        if home is None:
            return []

        groups = self.read_history(home / self.history_filename)
        locate = self.session_locator(home)
        now = datetime.now(timezone.utc)

        sessions = []
        for group in groups.values():
            session_file = locate(group.session_id, group.project_path)
            if session_file is None:
                logger.debug(f"{self.name}: no transcript for session {group.session_id}")
            sessions.append(self.summarize(group, session_file, now))

        sessions.sort(key=lambda s: s.last_activity_at or "", reverse=True)
        return sessions


def format_session_details(session: ExternalSessionSummary) -> str:
    """Multi-line description of an external session for a details view."""
    lines = [f"id: {session.id}"]
    if session.project_path:
        lines.append(f"project: {session.project_path}")
    if session.cwd:
        lines.append(f"cwd: {session.cwd}")
    if session.last_activity_at:
        lines.append(f"last activity: {session.last_activity_at}")
    if session.last_message_type:
        lines.append(f"state: {session.last_message_type.value}")
    if session.version:
        lines.append(f"cli version: {session.version}")
    if session.git_branch:
        lines.append(f"git branch: {session.git_branch}")
    if session.model:
        lines.append(f"model: {session.model}")
    if session.session_file:
        lines.append(f"session log: {session.session_file}")
    if session.last_prompt and session.last_prompt.strip():
        lines.append("")
        lines.append("last prompt:")
        lines.append(session.last_prompt.strip())
    return "\n".join(lines)
