"""OpenAI Codex CLI log provider."""

import logging
import re
from pathlib import Path
from typing import Optional

from ..activity import (
    AssistantText,
    AssistantWorking,
    Turn,
    TurnFinished,
    Unparsed,
    UserText,
    UserToolResult,
)
from . import register_provider
from .base import HistoryEntry, LogProvider, SessionLocator, history_seconds

logger = logging.getLogger(__name__)

# Codex wraps "!" commands run from the composer in this tag
USER_SHELL_MARKERS = ("<user_shell_command>",)

# User-role messages Codex injects itself; not something the human typed
INJECTED_PREFIXES = ("<environment_context>", "<user_instructions>")

TOOL_CALL_TYPES = {"function_call", "custom_tool_call", "local_shell_call", "reasoning"}
TOOL_OUTPUT_TYPES = {"function_call_output", "custom_tool_call_output"}
TURN_END_EVENTS = {"task_complete", "turn_aborted"}

# rollout-2025-01-01T10-00-00-<uuid>.jsonl
UUID_SUFFIX = re.compile(r"([0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12})$")


def session_id_from_filename(path: Path) -> str:
    match = UUID_SUFFIX.search(path.stem)
    return match.group(1) if match else path.stem


def build_session_index(sessions_root: Path) -> dict[str, Path]:
    """Map session ids (and bare file stems) to transcripts, newest file winning."""
    index: dict[str, Path] = {}
    if not sessions_root.is_dir():
        return index
    try:
        files = sorted(sessions_root.rglob("*.jsonl"), reverse=True)
    except OSError as e:
        logger.warning(f"codex: cannot scan {sessions_root}: {e}")
        return index
    for path in files:
        index.setdefault(path.stem, path)
        index.setdefault(session_id_from_filename(path), path)
    return index


def _message_text(content) -> str:
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return ""
    texts = []
    for item in content:
        if isinstance(item, dict) and isinstance(item.get("text"), str):
            texts.append(item["text"])
    return "\n".join(texts)


@register_provider
class CodexProvider(LogProvider):
    """Provider for Codex CLI sessions."""

    name = "codex"
    display_name = "Codex"
    icon = "📜"
    color = "green"

    home_env_vars = ("CODEX_HOME", "RESUMER_CODEX_HOME")
    shell_markers = USER_SHELL_MARKERS
    # Codex logs task_complete/turn_aborted, so no recency correction

    def default_homes(self) -> list[Path]:
        home = Path.home()
        return [
            home / ".codex",
            home / ".local" / "share" / "codex",
            home / ".local" / "state" / "codex",
        ]

    def parse_history_line(self, data: dict) -> Optional[HistoryEntry]:
        session_id = data.get("session_id")
        if not isinstance(session_id, str) or not session_id:
            return None
        seconds = history_seconds(data.get("ts"))
        if seconds is None:
            return None
        text = data.get("text")
        return HistoryEntry(
            session_id=session_id,
            timestamp=seconds,
            prompt=text if isinstance(text, str) else None,
        )

    def session_locator(self, home: Path) -> SessionLocator:
        index = build_session_index(home / "sessions")
        return lambda session_id, project_path: index.get(session_id)

    def find_session_file(self, home: Path, session_id: str, project_path: Optional[str]) -> Optional[Path]:
        return build_session_index(home / "sessions").get(session_id)

    def metadata_from_line(self, data: dict) -> dict:
        payload = data.get("payload")
        if not isinstance(payload, dict):
            return {}

        found = {}
        if data.get("type") == "session_meta":
            if isinstance(payload.get("cwd"), str):
                found["cwd"] = payload["cwd"]
            if isinstance(payload.get("cli_version"), str):
                found["version"] = payload["cli_version"]
            git = payload.get("git")
            if isinstance(git, dict) and isinstance(git.get("branch"), str):
                found["git_branch"] = git["branch"]
        if data.get("type") in ("turn_context", "session_meta") and isinstance(payload.get("model"), str):
            found["model"] = payload["model"]
        return found

    def parse_turn(self, data: dict) -> Turn:
        payload = data.get("payload")
        if not isinstance(payload, dict):
            return Unparsed()
        item_type = payload.get("type")

        if data.get("type") == "event_msg":
            return TurnFinished() if item_type in TURN_END_EVENTS else Unparsed()
        if data.get("type") != "response_item":
            return Unparsed()

        if item_type == "message":
            role = payload.get("role")
            if role == "assistant":
                return AssistantText()
            if role == "user":
                text = _message_text(payload.get("content"))
                if text.lstrip().startswith(INJECTED_PREFIXES):
                    return Unparsed()
                return UserText(text)
            return Unparsed()
        if item_type in TOOL_OUTPUT_TYPES:
            return UserToolResult()
        if item_type in TOOL_CALL_TYPES:
            return AssistantWorking()
        return Unparsed()

    def resume_command(self, session_id: str) -> str:
        return f"codex resume {session_id}"

    def summarize(self, group, session_file, now):
        summary = super().summarize(group, session_file, now)
        # The history index carries no project; the transcript's cwd stands in
        if summary.project_path is None:
            summary.project_path = summary.cwd
        return summary
