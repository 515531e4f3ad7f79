"""Claude Code log provider."""

import logging
import re
from pathlib import Path
from typing import Optional

from ..activity import AssistantText, AssistantWorking, Turn, Unparsed, UserText, UserToolResult
from . import register_provider
from .base import HistoryEntry, LogProvider, history_seconds

logger = logging.getLogger(__name__)

# Wrappers Claude Code puts around "!" commands and local slash commands
LOCAL_COMMAND_MARKERS = (
    "<bash-stdout>",
    "<bash-input>",
    "<local-command-caveat>",
    "<local-command-stdout>",
    "<command-name>",
    "<command-message>",
    "<command-args>",
)


def encode_project_dir(project_path: str) -> str:
    """Directory name Claude Code uses for a project under projects/.

    "/home/user/proj" -> "-home-user-proj". Dots and other punctuation
    become dashes too, so distinct paths can collide.
    """
    encoded = re.sub(r"[\\/]+", "-", project_path)
    return re.sub(r"[^a-zA-Z0-9-]", "-", encoded)


def _has_item(content, *types: str) -> bool:
    if not isinstance(content, list):
        return False
    return any(isinstance(item, dict) and item.get("type") in types for item in content)


@register_provider
class ClaudeProvider(LogProvider):
    """Provider for Claude Code sessions."""

    name = "claude"
    display_name = "Claude Code"
    icon = "🧠"
    color = "cyan"

    home_env_vars = ("CLAUDE_HOME", "RESUMER_CLAUDE_HOME")
    shell_markers = LOCAL_COMMAND_MARKERS
    recency_window = 20.0

    def default_homes(self) -> list[Path]:
        home = Path.home()
        return [
            home / ".claude",
            home / ".local" / "share" / "claude",
            home / ".local" / "state" / "claude",
        ]

    def parse_history_line(self, data: dict) -> Optional[HistoryEntry]:
        session_id = data.get("sessionId")
        if not isinstance(session_id, str) or not session_id:
            return None
        seconds = history_seconds(data.get("timestamp"), scale=1000.0)  # milliseconds
        if seconds is None:
            return None
        display = data.get("display")
        project = data.get("project")
        return HistoryEntry(
            session_id=session_id,
            timestamp=seconds,
            prompt=display if isinstance(display, str) else None,
            project_path=project if isinstance(project, str) and project else None,
        )

    def find_session_file(self, home: Path, session_id: str, project_path: Optional[str]) -> Optional[Path]:
        if not project_path:
            return None
        projects_root = home / "projects"
        encoded = encode_project_dir(project_path)
        filename = f"{session_id}.jsonl"

        direct = projects_root / encoded / filename
        if direct.is_file():
            return direct

        # Fallback: the encoding is lossy, so try directories sharing the prefix
        if not projects_root.is_dir():
            return None
        try:
            project_dirs = sorted(d for d in projects_root.iterdir() if d.is_dir())
        except OSError:
            return None
        for project_dir in project_dirs:
            if not project_dir.name.startswith(encoded):
                continue
            candidate = project_dir / filename
            if candidate.is_file():
                logger.debug(f"claude: found {session_id} under {project_dir.name}")
                return candidate
        return None

    def metadata_from_line(self, data: dict) -> dict:
        msg_type = data.get("type")
        if msg_type not in ("user", "assistant"):
            return {}

        found = {}
        for key, field_name in (("cwd", "cwd"), ("version", "version"), ("gitBranch", "git_branch")):
            value = data.get(key)
            if isinstance(value, str):
                found[field_name] = value

        msg = data.get("message")
        if msg_type == "assistant" and isinstance(msg, dict) and isinstance(msg.get("model"), str):
            found["model"] = msg["model"]
        return found

    def parse_turn(self, data: dict) -> Turn:
        msg_type = data.get("type")
        msg = data.get("message")
        if not isinstance(msg, dict):
            return Unparsed()
        content = msg.get("content")

        if msg_type == "user":
            if _has_item(content, "tool_result"):
                return UserToolResult()
            # Exit phrases and shell echoes only ever arrive as plain strings
            return UserText(content if isinstance(content, str) else "")

        if msg_type == "assistant":
            if _has_item(content, "tool_use", "thinking"):
                return AssistantWorking()
            return AssistantText()

        return Unparsed()

    def resume_command(self, session_id: str) -> str:
        return f"claude --resume {session_id}"
