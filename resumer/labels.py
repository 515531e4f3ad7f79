"""Short, distinguishing labels for sessions, plus display helpers."""

import re
from typing import Iterable, Optional, Protocol

from rich.text import Text

from .models import ActivityState, ExternalSessionSummary, LiveSession, StateDocument

SHELL_PLACEHOLDER = "(shell)"

STATE_STYLES = {
    ActivityState.USER: ("►", "black on green"),  # model is working
    ActivityState.ASSISTANT: ("‖", "black on blue"),  # waiting on the human
    ActivityState.EXITED: ("×", "black on red"),
    None: ("○", "black on yellow"),
}


class HasCommand(Protocol):
    name: str
    command: Optional[str]


def base_command(cmd: Optional[str]) -> str:
    """First word of a command, or the shell placeholder."""
    if not cmd or not cmd.strip():
        return SHELL_PLACEHOLDER
    return cmd.split()[0]


def _full_command(cmd: Optional[str]) -> str:
    return cmd.strip() if cmd and cmd.strip() else SHELL_PLACEHOLDER


def _distinguishing_prefix(full: str, others: list[str]) -> str:
    """Shortest word prefix of full that no other command starts with."""
    words = full.split()
    other_words = [o.split() for o in others]
    prefix = words[:1]
    for i in range(1, len(words)):
        prefix = words[: i + 1]
        if not any(o[: i + 1] == prefix for o in other_words):
            break
    return " ".join(prefix)


def disambiguate_commands(sessions: Iterable[HasCommand]) -> dict[str, str]:
    """Map session name to the shortest command label that tells it apart.

    Sessions are grouped by base command. A lone member keeps the base
    command; members whose full commands are identical share it too, since
    nothing can tell them apart.
    """
    by_base: dict[str, list[HasCommand]] = {}
    for session in sessions:
        by_base.setdefault(base_command(session.command), []).append(session)

    labels: dict[str, str] = {}
    for base, group in by_base.items():
        full_cmds = sorted({_full_command(s.command) for s in group})
        if len(group) == 1 or len(full_cmds) == 1:
            for session in group:
                labels[session.name] = base
            continue

        by_full = {
            full: _distinguishing_prefix(full, [o for o in full_cmds if o != full])
            for full in full_cmds
        }
        for session in group:
            labels[session.name] = by_full[_full_command(session.command)]
    return labels


def truncate(text: str, max_len: int = 100) -> str:
    """Collapse whitespace and truncate with an ellipsis."""
    text = re.sub(r"\s+", " ", text).strip()
    if len(text) <= max_len:
        return text
    return text[: max(0, max_len - 1)] + "…"


def short_timestamp(iso: str) -> str:
    """Drop seconds: "2024-01-15T10:30:45Z" -> "2024-01-15 10:30"."""
    match = re.match(r"^(\d{4}-\d{2}-\d{2})T(\d{2}:\d{2})", iso)
    if match:
        return f"{match.group(1)} {match.group(2)}"
    return iso


def abbreviate_path(path: str) -> str:
    """Shorten deep paths: keep the first two and the last component,
    reduce the rest to their initial.

    /home/user/projects/deep/nested/stuff/myproject -> /home/user/p/d/n/s/myproject
    """
    parts = [p for p in path.split("/") if p]
    if len(parts) <= 4:
        return path
    middle = [p[0] for p in parts[2:-1]]
    prefix = "/" if path.startswith("/") else ""
    return prefix + "/".join(parts[:2] + middle + parts[-1:])


def state_glyph(state: Optional[ActivityState]) -> str:
    return STATE_STYLES.get(state, STATE_STYLES[None])[0]


def state_indicator(state: Optional[ActivityState]) -> Text:
    style = STATE_STYLES.get(state, STATE_STYLES[None])[1]
    return Text(f" {state_glyph(state)} ", style=style)


def external_session_label(session: ExternalSessionSummary, prompt_width: int = 80) -> Text:
    """One-line label for a Claude or Codex session."""
    text = state_indicator(session.last_message_type)
    text.append(" ")
    text.append(session.id[:12], style="bold")
    where = session.project_path or session.cwd
    if where:
        text.append(f" {where}", style="dim")
    if session.last_activity_at:
        text.append(" · ", style="dim")
        text.append(short_timestamp(session.last_activity_at), style="cyan")
    if session.last_prompt:
        text.append(" · ", style="dim")
        text.append(truncate(session.last_prompt, prompt_width), style="dim")
    return text


def live_session_label(info: LiveSession, doc: StateDocument) -> Text:
    """One-line label for a tmux session, with its project when tracked."""
    tracked = doc.sessions.get(info.name)
    project = doc.projects.get(tracked.project_id) if tracked else None
    command = (tracked.command if tracked and tracked.command else None) or info.current_command or "(unknown)"

    text = Text(info.name, style="bold")
    text.append(f" {command.strip()}", style="dim")
    if project:
        text.append(" · ", style="dim")
        text.append(project.name, style="green")
    if info.attached:
        text.append(" · ", style="dim")
        text.append(f"attached:{info.attached}", style="magenta")
    return text
