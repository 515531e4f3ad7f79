"""Infer whose turn it is from the tail of a conversation transcript.

Providers turn raw transcript lines into the Turn variants below; the rules
here only look at those variants, so the same heuristics serve every tool.

Two passes, newest line first:

1. Exit scan: the last few user turns are checked for an exit phrase.
2. Last-turn scan: the newest authored turn is classified by an ordered
   rule list; the first matching rule wins.

These are heuristics over logs written by other programs. The marker strings
and time windows track those programs' current output formats.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, Optional, Sequence, Union

from .models import ActivityState

EXIT_SCAN_DEPTH = 5  # user turns inspected for an exit phrase
EXIT_PHRASES = ("/exit", "Goodbye!")
RECENCY_WINDOW_SECONDS = 20.0


@dataclass(frozen=True)
class UserText:
    """A user turn carrying plain text (a prompt or an echoed local command)."""

    text: str


@dataclass(frozen=True)
class UserToolResult:
    """A user-role turn that returns a tool result to the model."""


@dataclass(frozen=True)
class AssistantText:
    """An assistant turn with no pending tool call."""


@dataclass(frozen=True)
class AssistantWorking:
    """An assistant turn that calls a tool or is still thinking."""


@dataclass(frozen=True)
class TurnFinished:
    """The tool logged an explicit end of the assistant's turn."""


@dataclass(frozen=True)
class Unparsed:
    """Anything else: metadata lines, unknown shapes, noise."""


Turn = Union[UserText, UserToolResult, AssistantText, AssistantWorking, TurnFinished, Unparsed]

USER_TURNS = (UserText, UserToolResult)
ASSISTANT_TURNS = (AssistantText, AssistantWorking, TurnFinished)


def is_shell_echo(turn: Turn, markers: Sequence[str]) -> bool:
    """True for a user turn that only echoes a command the human ran locally."""
    return isinstance(turn, UserText) and any(m in turn.text for m in markers)


def _is_exit(turn: Turn, markers: Sequence[str]) -> bool:
    if not isinstance(turn, UserText) or is_shell_echo(turn, markers):
        return False
    return any(phrase in turn.text for phrase in EXIT_PHRASES)


Rule = Callable[[Turn, Sequence[str]], bool]

# Evaluated top to bottom against the newest authored turn
LAST_TURN_RULES: tuple[tuple[str, Rule, ActivityState], ...] = (
    ("tool result", lambda t, m: isinstance(t, UserToolResult), ActivityState.USER),
    ("shell echo", is_shell_echo, ActivityState.ASSISTANT),
    ("user prompt", lambda t, m: isinstance(t, USER_TURNS), ActivityState.USER),
    ("assistant working", lambda t, m: isinstance(t, AssistantWorking), ActivityState.USER),
    ("assistant done", lambda t, m: isinstance(t, ASSISTANT_TURNS), ActivityState.ASSISTANT),
)


def classify_turn(turn: Turn, markers: Sequence[str] = ()) -> Optional[ActivityState]:
    """Apply LAST_TURN_RULES to a single turn; None for unauthored turns."""
    for _name, rule, state in LAST_TURN_RULES:
        if rule(turn, markers):
            return state
    return None


def scan_for_exit(turns: Sequence[Turn], markers: Sequence[str] = ()) -> bool:
    seen = 0
    for turn in reversed(turns):
        if not isinstance(turn, USER_TURNS):
            continue
        seen += 1
        if _is_exit(turn, markers):
            return True
        if seen >= EXIT_SCAN_DEPTH:
            break
    return False


def infer_activity(turns: Iterable[Turn], markers: Sequence[str] = ()) -> Optional[ActivityState]:
    """Classify a transcript tail (oldest turn first)."""
    turns = list(turns)
    if scan_for_exit(turns, markers):
        return ActivityState.EXITED

    for turn in reversed(turns):
        state = classify_turn(turn, markers)
        if state is not None:
            return state
    return None


def apply_recency(
    state: Optional[ActivityState],
    modified: Optional[datetime],
    now: datetime,
    window: float = RECENCY_WINDOW_SECONDS,
) -> Optional[ActivityState]:
    """Treat a just-written "waiting on user" transcript as still running.

    The assistant may be mid-burst without having logged a turn boundary yet.
    """
    if state != ActivityState.ASSISTANT or modified is None:
        return state
    if (now - modified).total_seconds() < window:
        return ActivityState.USER
    return state
