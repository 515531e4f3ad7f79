"""tmux backend: live session enumeration and session-scoped environment."""

import logging
import shutil
import subprocess
from typing import Optional, Protocol

from .errors import EnumerationError, TmuxError
from .models import LiveSession

logger = logging.getLogger(__name__)

FIELD_SEP = "\t"
LIST_FORMAT = FIELD_SEP.join([
    "#{session_name}",
    "#{session_attached}",
    "#{session_windows}",
    "#{pane_current_command}",
    "#{pane_current_path}",
])

# stderr fragments tmux prints when there is simply nothing running
NO_SERVER_MARKERS = (
    "no server running",
    "no sessions",
    "error connecting to",
)


class LiveEnumeration(Protocol):
    """What the reconciler needs from a terminal multiplexer."""

    def list_sessions(self) -> list[LiveSession]: ...

    def get_env(self, name: str, key: str) -> Optional[str]: ...


def _run_tmux(*args: str, timeout: int = 10) -> tuple[int, str, str]:
    """Run a tmux command.

    Returns:
        Tuple of (return_code, stdout, stderr).

    Raises:
        FileNotFoundError: tmux is not installed.
    """
    cmd = ["tmux", *args]
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        return (1, "", "command timed out")
    return (result.returncode, result.stdout or "", result.stderr or "")


def _to_int(value: str, default: int) -> int:
    try:
        return int(value)
    except ValueError:
        return default


def parse_list_output(stdout: str) -> list[LiveSession]:
    """Parse `tmux list-sessions -F LIST_FORMAT` output."""
    sessions = []
    for line in stdout.splitlines():
        if not line.strip():
            continue
        parts = line.split(FIELD_SEP)
        parts += [""] * (5 - len(parts))
        name, attached, windows, command, cwd = parts[:5]
        sessions.append(
            LiveSession(
                name=name,
                attached=_to_int(attached, 0),
                windows=_to_int(windows, 1),
                current_command=command or None,
                current_path=cwd or None,
            )
        )
    return sessions


class TmuxBackend:
    """Talks to the tmux server of the current user."""

    def is_installed(self) -> bool:
        return shutil.which("tmux") is not None

    def list_sessions(self) -> list[LiveSession]:
        """List live sessions.

        An absent server means no sessions. A missing tmux binary or any
        other failure raises EnumerationError, so "empty" and "broken" stay
        distinguishable.
        """
        try:
            returncode, stdout, stderr = _run_tmux("list-sessions", "-F", LIST_FORMAT)
        except FileNotFoundError as e:
            raise EnumerationError("tmux is not installed") from e
        except OSError as e:
            raise EnumerationError(f"could not run tmux: {e}") from e

        if returncode != 0:
            if any(marker in stderr.lower() for marker in NO_SERVER_MARKERS):
                return []
            raise EnumerationError(f"tmux list-sessions failed: {stderr.strip() or returncode}")
        return parse_list_output(stdout)

    def get_env(self, name: str, key: str) -> Optional[str]:
        """Read a session-scoped environment variable, None when unset."""
        try:
            returncode, stdout, _ = _run_tmux("show-environment", "-t", name, key)
        except OSError:
            return None
        if returncode != 0:
            return None
        line = stdout.strip()
        # "-KEY" means the variable was explicitly removed
        if not line or line.startswith("-"):
            return None
        _, sep, value = line.partition("=")
        return value if sep else None

    def has_session(self, name: str) -> bool:
        try:
            returncode, _, _ = _run_tmux("has-session", "-t", f"={name}")
        except OSError:
            return False
        return returncode == 0

    def set_env(self, name: str, key: str, value: str) -> None:
        self._check("set-environment", "-t", name, key, value)

    def unset_env(self, name: str, key: str) -> None:
        self._check("set-environment", "-t", name, "-u", key)

    def new_session(
        self,
        name: str,
        cwd: str,
        command: Optional[str] = None,
        env: Optional[dict[str, str]] = None,
    ) -> None:
        """Create a detached session and stamp its provenance variables."""
        args = ["new-session", "-d", "-s", name, "-c", cwd]
        if command:
            args.append(command)
        self._check(*args)
        for key, value in (env or {}).items():
            self.set_env(name, key, value)
        logger.debug(f"Created tmux session {name} in {cwd}")

    def kill_session(self, name: str) -> None:
        self._check("kill-session", "-t", f"={name}")

    def _check(self, *args: str) -> None:
        try:
            returncode, _, stderr = _run_tmux(*args)
        except FileNotFoundError as e:
            raise TmuxError("tmux is not installed") from e
        if returncode != 0:
            logger.warning(f"tmux {args[0]} failed: {stderr.strip()}")
            raise TmuxError(f"tmux {args[0]} failed: {stderr.strip() or returncode}")
