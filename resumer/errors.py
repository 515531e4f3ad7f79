"""Exceptions raised by resumer."""


class ResumerError(Exception):
    """Base class for errors surfaced to the user."""


class InvalidPathError(ResumerError):
    """A project path does not resolve to an existing directory."""

    def __init__(self, path: str, reason: str = "not a directory"):
        self.path = path
        super().__init__(f"{path}: {reason}")


class EnumerationError(ResumerError):
    """Listing live tmux sessions failed."""


class TmuxError(ResumerError):
    """A tmux command that changes server state failed."""


class StateError(ResumerError):
    """The persisted state document is unreadable or has an unknown shape."""


class ConfigError(ResumerError):
    """The config file is present but invalid."""
