"""resumer - tmux sessions per project, with Claude and Codex activity."""

__version__ = "0.3.0"
