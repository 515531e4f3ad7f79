"""User configuration: launch arguments for the assistant CLIs."""

import json
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from .errors import ConfigError

DEFAULT_CODEX_ARGS = ["--yolo"]
DEFAULT_CLAUDE_ARGS = ["--dangerously-skip-permissions"]

# Shorthands expanded before launching codex
CODEX_ARG_ALIASES = {"--yolo": "--dangerously-bypass-approvals-and-sandbox"}

_ARGS_ADAPTER = TypeAdapter(list[str])


class CodexConfig(BaseModel):
    """Settings for launching codex."""

    args: list[str] = Field(
        default_factory=lambda: list(DEFAULT_CODEX_ARGS),
        description="Arguments appended to `codex`",
    )


class ClaudeConfig(BaseModel):
    """Settings for launching claude."""

    args: list[str] = Field(
        default_factory=lambda: list(DEFAULT_CLAUDE_ARGS),
        description="Arguments appended to `claude`",
    )


class Config(BaseModel):
    """Contents of config.json. Every key is optional."""

    codex: CodexConfig = Field(default_factory=CodexConfig)
    claude: ClaudeConfig = Field(default_factory=ClaudeConfig)
    commands: list[str] = Field(
        default_factory=list,
        description="Launch commands offered for new sessions",
    )


def config_file_path() -> Path:
    override = os.environ.get("RESUMER_CONFIG", "").strip()
    if override:
        return Path(override).expanduser()
    base = os.environ.get("XDG_CONFIG_HOME", "").strip()
    config_home = Path(base) if base else Path.home() / ".config"
    return config_home / "resumer" / "config.json"


def _describe(error: ValidationError) -> str:
    first = error.errors()[0]
    where = ".".join(str(part) for part in first["loc"]) or "top level"
    return f"{where}: {first['msg']}"


def load_config(path: Optional[Path] = None) -> Config:
    """Load the config file, raising ConfigError when it is malformed.

    A missing file gives the defaults.
    """
    path = path or config_file_path()
    try:
        with open(path) as f:
            data = json.load(f)
    except FileNotFoundError:
        return Config()
    except json.JSONDecodeError as e:
        raise ConfigError(f"{path}: invalid JSON ({e})") from e
    except OSError as e:
        raise ConfigError(f"{path}: {e}") from e

    try:
        return Config.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"{path}: {_describe(e)}") from e


def _args_from_env(var: str) -> Optional[list[str]]:
    raw = os.environ.get(var, "").strip()
    if not raw:
        return None
    if raw.startswith("["):
        try:
            return _ARGS_ADAPTER.validate_json(raw)
        except ValidationError as e:
            raise ConfigError(f"{var}: {_describe(e)}") from e
    return raw.split()


def codex_default_args(config: Config) -> list[str]:
    args = _args_from_env("RESUMER_CODEX_ARGS")
    if args is None:
        args = config.codex.args
    return [CODEX_ARG_ALIASES.get(arg, arg) for arg in args]


def claude_default_args(config: Config) -> list[str]:
    args = _args_from_env("RESUMER_CLAUDE_ARGS")
    return args if args is not None else list(config.claude.args)


def configured_commands(config: Config) -> list[str]:
    """Launch commands to offer, RESUMER_COMMANDS (comma-separated) first."""
    raw = os.environ.get("RESUMER_COMMANDS", "").strip()
    if raw:
        return [c.strip() for c in raw.split(",") if c.strip()]
    return list(config.commands)
