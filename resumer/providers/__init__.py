"""Provider registry and discovery."""

from typing import Type

from ..models import ExternalSessionSummary
from .base import LogProvider

# Registry of all available providers
_PROVIDERS: dict[str, Type[LogProvider]] = {}


def register_provider(provider_class: Type[LogProvider]) -> Type[LogProvider]:
    """Decorator to register a provider class."""
    _PROVIDERS[provider_class.name] = provider_class
    return provider_class


def get_provider(name: str) -> LogProvider | None:
    """Get an instance of a provider by name."""
    provider_class = _PROVIDERS.get(name)
    if provider_class:
        return provider_class()
    return None


def get_all_providers() -> list[LogProvider]:
    """Get instances of all registered providers."""
    return [cls() for cls in _PROVIDERS.values()]


def list_external_sessions(tool: str) -> list[ExternalSessionSummary]:
    """Summaries for one tool, newest first. Unknown tools raise KeyError."""
    provider = get_provider(tool)
    if provider is None:
        raise KeyError(f"unknown provider: {tool}")
    return provider.list_sessions()


# Import providers to trigger registration
from . import claude  # noqa: F401, E402
from . import codex  # noqa: F401, E402
