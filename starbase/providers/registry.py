"""Provider registry: maps stored provider types to client classes."""

from __future__ import annotations

from typing import TYPE_CHECKING

from starbase.providers.local_git import LocalGitClient

if TYPE_CHECKING:
    from starbase.config import Settings
    from starbase.providers.base import GitProviderClient

PROVIDERS: dict[str, type[LocalGitClient]] = {
    "local": LocalGitClient,
}

# Hosted providers recognized in stored configuration but without a client here.
KNOWN_UNSUPPORTED = frozenset({"github", "gitlab", "bitbucket", "azure-devops"})

_ALIASES = {
    "azure_devops": "azure-devops",
    "azuredevops": "azure-devops",
    "file": "local",
}


def map_provider_type(provider_type: str) -> str:
    """Normalize a stored provider type. Raises ValueError for unknown types."""
    normalized = provider_type.strip().lower()
    normalized = _ALIASES.get(normalized, normalized)
    if normalized not in PROVIDERS and normalized not in KNOWN_UNSUPPORTED:
        raise ValueError(f"Unknown provider type: {provider_type}")
    return normalized


def create_provider_client(provider_type: str, settings: Settings) -> GitProviderClient:
    """Instantiate a client for ``provider_type``.

    Raises ValueError if the type is unknown or has no client implementation.
    """
    mapped = map_provider_type(provider_type)
    client_cls = PROVIDERS.get(mapped)
    if client_cls is None:
        msg = f"Provider type {mapped!r} is not supported. Available: {list(PROVIDERS)}"
        raise ValueError(msg)
    return client_cls(settings.git_repos_dir, timeout=settings.git_command_timeout_seconds)


def list_providers() -> list[str]:
    """Return the provider types that have a client implementation."""
    return list(PROVIDERS.keys())
