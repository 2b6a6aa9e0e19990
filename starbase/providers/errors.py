"""Errors raised by git provider clients.

The API layer maps each subclass to an HTTP status and a stable ``code``.
"""

from __future__ import annotations


class ProviderError(Exception):
    """Base class for remote provider failures."""

    code = "PROVIDER_ERROR"


class ProviderAuthError(ProviderError):
    """The provider rejected the credentials."""

    code = "UNAUTHORIZED"


class ProviderRateLimitError(ProviderError):
    code = "RATE_LIMITED"


class ProviderNotFoundError(ProviderError):
    """Repository or branch does not exist on the remote."""

    code = "REMOTE_NOT_FOUND"


class ProviderNetworkError(ProviderError):
    """The remote could not be reached, or a command timed out."""

    code = "NETWORK_ERROR"
