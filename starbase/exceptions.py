"""Application-level exception types.

Convention:
- ``InternalServerError``: for errors whose details must never reach clients.
  The global handler logs the full message at ERROR and returns a generic
  "Internal server error" (500) to the client.
- ``NotFoundError``: a branch, commit, project, provider or file referenced by
  an operation does not exist. Mapped to 404.
- ``ValueError``: for *business logic* validation errors that are safe to
  forward to clients. ``NothingToPushError`` is one of these.
- ``SyncInProgressError``: another sync holds the project's lock. Mapped to 409.
"""

from __future__ import annotations


class InternalServerError(Exception):
    """Raised for internal errors whose details must not be exposed to clients.

    The global exception handler in ``starbase/main.py`` catches this, logs
    the full message server-side, and returns HTTP 500 with a generic
    ``"Internal server error"`` detail.
    """


class NotFoundError(LookupError):
    """Raised when a referenced entity does not exist."""


class NothingToPushError(ValueError):
    """Raised when a project has no BPMN/DMN files at all to push.

    Distinct from a push with zero differences, which is a successful no-op.
    """


class SyncInProgressError(RuntimeError):
    """Raised when the project's sync lock is held by another operation."""
