"""Content hashing and file identity helpers shared by the VCS services."""

from __future__ import annotations

import hashlib

SHORT_HASH_LENGTH = 16


def hash_content(content: str) -> str:
    """Full SHA-256 hex digest of the UTF-8 encoded content."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def short_hash(content: str) -> str:
    """Abbreviated digest used as a commit's human-facing hash."""
    return hash_content(content)[:SHORT_HASH_LENGTH]


def normalize_folder_id(folder_id: str | None) -> str:
    """Map the root folder (None or empty) to a single canonical value."""
    if folder_id is None:
        return ""
    return str(folder_id)


def file_identity(folder_id: str | None, name: str, type_: str) -> tuple[str, str, str]:
    """Identity of a file for history lookups: (folder, name, type).

    A rename or move produces a new identity.
    """
    return (normalize_folder_id(folder_id), name, type_)
