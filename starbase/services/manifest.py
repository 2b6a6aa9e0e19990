"""Push manifests and repository path mapping.

A manifest maps a slash-separated repository path to the SHA-256 digest of
the file content last confirmed pushed to that path. It is persisted as JSON
text on ``GitRepository.last_pushed_manifest``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Protocol

from starbase.services.hashing import hash_content

logger = logging.getLogger(__name__)

SYNCED_FILE_TYPES = ("bpmn", "dmn")


class Manifest(dict[str, str]):
    """Ordered path -> content hash mapping with a JSON boundary."""

    @classmethod
    def from_json(cls, raw: str | None) -> Manifest | None:
        """Parse stored manifest text, returning None when absent or invalid."""
        if not raw:
            return None
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Failed to parse last pushed manifest: %s", exc)
            return None
        if not isinstance(parsed, dict):
            logger.warning("Ignoring last pushed manifest of type %s", type(parsed).__name__)
            return None
        return cls({str(path): str(digest) for path, digest in parsed.items()})

    def to_json(self) -> str:
        return json.dumps(dict(self), sort_keys=True, separators=(",", ":"))

    def changed_paths(self, previous: Mapping[str, str] | None) -> list[str]:
        """Paths whose hash is new or differs from ``previous``.

        With no previous manifest every path counts as changed.
        """
        if previous is None:
            return list(self)
        return [path for path, digest in self.items() if previous.get(path) != digest]

    def deleted_paths(self, previous: Mapping[str, str] | None) -> list[str]:
        """Paths present in ``previous`` but gone from this manifest."""
        if previous is None:
            return []
        return [path for path in previous if path not in self]


@dataclass
class ManifestFile:
    """A local file rendered for pushing."""

    path: str
    content: str
    hash: str


class _FolderRow(Protocol):
    id: str
    parent_folder_id: str | None
    name: str


def build_folder_paths(folders: Iterable[_FolderRow]) -> dict[str, str]:
    """Resolve every folder id to its full slash-separated path.

    Folders whose parent is unknown are treated as top-level. Cycles in the
    parent chain are cut at the first repeated folder.
    """
    by_id = {folder.id: folder for folder in folders}
    paths: dict[str, str] = {}

    def resolve(folder_id: str | None, seen: frozenset[str]) -> str:
        if not folder_id or folder_id in seen:
            return ""
        if folder_id in paths:
            return paths[folder_id]
        folder = by_id.get(folder_id)
        if folder is None:
            return ""
        parent_path = resolve(folder.parent_folder_id, seen | {folder_id})
        full_path = f"{parent_path}/{folder.name}" if parent_path else folder.name
        paths[folder_id] = full_path
        return full_path

    for folder_id in by_id:
        resolve(folder_id, frozenset())
    return paths


def build_file_path(folder_path: str, name: str, type_: str) -> str:
    """Repository path of a file: folder path plus name with its extension."""
    extension = f".{type_}"
    file_name = name if name.endswith(extension) else f"{name}{extension}"
    return f"{folder_path}/{file_name}" if folder_path else file_name


def split_repository_path(path: str) -> tuple[str, str, str]:
    """Split ``a/b/name.dmn`` into (folder path, base name, type).

    Anything not ending in ``.dmn`` is treated as BPMN.
    """
    type_ = "dmn" if path.endswith(".dmn") else "bpmn"
    folder_path, _, file_name = path.rpartition("/")
    extension = f".{type_}"
    base_name = file_name[: -len(extension)] if file_name.endswith(extension) else file_name
    return folder_path, base_name, type_


def is_synced_path(path: str) -> bool:
    """Whether a repository path holds a process definition."""
    return path.endswith(tuple(f".{t}" for t in SYNCED_FILE_TYPES))


def build_manifest(files: Iterable[ManifestFile]) -> Manifest:
    return Manifest((f.path, f.hash) for f in files)


def render_file(folder_path: str, name: str, type_: str, content: str) -> ManifestFile:
    """Build the pushable form of a live file."""
    return ManifestFile(
        path=build_file_path(folder_path, name, type_),
        content=content,
        hash=hash_content(content),
    )
