"""Provider protocol and data classes for remote git hosting."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from datetime import datetime


@dataclass(frozen=True)
class RemoteBranch:
    name: str
    sha: str
    is_default: bool = False


@dataclass(frozen=True)
class TreeEntry:
    """One entry of a remote tree; ``type`` is ``blob`` or ``tree``."""

    path: str
    type: str
    sha: str | None = None


@dataclass(frozen=True)
class FileEntry:
    path: str
    content: str


@dataclass(frozen=True)
class RemoteCommit:
    sha: str
    message: str
    author: str
    date: datetime


@dataclass
class PushRequest:
    """A single remote commit: files to write and paths to remove."""

    repo: str
    branch: str
    files: list[FileEntry]
    message: str
    deletions: list[str] = field(default_factory=list)
    create_branch: bool = False


@dataclass
class PullRequest:
    repo: str
    branch: str
    patterns: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class PullResult:
    files: list[FileEntry]
    commit: RemoteCommit


@runtime_checkable
class GitProviderClient(Protocol):
    """Protocol for remote git provider clients."""

    type: str

    async def get_branches(self, repo: str) -> list[RemoteBranch]:
        """List the repository's branches with their head SHAs."""
        ...

    async def get_tree(self, repo: str, branch: str) -> list[TreeEntry]:
        """Recursive tree of a branch; empty when the branch does not exist."""
        ...

    async def push_files(self, request: PushRequest) -> RemoteCommit:
        """Write files and deletions as one commit on the branch."""
        ...

    async def pull_files(self, request: PullRequest) -> PullResult:
        """Fetch every file of the branch matching the request's patterns."""
        ...

    async def close(self) -> None:
        """Release any held resources."""
        ...


@lru_cache(maxsize=64)
def _compile_pattern(pattern: str) -> re.Pattern[str]:
    parts: list[str] = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**/", i):
            parts.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            parts.append(".*")
            i += 2
        elif pattern[i] == "*":
            parts.append("[^/]*")
            i += 1
        else:
            parts.append(re.escape(pattern[i]))
            i += 1
    return re.compile("^" + "".join(parts) + "$")


def matches_pattern(path: str, pattern: str) -> bool:
    """Glob match where ``**`` spans directories and ``*`` stays within one.

    A leading ``**/`` also matches files at the repository root.
    """
    return _compile_pattern(pattern).match(path) is not None


def matches_any(path: str, patterns: list[str]) -> bool:
    """True when ``patterns`` is empty or any pattern matches."""
    return not patterns or any(matches_pattern(path, p) for p in patterns)
