"""Value objects returned by the VCS services."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from starbase.models.vcs import Branch, Commit, WorkingFile


@dataclass(frozen=True)
class BranchInfo:
    id: str
    project_id: str
    name: str
    user_id: str | None
    head_commit_id: str | None
    is_default: bool

    @classmethod
    def from_row(cls, row: Branch) -> BranchInfo:
        return cls(
            id=row.id,
            project_id=row.project_id,
            name=row.name,
            user_id=row.user_id,
            head_commit_id=row.head_commit_id,
            is_default=row.is_default,
        )


@dataclass(frozen=True)
class CommitInfo:
    id: str
    project_id: str
    branch_id: str
    parent_commit_id: str | None
    user_id: str
    message: str
    hash: str
    version_number: int | None
    source: str
    is_remote: bool
    created_at: str

    @classmethod
    def from_row(cls, row: Commit) -> CommitInfo:
        return cls(
            id=row.id,
            project_id=row.project_id,
            branch_id=row.branch_id,
            parent_commit_id=row.parent_commit_id,
            user_id=row.user_id,
            message=row.message,
            hash=row.hash,
            version_number=row.version_number,
            source=row.source,
            is_remote=bool(row.is_remote),
            created_at=row.created_at,
        )


@dataclass(frozen=True)
class WorkingFileInfo:
    id: str
    branch_id: str
    project_id: str
    folder_id: str | None
    name: str
    type: str
    content: str | None
    content_hash: str | None

    @classmethod
    def from_row(cls, row: WorkingFile) -> WorkingFileInfo:
        return cls(
            id=row.id,
            branch_id=row.branch_id,
            project_id=row.project_id,
            folder_id=row.folder_id,
            name=row.name,
            type=row.type,
            content=row.content,
            content_hash=row.content_hash,
        )


@dataclass(frozen=True)
class SnapshotView:
    """Latest view of one logical file within a commit."""

    id: str
    name: str
    type: str
    folder_id: str | None
    content: str | None
    change_type: str


@dataclass(frozen=True)
class LastCommitInfo:
    id: str
    message: str
    created_at: str


@dataclass(frozen=True)
class MergeResult:
    merge_commit_id: str | None
    files_changed: int
