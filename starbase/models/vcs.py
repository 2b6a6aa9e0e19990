"""Version control models: branches, working files, commits and snapshots."""

from __future__ import annotations

from enum import StrEnum

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from starbase.models.base import Base, new_id


class ChangeType(StrEnum):
    """Per-file classification of a snapshot relative to the parent commit."""

    ADDED = "added"
    MODIFIED = "modified"
    UNCHANGED = "unchanged"
    DELETED = "deleted"


class CommitSource(StrEnum):
    """Provenance of a commit."""

    MANUAL = "manual"
    SYNC_PUSH = "sync-push"
    SYNC_PULL = "sync-pull"
    SYSTEM = "system"


class Branch(Base):
    """A line of history; ``user_id`` is None for the shared main branch."""

    __tablename__ = "branches"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    user_id: Mapped[str | None] = mapped_column(String, nullable=True)
    head_commit_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_branches_project_user"),
        Index("idx_branches_project", "project_id"),
    )


class WorkingFile(Base):
    """Mutable state of one file within one branch."""

    __tablename__ = "working_files"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    branch_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("branches.id", ondelete="CASCADE"), nullable=False
    )
    project_id: Mapped[str] = mapped_column(String(36), nullable=False)
    folder_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    content_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (Index("idx_working_files_branch", "branch_id"),)


class Commit(Base):
    """Immutable point-in-time record of a branch's working tree."""

    __tablename__ = "commits"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    project_id: Mapped[str] = mapped_column(String(36), nullable=False)
    branch_id: Mapped[str] = mapped_column(String(36), nullable=False)
    parent_commit_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)
    version_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    source: Mapped[str] = mapped_column(String(32), nullable=False, default=CommitSource.MANUAL)
    is_remote: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        Index("commits_project_idx", "project_id"),
        Index("commits_branch_idx", "branch_id"),
        Index("commits_parent_idx", "parent_commit_id"),
    )


class FileSnapshot(Base):
    """Copy of one working file as of one commit."""

    __tablename__ = "file_snapshots"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    commit_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("commits.id", ondelete="CASCADE"), nullable=False
    )
    working_file_id: Mapped[str] = mapped_column(String(36), nullable=False)
    folder_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    content_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    change_type: Mapped[str] = mapped_column(String(16), nullable=False)

    __table_args__ = (
        Index("idx_file_snapshots_commit", "commit_id"),
        Index("idx_file_snapshots_identity", "name", "type", "folder_id"),
    )


class FileCommitVersion(Base):
    """Per-file version counter, one row per (file, commit) that touched it."""

    __tablename__ = "file_commit_versions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[str] = mapped_column(String(36), nullable=False)
    file_id: Mapped[str] = mapped_column(String(36), nullable=False)
    commit_id: Mapped[str] = mapped_column(String(36), nullable=False)
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        UniqueConstraint("file_id", "commit_id", name="uq_file_commit_versions_file_commit"),
        UniqueConstraint("file_id", "version_number", name="uq_file_commit_versions_number"),
    )
