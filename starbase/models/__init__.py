"""SQLAlchemy ORM models for Starbase."""

from starbase.models.base import Base, new_id
from starbase.models.git import GitCredential, GitLock, GitProvider, GitRepository
from starbase.models.project import File, Folder, Project
from starbase.models.vcs import (
    Branch,
    ChangeType,
    Commit,
    CommitSource,
    FileCommitVersion,
    FileSnapshot,
    WorkingFile,
)

__all__ = [
    "Base",
    "Branch",
    "ChangeType",
    "Commit",
    "CommitSource",
    "File",
    "FileCommitVersion",
    "FileSnapshot",
    "Folder",
    "GitCredential",
    "GitLock",
    "GitProvider",
    "GitRepository",
    "Project",
    "WorkingFile",
    "new_id",
]
