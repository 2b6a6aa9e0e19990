"""Remote sync schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class CredentialUpdate(BaseModel):
    """Request to store a personal access token for a provider."""

    token: str = Field(min_length=1, max_length=4096)


class SyncRequest(BaseModel):
    project_id: str = Field(min_length=1)
    direction: Literal["push", "pull", "both"] = "both"
    message: str | None = Field(default=None, max_length=2000)


class RemoteCommitResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    sha: str
    message: str
    author: str
    date: datetime


class PushResultResponse(BaseModel):
    """Outcome of the push phase of a sync."""

    model_config = ConfigDict(from_attributes=True)

    commit: RemoteCommitResponse | None = None
    pushed_files_count: int
    deletions_count: int
    skipped_files_count: int
    total_files_count: int
    used_remote_tree: bool
    remote_drift: bool
    vcs_commit_id: str | None = None


class SyncResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    pushed: bool
    pulled: bool
    files_changed: int
    push: PushResultResponse | None = None


class SyncStatusResponse(BaseModel):
    """Repository link and local sync state of a project."""

    connected: bool
    remote_url: str | None = None
    repository: str | None = None
    default_branch: str | None = None
    last_commit_sha: str | None = None
    last_sync_at: str | None = None
    last_push_commit_id: str | None = None
    has_manifest: bool = False
    uncommitted_file_ids: list[str] = Field(default_factory=list)
