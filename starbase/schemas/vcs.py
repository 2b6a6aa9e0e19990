"""Branch, commit and snapshot schemas."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class BranchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    project_id: str
    name: str
    user_id: str | None = None
    head_commit_id: str | None = None
    is_default: bool = False


class CommitResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    project_id: str
    branch_id: str
    parent_commit_id: str | None = None
    user_id: str
    message: str
    hash: str
    version_number: int | None = None
    source: str
    is_remote: bool = False
    created_at: str


class CommitCreate(BaseModel):
    """Request to commit a branch's working files."""

    message: str = Field(min_length=1, max_length=2000)


class SnapshotResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    type: str
    folder_id: str | None = None
    content: str | None = None
    change_type: str


class MergeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    merge_commit_id: str | None = None
    files_changed: int = Field(ge=0)


class CommitHasFileResponse(BaseModel):
    has_file: bool


class LastCommitResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    message: str
    created_at: str
