"""Branch, commit and history API endpoints."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from starbase.api.deps import get_session, get_settings, require_user
from starbase.config import Settings
from starbase.schemas.vcs import (
    BranchResponse,
    CommitCreate,
    CommitHasFileResponse,
    CommitResponse,
    LastCommitResponse,
    MergeResponse,
    SnapshotResponse,
)
from starbase.services.branch_service import (
    get_branch,
    get_main_branch,
    get_user_branch,
    merge_to_main,
)
from starbase.services.commit_service import (
    commit,
    commit_has_file,
    get_commit,
    get_commit_snapshots,
    get_commits,
    get_last_commit_for_file,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["vcs"])


@router.get("/projects/{project_id}/branches/main", response_model=BranchResponse)
async def main_branch(
    project_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    _user_id: Annotated[str, Depends(require_user)],
) -> BranchResponse:
    branch = await get_main_branch(session, project_id)
    if branch is None:
        raise HTTPException(status_code=404, detail="Main branch not found")
    return BranchResponse.model_validate(branch)


@router.post("/projects/{project_id}/branches/draft", response_model=BranchResponse)
async def draft_branch(
    project_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    user_id: Annotated[str, Depends(require_user)],
) -> BranchResponse:
    """Return the caller's draft branch, creating it from main on first use."""
    branch = await get_user_branch(session, project_id, user_id)
    return BranchResponse.model_validate(branch)


@router.get("/branches/{branch_id}/commits", response_model=list[CommitResponse])
async def list_commits(
    branch_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    settings: Annotated[Settings, Depends(get_settings)],
    _user_id: Annotated[str, Depends(require_user)],
    limit: Annotated[int | None, Query(ge=1, le=1000)] = None,
) -> list[CommitResponse]:
    await get_branch(session, branch_id)
    commits = await get_commits(session, branch_id, limit or settings.commit_history_limit)
    return [CommitResponse.model_validate(c) for c in commits]


@router.post(
    "/branches/{branch_id}/commits",
    response_model=CommitResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_commit(
    branch_id: str,
    body: CommitCreate,
    session: Annotated[AsyncSession, Depends(get_session)],
    user_id: Annotated[str, Depends(require_user)],
) -> CommitResponse:
    created = await commit(session, branch_id, user_id, body.message)
    return CommitResponse.model_validate(created)


@router.post("/branches/{branch_id}/merge", response_model=MergeResponse)
async def merge_branch(
    branch_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    user_id: Annotated[str, Depends(require_user)],
) -> MergeResponse:
    """Merge a draft branch into its project's main branch."""
    branch = await get_branch(session, branch_id)
    if branch.is_default:
        raise HTTPException(status_code=400, detail="Cannot merge the main branch into itself")
    result = await merge_to_main(session, branch_id, branch.project_id, user_id)
    return MergeResponse.model_validate(result)


@router.get("/commits/{commit_id}/snapshots", response_model=list[SnapshotResponse])
async def commit_snapshots(
    commit_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    _user_id: Annotated[str, Depends(require_user)],
) -> list[SnapshotResponse]:
    await get_commit(session, commit_id)
    snapshots = await get_commit_snapshots(session, commit_id)
    return [SnapshotResponse.model_validate(s) for s in snapshots]


@router.get("/commits/{commit_id}/files/{file_id}", response_model=CommitHasFileResponse)
async def commit_file(
    commit_id: str,
    file_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    _user_id: Annotated[str, Depends(require_user)],
) -> CommitHasFileResponse:
    return CommitHasFileResponse(has_file=await commit_has_file(session, commit_id, file_id))


@router.get(
    "/projects/{project_id}/files/{file_id}/last-commit",
    response_model=LastCommitResponse | None,
)
async def file_last_commit(
    project_id: str,
    file_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    _user_id: Annotated[str, Depends(require_user)],
) -> LastCommitResponse | None:
    last = await get_last_commit_for_file(session, project_id, file_id)
    return LastCommitResponse.model_validate(last) if last is not None else None
