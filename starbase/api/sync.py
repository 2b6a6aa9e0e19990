"""Remote git credential and sync API endpoints."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from starbase.api.deps import get_remote_git_service, get_session, get_settings, require_user
from starbase.config import Settings
from starbase.schemas.sync import (
    CredentialUpdate,
    SyncRequest,
    SyncResponse,
    SyncStatusResponse,
)
from starbase.services.credential_service import store_token
from starbase.services.file_service import get_uncommitted_file_ids
from starbase.services.remote_git_service import RemoteGitService, get_repository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/git", tags=["sync"])


@router.put("/credentials/{provider_id}", status_code=status.HTTP_204_NO_CONTENT)
async def put_credentials(
    provider_id: str,
    body: CredentialUpdate,
    session: Annotated[AsyncSession, Depends(get_session)],
    settings: Annotated[Settings, Depends(get_settings)],
    user_id: Annotated[str, Depends(require_user)],
) -> Response:
    """Store the caller's access token for a provider, encrypted at rest."""
    await store_token(session, user_id, provider_id, body.token, settings.secret_key)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/sync/status", response_model=SyncStatusResponse)
async def sync_status(
    project_id: Annotated[str, Query(min_length=1)],
    session: Annotated[AsyncSession, Depends(get_session)],
    _user_id: Annotated[str, Depends(require_user)],
) -> SyncStatusResponse:
    uncommitted = await get_uncommitted_file_ids(session, project_id)
    repository = await get_repository(session, project_id)
    if repository is None:
        return SyncStatusResponse(connected=False, uncommitted_file_ids=uncommitted)
    return SyncStatusResponse(
        connected=True,
        remote_url=repository.remote_url,
        repository=repository.full_name,
        default_branch=repository.default_branch,
        last_commit_sha=repository.last_commit_sha,
        last_sync_at=repository.last_sync_at,
        last_push_commit_id=repository.last_push_commit_id,
        has_manifest=bool(repository.last_pushed_manifest),
        uncommitted_file_ids=uncommitted,
    )


@router.post("/sync", response_model=SyncResponse)
async def sync(
    body: SyncRequest,
    service: Annotated[RemoteGitService, Depends(get_remote_git_service)],
    user_id: Annotated[str, Depends(require_user)],
) -> SyncResponse:
    """Pull and/or push a project through its connected repository."""
    logger.info(
        "Sync requested for project %s (%s) by %s", body.project_id, body.direction, user_id
    )
    outcome = await service.sync_project(
        body.project_id, user_id, direction=body.direction, message=body.message
    )
    return SyncResponse.model_validate(outcome)
