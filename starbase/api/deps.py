"""Shared API dependencies: DB session, settings, auth, sync service."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from starbase.config import Settings
from starbase.services.auth_service import get_token_subject
from starbase.services.remote_git_service import RemoteGitService

security = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    """Get application settings from app state."""
    settings: Settings = request.app.state.settings
    return settings


def get_remote_git_service(request: Request) -> RemoteGitService:
    """Get the remote sync service built at startup."""
    service: RemoteGitService = request.app.state.remote_git_service
    return service


async def get_session(request: Request) -> AsyncGenerator[AsyncSession]:
    """Get a database session."""
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        yield session


def get_current_user_id(
    settings: Annotated[Settings, Depends(get_settings)],
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)] = None,
) -> str | None:
    """User id from the bearer token's ``sub`` claim, or None."""
    if credentials is None:
        return None
    return get_token_subject(credentials.credentials, settings.secret_key)


def require_user(
    user_id: Annotated[str | None, Depends(get_current_user_id)],
) -> str:
    """Require authentication. Raises 401 if not authenticated."""
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id
