"""Health check endpoint."""

from __future__ import annotations

import logging
import shutil
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from starbase.api.deps import get_session, get_settings
from starbase.config import APP_VERSION, Settings
from starbase.providers.registry import list_providers

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    version: str
    database: str
    git: str
    repositories: str
    providers: list[str]


@router.get("/api/health", response_model=HealthResponse)
async def health_check(
    session: Annotated[AsyncSession, Depends(get_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> HealthResponse:
    """Report database reachability, the git CLI and the local repository store."""
    db_status = "ok"
    try:
        await session.execute(text("SELECT 1"))
    except Exception:
        logger.warning("Health check database query failed", exc_info=True)
        db_status = "error"

    git_status = "ok" if shutil.which("git") else "missing"
    repos_status = "ok" if settings.git_repos_dir.is_dir() else "missing"
    healthy = db_status == "ok" and git_status == "ok" and repos_status == "ok"
    return HealthResponse(
        status="ok" if healthy else "degraded",
        version=APP_VERSION,
        database=db_status,
        git=git_status,
        repositories=repos_status,
        providers=list_providers(),
    )
