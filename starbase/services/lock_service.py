"""Per-project advisory lease lock for remote sync operations."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError

from starbase.exceptions import SyncInProgressError
from starbase.models.base import new_id
from starbase.models.git import GitLock
from starbase.services.datetime_service import iso_after, now_iso

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TTL_SECONDS = 300


async def acquire_lock(
    session: AsyncSession, project_id: str, holder: str, ttl_seconds: int
) -> None:
    """Take the project's lease, replacing it if it has expired.

    Raises SyncInProgressError when a live lease belongs to another holder.
    """
    now = now_iso()
    existing = await session.get(GitLock, project_id)
    if existing is not None:
        if existing.holder != holder and existing.expires_at > now:
            raise SyncInProgressError(
                f"A sync is already in progress for project {project_id}"
            )
        logger.info(
            "Taking over lock on project %s from %s (expired %s)",
            project_id,
            existing.holder,
            existing.expires_at,
        )
        existing.holder = holder
        existing.acquired_at = now
        existing.expires_at = iso_after(ttl_seconds)
    else:
        session.add(
            GitLock(
                project_id=project_id,
                holder=holder,
                acquired_at=now,
                expires_at=iso_after(ttl_seconds),
            )
        )
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise SyncInProgressError(
            f"A sync is already in progress for project {project_id}"
        ) from exc


async def release_lock(session: AsyncSession, project_id: str, holder: str) -> bool:
    """Drop the lease if ``holder`` still owns it. Returns whether a row was removed."""
    result = await session.execute(
        delete(GitLock).where(GitLock.project_id == project_id, GitLock.holder == holder)
    )
    await session.commit()
    return bool(result.rowcount)


@asynccontextmanager
async def project_lock(
    session_factory: async_sessionmaker[AsyncSession],
    project_id: str,
    *,
    holder: str | None = None,
    ttl_seconds: int = DEFAULT_LOCK_TTL_SECONDS,
) -> AsyncIterator[str]:
    """Hold the project's sync lease for the duration of the block.

    Uses its own sessions so the caller's transaction state never affects the
    lease row.
    """
    holder = holder or new_id()
    async with session_factory() as session:
        await acquire_lock(session, project_id, holder, ttl_seconds)
    logger.debug("Acquired sync lock on project %s (%s)", project_id, holder)
    try:
        yield holder
    finally:
        async with session_factory() as session:
            released = await release_lock(session, project_id, holder)
        if not released:
            logger.warning(
                "Sync lock on project %s was lost before release (%s)", project_id, holder
            )
