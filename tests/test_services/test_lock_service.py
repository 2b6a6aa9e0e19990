"""Tests for the per-project sync lease."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from starbase.exceptions import SyncInProgressError
from starbase.models import GitLock
from starbase.services.lock_service import acquire_lock, project_lock, release_lock

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


async def _lock_row(
    session_factory: async_sessionmaker[AsyncSession], project_id: str
) -> GitLock | None:
    async with session_factory() as session:
        return await session.get(GitLock, project_id)


class TestProjectLock:
    async def test_acquire_and_release(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        async with project_lock(session_factory, "p1") as holder:
            row = await _lock_row(session_factory, "p1")
            assert row is not None
            assert row.holder == holder
            assert row.expires_at > row.acquired_at
        assert await _lock_row(session_factory, "p1") is None

    async def test_conflicting_holder_is_rejected(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        async with project_lock(session_factory, "p1", holder="first"):
            with pytest.raises(SyncInProgressError):
                async with project_lock(session_factory, "p1", holder="second"):
                    pass
            row = await _lock_row(session_factory, "p1")
            assert row is not None and row.holder == "first"

    async def test_released_on_error(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        with pytest.raises(RuntimeError, match="boom"):
            async with project_lock(session_factory, "p1"):
                raise RuntimeError("boom")
        assert await _lock_row(session_factory, "p1") is None

    async def test_other_projects_are_independent(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        async with project_lock(session_factory, "p1"), project_lock(session_factory, "p2"):
            assert await _lock_row(session_factory, "p2") is not None

    async def test_expired_lease_is_taken_over(
        self, session_factory: async_sessionmaker[AsyncSession], db_session: AsyncSession
    ) -> None:
        db_session.add(
            GitLock(
                project_id="p1",
                holder="crashed-worker",
                acquired_at="2000-01-01T00:00:00.000000+00:00",
                expires_at="2000-01-01T00:05:00.000000+00:00",
            )
        )
        await db_session.commit()

        async with project_lock(session_factory, "p1", holder="fresh"):
            row = await _lock_row(session_factory, "p1")
            assert row is not None and row.holder == "fresh"


class TestReleaseLock:
    async def test_only_owner_releases(self, db_session: AsyncSession) -> None:
        await acquire_lock(db_session, "p1", "owner", ttl_seconds=60)
        assert not await release_lock(db_session, "p1", "intruder")
        assert await release_lock(db_session, "p1", "owner")
