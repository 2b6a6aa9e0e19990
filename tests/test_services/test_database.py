"""Tests for database engine and session factory."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import text

from starbase.config import Settings
from starbase.database import SQLITE_BUSY_TIMEOUT_MS, create_engine, sqlite_file_path

if TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncSession


class TestSqliteFilePath:
    def test_file_url(self, tmp_path: Path) -> None:
        assert sqlite_file_path(f"sqlite+aiosqlite:///{tmp_path}/x.db") == tmp_path / "x.db"

    def test_memory_and_other_backends(self) -> None:
        assert sqlite_file_path("sqlite+aiosqlite:///:memory:") is None
        assert sqlite_file_path("sqlite+aiosqlite://") is None
        assert sqlite_file_path("postgresql+asyncpg://u:p@host/db") is None


class TestCreateEngine:
    async def test_creates_parent_dir_and_sets_pragmas(self, tmp_path: Path) -> None:
        db_file = tmp_path / "nested" / "data" / "starbase.db"
        settings = Settings(
            secret_key="test-secret-key-with-at-least-32-characters",
            database_url=f"sqlite+aiosqlite:///{db_file}",
        )
        engine, session_factory = create_engine(settings)
        try:
            assert db_file.parent.is_dir()
            async with session_factory() as session:
                journal = (await session.execute(text("PRAGMA journal_mode"))).scalar()
                busy = (await session.execute(text("PRAGMA busy_timeout"))).scalar()
            assert journal == "wal"
            assert busy == SQLITE_BUSY_TIMEOUT_MS
        finally:
            await engine.dispose()

    async def test_session_works(self, db_session: AsyncSession) -> None:
        result = await db_session.execute(text("SELECT 42"))
        assert result.scalar() == 42
