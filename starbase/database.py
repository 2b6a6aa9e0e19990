"""Database engine and session factory."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

if TYPE_CHECKING:
    from starbase.config import Settings

logger = logging.getLogger(__name__)

# Sync lock acquisition and commits from concurrent requests wait this long
# for the sqlite write lock before failing with "database is locked".
SQLITE_BUSY_TIMEOUT_MS = 5000


def sqlite_file_path(database_url: str) -> Path | None:
    """Filesystem path of a file-backed sqlite URL, else None."""
    if not database_url.startswith("sqlite") or "///" not in database_url:
        return None
    path = database_url.split("///", 1)[1]
    if not path or path == ":memory:":
        return None
    return Path(path)


def _set_sqlite_pragmas(dbapi_conn: Any, _connection_record: Any) -> None:
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
    cursor.close()


def create_engine(
    settings: Settings,
) -> tuple[
    AsyncEngine,
    async_sessionmaker[AsyncSession],
]:
    """Create async engine and session factory.

    Returns (engine, session_factory) tuple. The parent directory of a
    file-backed sqlite database is created if missing.
    """
    db_path = sqlite_file_path(settings.database_url)
    if db_path is not None:
        db_path.parent.mkdir(parents=True, exist_ok=True)

    engine = create_async_engine(
        settings.database_url,
        echo=settings.debug,
    )
    if db_path is not None:
        event.listen(engine.sync_engine, "connect", _set_sqlite_pragmas)
        logger.debug("Using sqlite database at %s", db_path)

    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    return engine, session_factory
