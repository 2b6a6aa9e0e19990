"""Working file operations: the editable tree of each branch."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import ColumnElement, or_, select

from starbase.exceptions import NotFoundError
from starbase.models.project import File
from starbase.models.vcs import Branch, ChangeType, FileSnapshot, WorkingFile
from starbase.services.datetime_service import now_iso
from starbase.services.hashing import file_identity, hash_content, normalize_folder_id
from starbase.services.vcs_types import WorkingFileInfo

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

# Sentinel distinguishing "no folder filter" from "root folder only".
UNSET: Any = object()


def folder_clause(column: Any, folder_id: str | None) -> ColumnElement[bool]:
    """Match ``folder_id``, treating NULL and '' alike for the root folder."""
    normalized = normalize_folder_id(folder_id)
    if normalized == "":
        return or_(column.is_(None), column == "")
    return column == normalized


async def save_file(
    session: AsyncSession,
    branch_id: str,
    project_id: str,
    file_id: str | None,
    name: str,
    type_: str,
    content: str,
    folder_id: str | None = None,
) -> WorkingFileInfo:
    """Create or update a working file in a branch.

    Without ``file_id`` an existing live (non-deleted) working file with the
    same name, type and folder is updated in place.
    """
    now = now_iso()
    content_hash = hash_content(content)

    existing: WorkingFile | None = None
    if file_id:
        existing = await session.get(WorkingFile, file_id)
        if existing is None:
            raise NotFoundError(f"Working file not found: {file_id}")
    else:
        stmt = (
            select(WorkingFile)
            .where(
                WorkingFile.branch_id == branch_id,
                WorkingFile.project_id == project_id,
                WorkingFile.name == name,
                WorkingFile.type == type_,
                WorkingFile.is_deleted.is_(False),
                folder_clause(WorkingFile.folder_id, folder_id),
            )
            .order_by(WorkingFile.updated_at.desc())
            .limit(1)
        )
        existing = (await session.execute(stmt)).scalar_one_or_none()

    if existing is not None:
        existing.name = name
        existing.content = content
        existing.content_hash = content_hash
        existing.folder_id = folder_id
        existing.is_deleted = False
        existing.updated_at = now
        row = existing
    else:
        row = WorkingFile(
            branch_id=branch_id,
            project_id=project_id,
            folder_id=folder_id,
            name=name,
            type=type_,
            content=content,
            content_hash=content_hash,
            is_deleted=False,
            created_at=now,
            updated_at=now,
        )
        session.add(row)

    await session.commit()
    return WorkingFileInfo.from_row(row)


async def get_files(
    session: AsyncSession, branch_id: str, folder_id: str | None = UNSET
) -> list[WorkingFileInfo]:
    """Non-deleted working files of a branch, optionally within one folder."""
    stmt = select(WorkingFile).where(
        WorkingFile.branch_id == branch_id,
        WorkingFile.is_deleted.is_(False),
    )
    if folder_id is not UNSET:
        stmt = stmt.where(folder_clause(WorkingFile.folder_id, folder_id))
    result = await session.execute(stmt)
    return [WorkingFileInfo.from_row(row) for row in result.scalars().all()]


async def get_file(session: AsyncSession, file_id: str) -> WorkingFileInfo | None:
    row = await session.get(WorkingFile, file_id)
    return WorkingFileInfo.from_row(row) if row is not None else None


async def delete_file(session: AsyncSession, file_id: str) -> None:
    """Soft-delete a working file so the next commit records a deletion."""
    row = await session.get(WorkingFile, file_id)
    if row is None:
        raise NotFoundError(f"Working file not found: {file_id}")
    row.is_deleted = True
    row.updated_at = now_iso()
    await session.commit()


async def sync_from_main_db(session: AsyncSession, project_id: str, branch_id: str) -> None:
    """Mirror the live file table into a branch's working files."""
    live_files = (
        (await session.execute(select(File).where(File.project_id == project_id))).scalars().all()
    )
    working = (
        (
            await session.execute(
                select(WorkingFile).where(
                    WorkingFile.branch_id == branch_id,
                    WorkingFile.is_deleted.is_(False),
                )
            )
        )
        .scalars()
        .all()
    )

    now = now_iso()
    by_identity = {file_identity(w.folder_id, w.name, w.type): w for w in working}
    seen: set[tuple[str, str, str]] = set()
    updated = 0
    inserted = 0

    for live in live_files:
        key = file_identity(live.folder_id, live.name, live.type)
        seen.add(key)
        content = live.xml or ""
        content_hash = hash_content(content)
        existing = by_identity.get(key)
        if existing is not None:
            if existing.content_hash != content_hash:
                existing.content = content
                existing.content_hash = content_hash
                existing.updated_at = now
                updated += 1
            continue
        session.add(
            WorkingFile(
                branch_id=branch_id,
                project_id=project_id,
                folder_id=live.folder_id,
                name=live.name,
                type=live.type,
                content=content,
                content_hash=content_hash,
                is_deleted=False,
                created_at=now,
                updated_at=now,
            )
        )
        inserted += 1

    removed = 0
    for key, existing in by_identity.items():
        if key not in seen:
            existing.is_deleted = True
            existing.updated_at = now
            removed += 1

    await session.commit()
    logger.info(
        "Synced live files to branch %s of project %s (updated=%d inserted=%d removed=%d)",
        branch_id,
        project_id,
        updated,
        inserted,
        removed,
    )


async def get_uncommitted_file_ids(session: AsyncSession, project_id: str) -> list[str]:
    """Live files whose content differs from the main branch head.

    With no main branch or no commit yet every live file is uncommitted.
    """
    live_files = (
        (await session.execute(select(File).where(File.project_id == project_id))).scalars().all()
    )
    main = (
        await session.execute(
            select(Branch).where(Branch.project_id == project_id, Branch.is_default.is_(True))
        )
    ).scalar_one_or_none()
    if main is None or main.head_commit_id is None:
        return [f.id for f in live_files]

    snapshots = (
        (
            await session.execute(
                select(FileSnapshot).where(
                    FileSnapshot.commit_id == main.head_commit_id,
                    FileSnapshot.change_type != ChangeType.DELETED,
                )
            )
        )
        .scalars()
        .all()
    )
    committed = {file_identity(s.folder_id, s.name, s.type): s.content_hash for s in snapshots}
    return [
        f.id
        for f in live_files
        if committed.get(file_identity(f.folder_id, f.name, f.type)) != hash_content(f.xml or "")
    ]
