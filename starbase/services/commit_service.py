"""Commit service: snapshots, change classification and version counters."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from starbase.exceptions import NotFoundError
from starbase.models.base import new_id
from starbase.models.project import File
from starbase.models.vcs import (
    Branch,
    ChangeType,
    Commit,
    CommitSource,
    FileCommitVersion,
    FileSnapshot,
    WorkingFile,
)
from starbase.services.branch_service import init_project
from starbase.services.datetime_service import now_iso
from starbase.services.file_service import folder_clause
from starbase.services.hashing import file_identity, hash_content, short_hash
from starbase.services.vcs_types import CommitInfo, LastCommitInfo, SnapshotView

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

# Commits whose message starts with one of these mirror changes that were
# already versioned elsewhere, so they do not bump per-file versions.
INTERNAL_MESSAGE_PREFIXES = ("sync from starbase", "merge from draft", "pull from remote")


def is_internal_message(message: str | None) -> bool:
    return (message or "").lower().startswith(INTERNAL_MESSAGE_PREFIXES)


def classify_change(
    working: WorkingFile, previous: FileSnapshot | None, has_head: bool
) -> ChangeType:
    """Classify a working file against its snapshot in the branch head."""
    if working.is_deleted:
        return ChangeType.DELETED
    if not has_head or previous is None:
        return ChangeType.ADDED
    if (
        working.content_hash == previous.content_hash
        and working.name == previous.name
        and working.type == previous.type
        and (working.folder_id or None) == (previous.folder_id or None)
    ):
        return ChangeType.UNCHANGED
    return ChangeType.MODIFIED


def _commit_hash(files: Sequence[WorkingFile]) -> str:
    pairs = [[f.id, f.content_hash] for f in sorted(files, key=lambda f: f.id)]
    return short_hash(json.dumps(pairs, separators=(",", ":")))


async def _next_project_version(session: AsyncSession, project_id: str) -> int:
    stmt = select(func.coalesce(func.max(Commit.version_number), 0)).where(
        Commit.project_id == project_id
    )
    current = (await session.execute(stmt)).scalar_one()
    return int(current) + 1


async def commit(
    session: AsyncSession,
    branch_id: str,
    user_id: str,
    message: str,
    *,
    is_remote: bool = False,
    source: str = CommitSource.MANUAL,
) -> CommitInfo:
    """Create a commit from the branch's current working files.

    The commit row, its snapshots and the branch head move are written in a
    single transaction. Per-file version counters are updated afterwards on a
    best-effort basis.
    """
    branch = await session.get(Branch, branch_id)
    if branch is None:
        raise NotFoundError("Branch not found")

    working_files = (
        (await session.execute(select(WorkingFile).where(WorkingFile.branch_id == branch_id)))
        .scalars()
        .all()
    )

    head_commit_id = branch.head_commit_id
    previous_by_working_id: dict[str, FileSnapshot] = {}
    if head_commit_id:
        previous = await session.execute(
            select(FileSnapshot).where(FileSnapshot.commit_id == head_commit_id)
        )
        previous_by_working_id = {s.working_file_id: s for s in previous.scalars().all()}

    # Every working file is snapshotted; deleted ones stay as deleted markers.
    files = list(working_files)

    now = now_iso()
    row = Commit(
        id=new_id(),
        project_id=branch.project_id,
        branch_id=branch_id,
        parent_commit_id=head_commit_id,
        user_id=user_id,
        message=message,
        hash=_commit_hash(files),
        version_number=await _next_project_version(session, branch.project_id),
        source=str(source),
        is_remote=is_remote,
        created_at=now,
    )
    session.add(row)

    for working in files:
        previous_snapshot = previous_by_working_id.get(working.id)
        change_type = classify_change(working, previous_snapshot, head_commit_id is not None)
        content = working.content
        content_hash = working.content_hash
        if change_type is ChangeType.UNCHANGED and previous_snapshot is not None:
            content = previous_snapshot.content
            content_hash = previous_snapshot.content_hash
        session.add(
            FileSnapshot(
                commit_id=row.id,
                working_file_id=working.id,
                folder_id=working.folder_id,
                name=working.name,
                type=working.type,
                content=content,
                content_hash=content_hash,
                change_type=change_type,
            )
        )

    branch.head_commit_id = row.id
    branch.updated_at = now
    await session.commit()

    logger.info(
        "Commit %s created on branch %s by %s (version %d, %d file(s)): %s",
        row.id,
        branch_id,
        user_id,
        row.version_number,
        len(files),
        message,
    )

    await _update_file_commit_versions(session, branch.project_id, row.id, message, now)
    return CommitInfo.from_row(row)


async def _update_file_commit_versions(
    session: AsyncSession,
    project_id: str,
    commit_id: str,
    message: str,
    created_at: str,
) -> None:
    """Bump the version counter of every live file the commit touched."""
    if is_internal_message(message):
        return

    try:
        snapshots = (
            (
                await session.execute(
                    select(FileSnapshot).where(
                        FileSnapshot.commit_id == commit_id,
                        FileSnapshot.change_type != ChangeType.UNCHANGED,
                    )
                )
            )
            .scalars()
            .all()
        )
        for snapshot in snapshots:
            file_stmt = (
                select(File.id)
                .where(
                    File.project_id == project_id,
                    File.name == snapshot.name,
                    File.type == snapshot.type,
                    folder_clause(File.folder_id, snapshot.folder_id),
                )
                .limit(1)
            )
            file_id = (await session.execute(file_stmt)).scalar_one_or_none()
            if file_id is None:
                continue

            max_stmt = select(func.coalesce(func.max(FileCommitVersion.version_number), 0)).where(
                FileCommitVersion.file_id == file_id
            )
            next_version = int((await session.execute(max_stmt)).scalar_one()) + 1
            await session.execute(
                sqlite_insert(FileCommitVersion)
                .values(
                    project_id=project_id,
                    file_id=file_id,
                    commit_id=commit_id,
                    version_number=next_version,
                    created_at=created_at,
                )
                .on_conflict_do_nothing()
            )
        await session.commit()
        logger.debug(
            "Updated file versions for commit %s (%d affected snapshot(s))",
            commit_id,
            len(snapshots),
        )
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.warning("Failed to update file versions for commit %s: %s", commit_id, exc)


async def get_commit(session: AsyncSession, commit_id: str) -> CommitInfo:
    row = await session.get(Commit, commit_id)
    if row is None:
        raise NotFoundError("Commit not found")
    return CommitInfo.from_row(row)


async def get_commits(session: AsyncSession, branch_id: str, limit: int = 50) -> list[CommitInfo]:
    """Commit history of a branch, newest first."""
    stmt = (
        select(Commit)
        .where(Commit.branch_id == branch_id)
        .order_by(Commit.created_at.desc(), Commit.version_number.desc())
        .limit(limit)
    )
    result = await session.execute(stmt)
    return [CommitInfo.from_row(row) for row in result.scalars().all()]


def _snapshot_score(content: str | None, change_type: str) -> int:
    score = 0
    if content:
        score += 10
    if change_type != ChangeType.UNCHANGED:
        score += 5
    if change_type == ChangeType.DELETED:
        score -= 20
    return score


async def get_commit_snapshots(session: AsyncSession, commit_id: str) -> list[SnapshotView]:
    """One snapshot per logical file (name, type, folder) of a commit.

    A rename or move inside one commit can leave two snapshot rows for the
    same logical file. The one carrying content and a real change wins; ties
    go to the more recently updated working file.
    """
    stmt = (
        select(FileSnapshot, WorkingFile.updated_at)
        .outerjoin(WorkingFile, FileSnapshot.working_file_id == WorkingFile.id)
        .where(FileSnapshot.commit_id == commit_id)
    )
    rows = (await session.execute(stmt)).all()

    best: dict[tuple[str, str, str], tuple[FileSnapshot, str]] = {}
    for snapshot, working_updated_at in rows:
        key = file_identity(snapshot.folder_id, snapshot.name, snapshot.type)
        updated_at = working_updated_at or ""
        current = best.get(key)
        if current is None:
            best[key] = (snapshot, updated_at)
            continue
        current_snapshot, current_updated_at = current
        score = _snapshot_score(snapshot.content, snapshot.change_type)
        current_score = _snapshot_score(current_snapshot.content, current_snapshot.change_type)
        if score > current_score or (score == current_score and updated_at > current_updated_at):
            best[key] = (snapshot, updated_at)

    return [
        SnapshotView(
            id=s.id,
            name=s.name,
            type=s.type,
            folder_id=s.folder_id,
            content=s.content,
            change_type=s.change_type,
        )
        for s, _ in best.values()
    ]


async def commit_has_file(session: AsyncSession, commit_id: str, file_id: str) -> bool:
    """Whether the commit changed the live file's (name, type, folder) slot."""
    live = await session.get(File, file_id)
    if live is None:
        logger.debug("commit_has_file: live file %s not found", file_id)
        return False

    stmt = select(FileSnapshot.change_type).where(
        FileSnapshot.commit_id == commit_id,
        FileSnapshot.name == live.name,
        FileSnapshot.type == live.type,
        folder_clause(FileSnapshot.folder_id, live.folder_id),
    )
    change_types = (await session.execute(stmt)).scalars().all()
    return any(ct != ChangeType.UNCHANGED for ct in change_types)


async def get_last_commit_for_file(
    session: AsyncSession, project_id: str, file_id: str
) -> LastCommitInfo | None:
    """Newest commit in the project that changed the live file's slot."""
    live = await session.get(File, file_id)
    if live is None:
        return None

    stmt = (
        select(Commit.id, Commit.message, Commit.created_at)
        .join(FileSnapshot, FileSnapshot.commit_id == Commit.id)
        .where(
            Commit.project_id == project_id,
            FileSnapshot.name == live.name,
            FileSnapshot.type == live.type,
            FileSnapshot.change_type != ChangeType.UNCHANGED,
            folder_clause(FileSnapshot.folder_id, live.folder_id),
        )
        .order_by(Commit.created_at.desc(), Commit.version_number.desc())
        .limit(1)
    )
    row = (await session.execute(stmt)).first()
    if row is None:
        return None
    return LastCommitInfo(id=row.id, message=row.message or "", created_at=row.created_at)


async def commit_current_state(
    session: AsyncSession,
    project_id: str,
    user_id: str,
    message: str,
    source: str = CommitSource.MANUAL,
) -> CommitInfo | None:
    """Commit the live file table directly onto the main branch.

    Used when files changed outside draft editing. Returns None when the
    project has no files.
    """
    main = await init_project(session, project_id)
    branch = await session.get(Branch, main.id)
    if branch is None:
        raise NotFoundError("Branch not found")

    live_files = (
        (await session.execute(select(File).where(File.project_id == project_id))).scalars().all()
    )
    if not live_files:
        logger.debug("No files to commit for project %s", project_id)
        return None

    baseline_commit_id = branch.head_commit_id
    baseline_hashes: dict[tuple[str, str, str], set[str]] = {}
    if baseline_commit_id:
        snapshots = await session.execute(
            select(FileSnapshot).where(FileSnapshot.commit_id == baseline_commit_id)
        )
        for s in snapshots.scalars().all():
            if not s.content_hash:
                continue
            key = file_identity(s.folder_id, s.name, s.type)
            baseline_hashes.setdefault(key, set()).add(s.content_hash)

    now = now_iso()
    row = Commit(
        id=new_id(),
        project_id=project_id,
        branch_id=branch.id,
        parent_commit_id=baseline_commit_id,
        user_id=user_id,
        message=message,
        hash=short_hash("".join(f.xml or "" for f in live_files)),
        version_number=await _next_project_version(session, project_id),
        source=str(source),
        is_remote=False,
        created_at=now,
    )
    session.add(row)

    for live in live_files:
        content = live.xml or ""
        content_hash = hash_content(content)
        previous_hashes = baseline_hashes.get(file_identity(live.folder_id, live.name, live.type))
        if baseline_commit_id is None or previous_hashes is None:
            change_type = ChangeType.ADDED
        elif content_hash in previous_hashes:
            change_type = ChangeType.UNCHANGED
        else:
            change_type = ChangeType.MODIFIED
        session.add(
            FileSnapshot(
                commit_id=row.id,
                working_file_id=live.id,
                folder_id=live.folder_id,
                name=live.name,
                type=live.type,
                content=content,
                content_hash=content_hash,
                change_type=change_type,
            )
        )

    branch.head_commit_id = row.id
    branch.updated_at = now
    await session.commit()
    logger.info(
        "Committed current state of project %s as %s (%d file(s))",
        project_id,
        row.id,
        len(live_files),
    )

    await _update_file_commit_versions(session, project_id, row.id, message, now)
    return CommitInfo.from_row(row)
