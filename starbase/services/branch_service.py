"""Branch management: the shared main branch and per-user drafts."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select

from starbase.exceptions import NotFoundError
from starbase.models.project import Project
from starbase.models.vcs import Branch, CommitSource, WorkingFile
from starbase.services.datetime_service import now_iso
from starbase.services.file_service import sync_from_main_db
from starbase.services.hashing import file_identity
from starbase.services.vcs_types import BranchInfo, MergeResult

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

MAIN_BRANCH_NAME = "main"


def draft_branch_name(user_id: str) -> str:
    return f"draft/{user_id}"


async def _load_main(session: AsyncSession, project_id: str) -> Branch | None:
    stmt = select(Branch).where(Branch.project_id == project_id, Branch.is_default.is_(True))
    return (await session.execute(stmt)).scalar_one_or_none()


async def get_branch(session: AsyncSession, branch_id: str) -> BranchInfo:
    row = await session.get(Branch, branch_id)
    if row is None:
        raise NotFoundError("Branch not found")
    return BranchInfo.from_row(row)


async def get_main_branch(session: AsyncSession, project_id: str) -> BranchInfo | None:
    main = await _load_main(session, project_id)
    return BranchInfo.from_row(main) if main is not None else None


async def init_project(session: AsyncSession, project_id: str) -> BranchInfo:
    """Create the project's main branch seeded from the live files.

    Returns the existing main branch when the project is already initialized.
    """
    existing = await _load_main(session, project_id)
    if existing is not None:
        return BranchInfo.from_row(existing)

    if await session.get(Project, project_id) is None:
        raise NotFoundError(f"Project not found: {project_id}")

    now = now_iso()
    main = Branch(
        project_id=project_id,
        name=MAIN_BRANCH_NAME,
        user_id=None,
        head_commit_id=None,
        is_default=True,
        created_at=now,
        updated_at=now,
    )
    session.add(main)
    await session.commit()
    await sync_from_main_db(session, project_id, main.id)
    logger.info("Initialized VCS for project %s (main branch %s)", project_id, main.id)
    return BranchInfo.from_row(main)


async def get_user_branch(session: AsyncSession, project_id: str, user_id: str) -> BranchInfo:
    """Return the user's draft branch, creating it from main on first use."""
    stmt = select(Branch).where(Branch.project_id == project_id, Branch.user_id == user_id)
    draft = (await session.execute(stmt)).scalar_one_or_none()
    if draft is not None:
        return BranchInfo.from_row(draft)

    main = await init_project(session, project_id)
    now = now_iso()
    draft = Branch(
        project_id=project_id,
        name=draft_branch_name(user_id),
        user_id=user_id,
        head_commit_id=main.head_commit_id,
        is_default=False,
        created_at=now,
        updated_at=now,
    )
    session.add(draft)
    await session.flush()

    main_files = (
        (
            await session.execute(
                select(WorkingFile).where(
                    WorkingFile.branch_id == main.id,
                    WorkingFile.is_deleted.is_(False),
                )
            )
        )
        .scalars()
        .all()
    )
    for source in main_files:
        session.add(
            WorkingFile(
                branch_id=draft.id,
                project_id=project_id,
                folder_id=source.folder_id,
                name=source.name,
                type=source.type,
                content=source.content,
                content_hash=source.content_hash,
                is_deleted=False,
                created_at=now,
                updated_at=now,
            )
        )
    await session.commit()
    logger.info("Created draft branch %s for user %s in project %s", draft.id, user_id, project_id)
    return BranchInfo.from_row(draft)


async def merge_to_main(
    session: AsyncSession, source_branch_id: str, project_id: str, user_id: str
) -> MergeResult:
    """Apply a draft branch's working tree onto main and commit it there.

    Files are matched by (folder, name, type). Deletions on the draft are
    propagated. No commit is created when main already matches the draft.
    """
    from starbase.services.commit_service import commit

    source = await session.get(Branch, source_branch_id)
    if source is None or source.project_id != project_id:
        raise NotFoundError("Branch not found")
    main = await _load_main(session, project_id)
    if main is None:
        raise NotFoundError("Project has no main branch")

    source_files = (
        (await session.execute(select(WorkingFile).where(WorkingFile.branch_id == source.id)))
        .scalars()
        .all()
    )
    main_files = (
        (
            await session.execute(
                select(WorkingFile).where(
                    WorkingFile.branch_id == main.id,
                    WorkingFile.is_deleted.is_(False),
                )
            )
        )
        .scalars()
        .all()
    )
    main_by_identity = {file_identity(f.folder_id, f.name, f.type): f for f in main_files}

    now = now_iso()
    files_changed = 0
    for src in source_files:
        target = main_by_identity.get(file_identity(src.folder_id, src.name, src.type))
        if src.is_deleted:
            if target is not None:
                target.is_deleted = True
                target.updated_at = now
                files_changed += 1
            continue
        if target is not None:
            if target.content_hash != src.content_hash:
                target.content = src.content
                target.content_hash = src.content_hash
                target.updated_at = now
                files_changed += 1
            continue
        session.add(
            WorkingFile(
                branch_id=main.id,
                project_id=project_id,
                folder_id=src.folder_id,
                name=src.name,
                type=src.type,
                content=src.content,
                content_hash=src.content_hash,
                is_deleted=False,
                created_at=now,
                updated_at=now,
            )
        )
        files_changed += 1
    await session.commit()

    if files_changed == 0:
        logger.info("Merge of branch %s into main found nothing to apply", source.id)
        return MergeResult(merge_commit_id=None, files_changed=0)

    merged = await commit(
        session,
        main.id,
        user_id,
        f"Merge from draft: {files_changed} file(s)",
        source=CommitSource.SYSTEM,
    )
    return MergeResult(merge_commit_id=merged.id, files_changed=files_changed)
