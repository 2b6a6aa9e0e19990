"""Tests for working files and mirroring the live file table."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy import select

from starbase.exceptions import NotFoundError
from starbase.models import WorkingFile
from starbase.services.branch_service import init_project
from starbase.services.commit_service import commit
from starbase.services.file_service import (
    delete_file,
    get_file,
    get_files,
    get_uncommitted_file_ids,
    save_file,
    sync_from_main_db,
)
from starbase.services.hashing import hash_content

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from sqlalchemy.ext.asyncio import AsyncSession

    from starbase.models import File, Folder


class TestSaveFile:
    async def test_creates_then_updates_by_identity(
        self, db_session: AsyncSession, project_id: str
    ) -> None:
        main = await init_project(db_session, project_id)
        created = await save_file(db_session, main.id, project_id, None, "invoice", "bpmn", "<a/>")
        updated = await save_file(db_session, main.id, project_id, None, "invoice", "bpmn", "<b/>")

        assert updated.id == created.id
        assert updated.content == "<b/>"
        assert updated.content_hash == hash_content("<b/>")
        assert len(await get_files(db_session, main.id)) == 1

    async def test_same_name_other_type_is_distinct(
        self, db_session: AsyncSession, project_id: str
    ) -> None:
        main = await init_project(db_session, project_id)
        bpmn = await save_file(db_session, main.id, project_id, None, "pricing", "bpmn", "<a/>")
        dmn = await save_file(db_session, main.id, project_id, None, "pricing", "dmn", "<d/>")
        assert bpmn.id != dmn.id

    async def test_update_by_id_can_rename(self, db_session: AsyncSession, project_id: str) -> None:
        main = await init_project(db_session, project_id)
        created = await save_file(db_session, main.id, project_id, None, "invoice", "bpmn", "<a/>")
        renamed = await save_file(
            db_session, main.id, project_id, created.id, "billing", "bpmn", "<a/>"
        )
        assert renamed.id == created.id
        assert renamed.name == "billing"

    async def test_unknown_id_raises(self, db_session: AsyncSession, project_id: str) -> None:
        main = await init_project(db_session, project_id)
        with pytest.raises(NotFoundError):
            await save_file(db_session, main.id, project_id, "missing", "x", "bpmn", "<x/>")


class TestGetAndDelete:
    async def test_folder_filter(
        self,
        db_session: AsyncSession,
        project_id: str,
        make_folder: Callable[..., Awaitable[Folder]],
    ) -> None:
        folder = await make_folder("billing")
        main = await init_project(db_session, project_id)
        await save_file(db_session, main.id, project_id, None, "root", "bpmn", "<r/>")
        await save_file(db_session, main.id, project_id, None, "nested", "bpmn", "<n/>", folder.id)

        assert {f.name for f in await get_files(db_session, main.id)} == {"root", "nested"}
        assert [f.name for f in await get_files(db_session, main.id, None)] == ["root"]
        assert [f.name for f in await get_files(db_session, main.id, folder.id)] == ["nested"]

    async def test_delete_is_soft(self, db_session: AsyncSession, project_id: str) -> None:
        main = await init_project(db_session, project_id)
        saved = await save_file(db_session, main.id, project_id, None, "invoice", "bpmn", "<a/>")

        await delete_file(db_session, saved.id)

        assert await get_files(db_session, main.id) == []
        row = await db_session.get(WorkingFile, saved.id)
        assert row is not None and row.is_deleted
        assert await get_file(db_session, saved.id) is not None

    async def test_delete_unknown_raises(self, db_session: AsyncSession) -> None:
        with pytest.raises(NotFoundError):
            await delete_file(db_session, "missing")

    async def test_save_after_delete_creates_new_row(
        self, db_session: AsyncSession, project_id: str
    ) -> None:
        main = await init_project(db_session, project_id)
        saved = await save_file(db_session, main.id, project_id, None, "invoice", "bpmn", "<a/>")
        await delete_file(db_session, saved.id)

        again = await save_file(db_session, main.id, project_id, None, "invoice", "bpmn", "<b/>")
        assert again.id != saved.id


class TestSyncFromMainDb:
    async def test_mirrors_updates_inserts_and_removals(
        self,
        db_session: AsyncSession,
        project_id: str,
        make_file: Callable[..., Awaitable[File]],
    ) -> None:
        invoice = await make_file("invoice", "<v1/>")
        shipping = await make_file("shipping", "<s/>")
        main = await init_project(db_session, project_id)

        invoice.xml = "<v2/>"
        await db_session.delete(shipping)
        await db_session.commit()
        await make_file("refund", "<r/>")

        await sync_from_main_db(db_session, project_id, main.id)

        files = {f.name: f.content for f in await get_files(db_session, main.id)}
        assert files == {"invoice": "<v2/>", "refund": "<r/>"}
        deleted = (
            await db_session.execute(
                select(WorkingFile).where(
                    WorkingFile.branch_id == main.id, WorkingFile.name == "shipping"
                )
            )
        ).scalar_one()
        assert deleted.is_deleted

    async def test_null_xml_is_treated_as_empty(
        self,
        db_session: AsyncSession,
        project_id: str,
        make_file: Callable[..., Awaitable[File]],
    ) -> None:
        await make_file("empty", "")
        main = await init_project(db_session, project_id)
        [working] = await get_files(db_session, main.id)
        assert working.content == ""
        assert working.content_hash == hash_content("")


class TestUncommittedFiles:
    async def test_everything_uncommitted_before_first_commit(
        self,
        db_session: AsyncSession,
        project_id: str,
        make_file: Callable[..., Awaitable[File]],
    ) -> None:
        invoice = await make_file("invoice")
        assert await get_uncommitted_file_ids(db_session, project_id) == [invoice.id]

    async def test_only_changed_files_after_commit(
        self,
        db_session: AsyncSession,
        project_id: str,
        make_file: Callable[..., Awaitable[File]],
    ) -> None:
        invoice = await make_file("invoice")
        await make_file("shipping")
        main = await init_project(db_session, project_id)
        await commit(db_session, main.id, "alice", "Initial import")
        assert await get_uncommitted_file_ids(db_session, project_id) == []

        invoice.xml = "<edited/>"
        await db_session.commit()
        assert await get_uncommitted_file_ids(db_session, project_id) == [invoice.id]
