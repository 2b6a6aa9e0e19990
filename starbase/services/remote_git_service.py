"""Remote sync: push and pull between a project and its remote repository.

Pushes are incremental. The manifest of the last confirmed push is compared
with the current files so that only changed paths are sent and vanished paths
are deleted, all in a single remote commit. When the remote branch moved since
that push the manifest is distrusted and every file is pushed again.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import select

from starbase.exceptions import NotFoundError, NothingToPushError
from starbase.models.git import GitProvider, GitRepository
from starbase.models.project import File, Folder
from starbase.models.vcs import CommitSource, WorkingFile
from starbase.providers.base import FileEntry, PullRequest, PushRequest
from starbase.providers.registry import create_provider_client
from starbase.services.branch_service import get_main_branch, init_project
from starbase.services.commit_service import commit
from starbase.services.credential_service import get_access_token
from starbase.services.datetime_service import now_iso
from starbase.services.file_service import folder_clause, save_file, sync_from_main_db
from starbase.services.hashing import hash_content
from starbase.services.lock_service import project_lock
from starbase.services.manifest import (
    SYNCED_FILE_TYPES,
    Manifest,
    ManifestFile,
    build_folder_paths,
    build_manifest,
    is_synced_path,
    render_file,
    split_repository_path,
)

if TYPE_CHECKING:
    from contextlib import AbstractAsyncContextManager

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from starbase.config import Settings
    from starbase.providers.base import GitProviderClient, RemoteCommit

logger = logging.getLogger(__name__)

SYNC_DIRECTIONS = ("push", "pull", "both")


@dataclass(frozen=True)
class PushResult:
    commit: RemoteCommit | None
    pushed_files_count: int
    deletions_count: int
    skipped_files_count: int
    total_files_count: int
    used_remote_tree: bool = False
    remote_drift: bool = False
    vcs_commit_id: str | None = None


@dataclass(frozen=True)
class PullOutcome:
    files_count: int
    commit_id: str


@dataclass(frozen=True)
class SyncOutcome:
    pushed: bool
    pulled: bool
    files_changed: int
    push: PushResult | None = None


@dataclass(frozen=True)
class MirrorFailure:
    """A remote operation succeeded but its local VCS mirror commit failed."""

    project_id: str
    operation: str
    error: Exception


MirrorListener = Callable[[MirrorFailure], Awaitable[None] | None]
ClientFactory = Callable[[str, "Settings"], "GitProviderClient"]


class RemoteGitService:
    """Push/pull reconciler bound to a session factory and settings.

    Built once per application and closed at shutdown; provider clients are
    cached per (provider, token).
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
        client_factory: ClientFactory = create_provider_client,
    ) -> None:
        self.session_factory = session_factory
        self.settings = settings
        self._client_factory = client_factory
        self._clients: dict[tuple[str, str], GitProviderClient] = {}
        self._mirror_listeners: list[MirrorListener] = []

    async def __aenter__(self) -> RemoteGitService:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close every cached provider client."""
        clients = list(self._clients.values())
        self._clients.clear()
        for client in clients:
            await client.close()

    def add_mirror_listener(self, listener: MirrorListener) -> None:
        self._mirror_listeners.append(listener)

    async def _notify_mirror_failure(self, event: MirrorFailure) -> None:
        for listener in self._mirror_listeners:
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Mirror failure listener raised for project %s", event.project_id)

    async def get_client(self, provider_id: str, token: str | None) -> GitProviderClient:
        """Return a (cached) client for the stored provider.

        Raises NotFoundError for an unknown provider and ValueError when the
        token is missing or the provider type has no client.
        """
        async with self.session_factory() as session:
            provider = await session.get(GitProvider, provider_id)
        if provider is None:
            raise NotFoundError(f"Git provider not found: {provider_id}")
        if not token:
            raise ValueError(f"No token provided for provider: {provider.name}")

        key = (provider_id, hash_content(token))
        client = self._clients.get(key)
        if client is None:
            client = self._client_factory(provider.type, self.settings)
            self._clients[key] = client
            logger.debug("Created %s client for provider %s", provider.type, provider_id)
        return client

    def _lock(self, project_id: str) -> AbstractAsyncContextManager[str]:
        return project_lock(
            self.session_factory,
            project_id,
            ttl_seconds=self.settings.lock_ttl_seconds,
        )

    async def _resolve_branch(self, project_id: str, branch: str | None) -> str:
        if branch:
            return branch
        async with self.session_factory() as session:
            row = await get_repository(session, project_id)
        return row.default_branch if row is not None else self.settings.default_remote_branch

    # Push

    async def push_to_remote(
        self,
        project_id: str,
        provider_id: str,
        token: str | None,
        *,
        repo: str,
        branch: str | None = None,
        message: str | None = None,
        user_id: str | None = None,
    ) -> PushResult:
        """Push the project's BPMN/DMN files to the remote branch.

        Raises NothingToPushError when the project has no such files at all.
        Provider errors propagate unchanged.
        """
        client = await self.get_client(provider_id, token)
        target_branch = await self._resolve_branch(project_id, branch)
        async with self._lock(project_id):
            return await self._push_locked(
                client, project_id, repo, target_branch, message, user_id
            )

    async def _push_locked(
        self,
        client: GitProviderClient,
        project_id: str,
        repo: str,
        branch: str,
        message: str | None,
        user_id: str | None,
    ) -> PushResult:
        async with self.session_factory() as session:
            repository = await get_repository(session, project_id)
            previous = (
                Manifest.from_json(repository.last_pushed_manifest) if repository else None
            )

            remote_drift = False
            if previous is not None and repository is not None and repository.last_commit_sha:
                try:
                    branches = await client.get_branches(repo)
                    head = next((b for b in branches if b.name == branch), None)
                    if head is not None and head.sha != repository.last_commit_sha:
                        logger.info(
                            "Remote %s@%s moved from %s to %s; pushing all files",
                            repo,
                            branch,
                            repository.last_commit_sha,
                            head.sha,
                        )
                        remote_drift = True
                        previous = None
                except Exception as exc:
                    logger.warning(
                        "Failed to check remote branch head for drift on %s@%s: %s",
                        repo,
                        branch,
                        exc,
                    )

            files = await _load_pushable_files(session, project_id)
            if not files:
                raise NothingToPushError("No files to push")

            current = build_manifest(files)
            changed = set(current.changed_paths(previous))
            changed_files = [f for f in files if f.path in changed]
            deletions = current.deleted_paths(previous)

            used_remote_tree = False
            if previous is None:
                tree = await client.get_tree(repo, branch)
                deletions = [
                    entry.path
                    for entry in tree
                    if entry.type == "blob"
                    and is_synced_path(entry.path)
                    and entry.path not in current
                ]
                used_remote_tree = True

            if not changed_files and not deletions:
                logger.info("No local changes to push for project %s", project_id)
                return PushResult(
                    commit=None,
                    pushed_files_count=0,
                    deletions_count=0,
                    skipped_files_count=len(files),
                    total_files_count=len(files),
                    used_remote_tree=used_remote_tree,
                    remote_drift=remote_drift,
                )

            push_message = message or f"Sync from Starbase: {now_iso()}"
            remote_commit = await client.push_files(
                PushRequest(
                    repo=repo,
                    branch=branch,
                    files=[FileEntry(path=f.path, content=f.content) for f in changed_files],
                    message=push_message,
                    deletions=deletions,
                    create_branch=True,
                )
            )

            now = now_iso()
            if repository is not None:
                repository.last_pushed_manifest = current.to_json()
                repository.last_pushed_manifest_updated_at = now
                repository.last_commit_sha = remote_commit.sha
                repository.last_sync_at = now
                repository.updated_at = now
                await session.commit()
            else:
                logger.warning(
                    "Project %s has no repository link; push manifest not recorded", project_id
                )

            vcs_commit_id = None
            if user_id:
                vcs_commit_id = await self._mirror_push(
                    session, project_id, user_id, push_message, repository
                )

            logger.info(
                "Pushed project %s to %s@%s: %d file(s), %d deletion(s), commit %s",
                project_id,
                repo,
                branch,
                len(changed_files),
                len(deletions),
                remote_commit.sha,
            )
            return PushResult(
                commit=remote_commit,
                pushed_files_count=len(changed_files),
                deletions_count=len(deletions),
                skipped_files_count=len(files) - len(changed_files),
                total_files_count=len(files),
                used_remote_tree=used_remote_tree,
                remote_drift=remote_drift,
                vcs_commit_id=vcs_commit_id,
            )

    async def _mirror_push(
        self,
        session: AsyncSession,
        project_id: str,
        user_id: str,
        message: str,
        repository: GitRepository | None,
    ) -> str | None:
        """Record the pushed state as a commit on main. Failures never undo the push."""
        try:
            main = await init_project(session, project_id)
            await sync_from_main_db(session, project_id, main.id)
            mirrored = await commit(
                session,
                main.id,
                user_id,
                message,
                is_remote=True,
                source=CommitSource.SYNC_PUSH,
            )
            if repository is not None:
                repository.last_push_commit_id = mirrored.id
                await session.commit()
            return mirrored.id
        except Exception as exc:
            await session.rollback()
            logger.warning("Failed to create VCS commit after push for %s: %s", project_id, exc)
            await self._notify_mirror_failure(
                MirrorFailure(project_id=project_id, operation="push", error=exc)
            )
            return None

    # Pull

    async def pull_from_remote(
        self,
        project_id: str,
        user_id: str,
        provider_id: str,
        token: str | None,
        *,
        repo: str,
        branch: str | None = None,
        patterns: list[str] | None = None,
    ) -> PullOutcome:
        """Apply remote file contents to main and the live files.

        Files whose content already matches are skipped, so pulling right after
        a push creates no commit.
        """
        client = await self.get_client(provider_id, token)
        target_branch = await self._resolve_branch(project_id, branch)
        async with self._lock(project_id):
            return await self._pull_locked(
                client, project_id, user_id, repo, target_branch, patterns
            )

    async def _pull_locked(
        self,
        client: GitProviderClient,
        project_id: str,
        user_id: str,
        repo: str,
        branch: str,
        patterns: list[str] | None,
    ) -> PullOutcome:
        result = await client.pull_files(
            PullRequest(
                repo=repo,
                branch=branch,
                patterns=list(patterns or self.settings.sync_file_patterns),
            )
        )
        if not result.files:
            logger.info("Nothing to pull from %s@%s", repo, branch)
            return PullOutcome(files_count=0, commit_id="")

        async with self.session_factory() as session:
            main = await get_main_branch(session, project_id)
            if main is None:
                raise NotFoundError(f"Project {project_id} has no main branch")

            folders = (
                (await session.execute(select(Folder).where(Folder.project_id == project_id)))
                .scalars()
                .all()
            )
            folder_ids = {path: fid for fid, path in build_folder_paths(folders).items()}

            changed = 0
            for entry in result.files:
                if not is_synced_path(entry.path):
                    logger.debug("Skipping non-process file %s", entry.path)
                    continue
                folder_path, name, type_ = split_repository_path(entry.path)
                folder_id = await _ensure_folder(session, project_id, folder_path, folder_ids)

                live = (
                    await session.execute(
                        select(File)
                        .where(
                            File.project_id == project_id,
                            File.name == name,
                            File.type == type_,
                            folder_clause(File.folder_id, folder_id),
                        )
                        .limit(1)
                    )
                ).scalar_one_or_none()
                if live is not None and (live.xml or "") == entry.content:
                    continue

                working_id = (
                    await session.execute(
                        select(WorkingFile.id)
                        .where(
                            WorkingFile.branch_id == main.id,
                            WorkingFile.name == name,
                            WorkingFile.type == type_,
                            WorkingFile.is_deleted.is_(False),
                            folder_clause(WorkingFile.folder_id, folder_id),
                        )
                        .limit(1)
                    )
                ).scalar_one_or_none()
                await save_file(
                    session, main.id, project_id, working_id, name, type_, entry.content, folder_id
                )

                now = now_iso()
                if live is not None:
                    live.xml = entry.content
                    live.updated_at = now
                else:
                    session.add(
                        File(
                            project_id=project_id,
                            folder_id=folder_id,
                            name=name,
                            type=type_,
                            xml=entry.content,
                            created_at=now,
                            updated_at=now,
                        )
                    )
                await session.commit()
                changed += 1

            commit_id = ""
            if changed:
                pulled = await commit(
                    session,
                    main.id,
                    user_id,
                    result.commit.message or f"Pull from remote: {repo}@{branch}",
                    is_remote=True,
                    source=CommitSource.SYNC_PULL,
                )
                commit_id = pulled.id

            repository = await get_repository(session, project_id)
            if repository is not None:
                repository.last_sync_at = now_iso()
                await session.commit()

        logger.info(
            "Pulled %d changed file(s) from %s@%s into project %s",
            changed,
            repo,
            branch,
            project_id,
        )
        return PullOutcome(files_count=changed, commit_id=commit_id)

    # Sync

    async def sync_with_remote(
        self,
        project_id: str,
        user_id: str,
        provider_id: str,
        token: str | None,
        *,
        repo: str,
        branch: str | None = None,
        direction: str = "both",
        message: str | None = None,
    ) -> SyncOutcome:
        """Pull, then push, under one hold of the project lock."""
        if direction not in SYNC_DIRECTIONS:
            raise ValueError(f"Invalid sync direction: {direction!r}")

        client = await self.get_client(provider_id, token)
        target_branch = await self._resolve_branch(project_id, branch)
        pulled = False
        files_changed = 0
        push_result: PushResult | None = None

        async with self._lock(project_id):
            if direction in ("pull", "both"):
                outcome = await self._pull_locked(
                    client, project_id, user_id, repo, target_branch, None
                )
                pulled = True
                files_changed = outcome.files_count
            if direction in ("push", "both"):
                try:
                    push_result = await self._push_locked(
                        client, project_id, repo, target_branch, message, user_id
                    )
                except NothingToPushError:
                    if direction == "push":
                        raise
                    logger.info("Sync of project %s had nothing to push", project_id)

        return SyncOutcome(
            pushed=push_result is not None and push_result.commit is not None,
            pulled=pulled,
            files_changed=files_changed,
            push=push_result,
        )

    async def sync_project(
        self, project_id: str, user_id: str, *, direction: str = "both", message: str | None = None
    ) -> SyncOutcome:
        """Sync a project through its stored repository link and the user's token."""
        async with self.session_factory() as session:
            repository = await get_repository(session, project_id)
            if repository is None:
                raise NotFoundError(f"Project {project_id} is not connected to a repository")
            token = await get_access_token(
                session, user_id, repository.provider_id, self.settings.secret_key
            )
        return await self.sync_with_remote(
            project_id,
            user_id,
            repository.provider_id,
            token,
            repo=repository.full_name,
            branch=repository.default_branch,
            direction=direction,
            message=message,
        )


async def get_repository(session: AsyncSession, project_id: str) -> GitRepository | None:
    stmt = select(GitRepository).where(GitRepository.project_id == project_id)
    return (await session.execute(stmt)).scalar_one_or_none()


async def _load_pushable_files(session: AsyncSession, project_id: str) -> list[ManifestFile]:
    folders = (
        (await session.execute(select(Folder).where(Folder.project_id == project_id)))
        .scalars()
        .all()
    )
    folder_paths = build_folder_paths(folders)
    rows = (
        (
            await session.execute(
                select(File).where(
                    File.project_id == project_id,
                    File.type.in_(SYNCED_FILE_TYPES),
                    File.xml.is_not(None),
                )
            )
        )
        .scalars()
        .all()
    )
    return [
        render_file(folder_paths.get(row.folder_id or "", ""), row.name, row.type, row.xml or "")
        for row in rows
    ]


async def _ensure_folder(
    session: AsyncSession, project_id: str, folder_path: str, folder_ids: dict[str, str]
) -> str | None:
    """Return the id of the folder at ``folder_path``, creating missing parents first."""
    if not folder_path:
        return None
    if folder_path in folder_ids:
        return folder_ids[folder_path]
    parent_path, _, name = folder_path.rpartition("/")
    parent_id = await _ensure_folder(session, project_id, parent_path, folder_ids)
    now = now_iso()
    folder = Folder(
        project_id=project_id,
        parent_folder_id=parent_id,
        name=name,
        created_at=now,
        updated_at=now,
    )
    session.add(folder)
    await session.flush()
    folder_ids[folder_path] = folder.id
    logger.debug("Created folder %s for project %s", folder_path, project_id)
    return folder.id
