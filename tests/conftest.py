"""Shared test fixtures for Starbase VCS."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from starbase.config import Settings
from starbase.main import create_app
from starbase.models import Base, File, Folder, GitProvider, GitRepository, Project
from starbase.providers.base import (
    FileEntry,
    PullRequest,
    PullResult,
    PushRequest,
    RemoteBranch,
    RemoteCommit,
    TreeEntry,
    matches_any,
)
from starbase.services.auth_service import create_access_token
from starbase.services.datetime_service import now_iso
from starbase.services.hashing import hash_content
from starbase.services.remote_git_service import RemoteGitService

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Awaitable, Callable
    from pathlib import Path

TEST_SECRET_KEY = "test-secret-key-with-at-least-32-characters"

BPMN_TEMPLATE = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    '<bpmn:definitions xmlns:bpmn="http://www.omg.org/spec/BPMN/20100524/MODEL">'
    '<bpmn:process id="{name}" isExecutable="true"/></bpmn:definitions>\n'
)


class FakeProviderClient:
    """In-memory provider: one repository, branches pointing at file maps."""

    type = "local"

    def __init__(self) -> None:
        self.heads: dict[str, str] = {}
        self.snapshots: dict[str, dict[str, str]] = {}
        self.commits: dict[str, RemoteCommit] = {}
        self.push_requests: list[PushRequest] = []
        self.get_branches_error: Exception | None = None
        self.push_error: Exception | None = None
        self.closed = False

    def files(self, branch: str = "main") -> dict[str, str]:
        sha = self.heads.get(branch)
        return dict(self.snapshots[sha]) if sha else {}

    def seed(self, files: dict[str, str], *, branch: str = "main", message: str = "seed") -> str:
        """Commit directly on the remote, as another client would."""
        return self._commit(branch, files, message)

    def _commit(self, branch: str, files: dict[str, str], message: str) -> str:
        sha = hash_content(f"{len(self.commits)}:{message}:{sorted(files.items())}")[:40]
        self.snapshots[sha] = dict(files)
        self.commits[sha] = RemoteCommit(
            sha=sha, message=message, author="tester", date=datetime.now(UTC)
        )
        self.heads[branch] = sha
        return sha

    async def get_branches(self, repo: str) -> list[RemoteBranch]:
        if self.get_branches_error is not None:
            raise self.get_branches_error
        return [
            RemoteBranch(name=name, sha=sha, is_default=name == "main")
            for name, sha in self.heads.items()
        ]

    async def get_tree(self, repo: str, branch: str) -> list[TreeEntry]:
        return [TreeEntry(path=path, type="blob") for path in self.files(branch)]

    async def push_files(self, request: PushRequest) -> RemoteCommit:
        if self.push_error is not None:
            raise self.push_error
        self.push_requests.append(request)
        files = self.files(request.branch)
        for entry in request.files:
            files[entry.path] = entry.content
        for path in request.deletions:
            files.pop(path, None)
        sha = self._commit(request.branch, files, request.message)
        return self.commits[sha]

    async def pull_files(self, request: PullRequest) -> PullResult:
        sha = self.heads[request.branch]
        files = [
            FileEntry(path=path, content=content)
            for path, content in self.snapshots[sha].items()
            if matches_any(path, request.patterns)
        ]
        return PullResult(files=files, commit=self.commits[sha])

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Create test settings with temporary paths."""
    db_path = tmp_path / "test.db"
    return Settings(
        secret_key=TEST_SECRET_KEY,
        debug=True,
        database_url=f"sqlite+aiosqlite:///{db_path}",
        git_repos_dir=tmp_path / "repos",
    )


@pytest.fixture
async def db_engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine]:
    """Create a test database engine with the full schema."""
    engine = create_async_engine(
        test_settings.database_url,
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def project_id(db_session: AsyncSession) -> str:
    now = now_iso()
    project = Project(name="Order handling", created_at=now, updated_at=now)
    db_session.add(project)
    await db_session.commit()
    return project.id


@pytest.fixture
def make_folder(
    db_session: AsyncSession, project_id: str
) -> Callable[..., Awaitable[Folder]]:
    async def _make(name: str, parent_folder_id: str | None = None) -> Folder:
        now = now_iso()
        folder = Folder(
            project_id=project_id,
            parent_folder_id=parent_folder_id,
            name=name,
            created_at=now,
            updated_at=now,
        )
        db_session.add(folder)
        await db_session.commit()
        return folder

    return _make


@pytest.fixture
def make_file(db_session: AsyncSession, project_id: str) -> Callable[..., Awaitable[File]]:
    """Factory for live files; content defaults to a minimal BPMN document."""

    async def _make(
        name: str,
        xml: str | None = None,
        *,
        type_: str = "bpmn",
        folder_id: str | None = None,
    ) -> File:
        now = now_iso()
        row = File(
            project_id=project_id,
            folder_id=folder_id,
            name=name,
            type=type_,
            xml=xml if xml is not None else BPMN_TEMPLATE.format(name=name),
            created_at=now,
            updated_at=now,
        )
        db_session.add(row)
        await db_session.commit()
        return row

    return _make


@pytest.fixture
async def provider_id(db_session: AsyncSession) -> str:
    provider = GitProvider(type="local", name="Local repositories", created_at=now_iso())
    db_session.add(provider)
    await db_session.commit()
    return provider.id


@pytest.fixture
async def repository(db_session: AsyncSession, project_id: str, provider_id: str) -> GitRepository:
    now = now_iso()
    row = GitRepository(
        project_id=project_id,
        provider_id=provider_id,
        remote_url="file:///acme/processes",
        namespace="acme",
        repository_name="processes",
        default_branch="main",
        created_at=now,
        updated_at=now,
    )
    db_session.add(row)
    await db_session.commit()
    return row


@pytest.fixture
def fake_client() -> FakeProviderClient:
    return FakeProviderClient()


@pytest.fixture
async def remote_service(
    session_factory: async_sessionmaker[AsyncSession],
    test_settings: Settings,
    fake_client: FakeProviderClient,
) -> AsyncGenerator[RemoteGitService]:
    async with RemoteGitService(
        session_factory, test_settings, client_factory=lambda _type, _settings: fake_client
    ) as service:
        yield service


@pytest.fixture
async def client(
    test_settings: Settings,
    db_engine: AsyncEngine,
    session_factory: async_sessionmaker[AsyncSession],
    fake_client: FakeProviderClient,
) -> AsyncGenerator[AsyncClient]:
    """HTTP test client with app state set up as the lifespan would.

    ASGITransport does not run the lifespan, so the engine, session factory and
    sync service are attached by hand.
    """
    app = create_app(test_settings)
    test_settings.validate_runtime_security()
    app.state.engine = db_engine
    app.state.session_factory = session_factory
    service = RemoteGitService(
        session_factory, test_settings, client_factory=lambda _type, _settings: fake_client
    )
    app.state.remote_git_service = service

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    await service.close()


@pytest.fixture
def auth_headers() -> dict[str, str]:
    token = create_access_token({"sub": "alice"}, TEST_SECRET_KEY)
    return {"Authorization": f"Bearer {token}"}
