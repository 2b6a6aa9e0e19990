"""Remote git provider, credential, repository link and lock models."""

from __future__ import annotations

from sqlalchemy import ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from starbase.models.base import Base, new_id


class GitProvider(Base):
    """Configured remote git provider (``local``, ``github``, ...)."""

    __tablename__ = "git_providers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    base_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)


class GitCredential(Base):
    """Per-user access token for a provider, encrypted at rest."""

    __tablename__ = "git_credentials"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    provider_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("git_providers.id", ondelete="CASCADE"), nullable=False
    )
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (UniqueConstraint("user_id", "provider_id"),)


class GitRepository(Base):
    """Link between a project and its remote repository, plus sync state.

    ``last_pushed_manifest`` is the JSON text of a path -> SHA-256 map of the
    files confirmed pushed at ``last_commit_sha``.
    """

    __tablename__ = "git_repositories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    provider_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("git_providers.id", ondelete="CASCADE"), nullable=False
    )
    remote_url: Mapped[str] = mapped_column(Text, nullable=False)
    namespace: Mapped[str | None] = mapped_column(String, nullable=True)
    repository_name: Mapped[str] = mapped_column(String, nullable=False)
    default_branch: Mapped[str] = mapped_column(String, nullable=False, default="main")
    last_commit_sha: Mapped[str | None] = mapped_column(String(64), nullable=True)
    last_sync_at: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_pushed_manifest: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_pushed_manifest_updated_at: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_push_commit_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    connected_by_user_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[str] = mapped_column(Text, nullable=False)

    @property
    def full_name(self) -> str:
        """Repository name as understood by provider clients."""
        if self.namespace:
            return f"{self.namespace}/{self.repository_name}"
        return self.repository_name


class GitLock(Base):
    """Lease-based advisory lock serializing sync operations per project."""

    __tablename__ = "git_locks"

    project_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    holder: Mapped[str] = mapped_column(String, nullable=False)
    acquired_at: Mapped[str] = mapped_column(Text, nullable=False)
    expires_at: Mapped[str] = mapped_column(Text, nullable=False)
