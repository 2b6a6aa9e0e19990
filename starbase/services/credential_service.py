"""Per-user provider credentials."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select

from starbase.exceptions import InternalServerError, NotFoundError
from starbase.models.git import GitCredential, GitProvider
from starbase.services.crypto_service import decrypt_token, encrypt_token
from starbase.services.datetime_service import now_iso

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


async def store_token(
    session: AsyncSession, user_id: str, provider_id: str, token: str, secret_key: str
) -> None:
    """Encrypt and store (or replace) a user's token for a provider."""
    if not token.strip():
        raise ValueError("Access token must not be empty")
    if await session.get(GitProvider, provider_id) is None:
        raise NotFoundError(f"Git provider not found: {provider_id}")

    now = now_iso()
    stmt = select(GitCredential).where(
        GitCredential.user_id == user_id, GitCredential.provider_id == provider_id
    )
    row = (await session.execute(stmt)).scalar_one_or_none()
    encrypted = encrypt_token(token, secret_key)
    if row is None:
        session.add(
            GitCredential(
                user_id=user_id,
                provider_id=provider_id,
                access_token=encrypted,
                created_at=now,
                updated_at=now,
            )
        )
    else:
        row.access_token = encrypted
        row.updated_at = now
    await session.commit()
    logger.info("Stored access token for user %s on provider %s", user_id, provider_id)


async def get_access_token(
    session: AsyncSession, user_id: str, provider_id: str, secret_key: str
) -> str | None:
    stmt = select(GitCredential.access_token).where(
        GitCredential.user_id == user_id, GitCredential.provider_id == provider_id
    )
    ciphertext = (await session.execute(stmt)).scalar_one_or_none()
    if ciphertext is None:
        return None
    try:
        return decrypt_token(ciphertext, secret_key)
    except ValueError as exc:
        raise InternalServerError(
            f"Stored token for user {user_id} on provider {provider_id} cannot be decrypted"
        ) from exc
