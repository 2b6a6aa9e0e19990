"""Authentication service: JWT access tokens issued for acting users."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from jose import JWTError, jwt

from starbase.services.datetime_service import now_utc

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


def create_access_token(data: dict[str, Any], secret_key: str, expires_minutes: int = 15) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    to_encode.update({"exp": now_utc() + timedelta(minutes=expires_minutes), "type": "access"})
    return str(jwt.encode(to_encode, secret_key, algorithm=ALGORITHM))


def decode_access_token(token: str, secret_key: str) -> dict[str, Any] | None:
    """Decode and validate a JWT access token."""
    try:
        payload: dict[str, Any] = jwt.decode(token, secret_key, algorithms=[ALGORITHM])
        if payload.get("type") != "access":
            return None
        return payload
    except JWTError:
        logger.debug("Failed to decode access token", exc_info=True)
        return None


def get_token_subject(token: str, secret_key: str) -> str | None:
    """User id carried in an access token's ``sub`` claim.

    The identity provider owns users; any non-empty string subject is accepted
    as the acting user id.
    """
    payload = decode_access_token(token, secret_key)
    if payload is None:
        return None
    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        return None
    return subject
