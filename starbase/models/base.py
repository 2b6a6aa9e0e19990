"""Declarative base and id generation for ORM models."""

from __future__ import annotations

import uuid

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all Starbase models."""


def new_id() -> str:
    """Return a new random string identifier."""
    return str(uuid.uuid4())
