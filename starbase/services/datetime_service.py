"""Datetime helpers: lax parsing of remote timestamps, strict ISO output."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pendulum
from pendulum.parsing.exceptions import ParserError


def parse_datetime(value: str | datetime, default_tz: str = "UTC") -> datetime:
    """Parse a lax datetime string into a timezone-aware datetime.

    Accepts ISO 8601 variants as emitted by git (``%cI``) and provider APIs.
    Missing timezone defaults to default_tz. Raises ValueError on garbage.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            tz = pendulum.timezone(default_tz)
            value = value.replace(tzinfo=tz)  # type: ignore[arg-type]
        return value

    try:
        parsed = pendulum.parse(value.strip(), tz=default_tz, strict=False)
    except ParserError as exc:
        raise ValueError(f"Invalid datetime: {value!r}") from exc
    if not isinstance(parsed, pendulum.DateTime):
        parsed = pendulum.datetime(
            parsed.year, parsed.month, parsed.day, tz=default_tz  # type: ignore[union-attr]
        )
    return parsed  # type: ignore[return-value]


def now_utc() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


def format_iso(dt: datetime) -> str:
    """Format datetime as ISO 8601 for storage and JSON serialization."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def now_iso() -> str:
    """Current UTC time as stored in timestamp columns."""
    return format_iso(now_utc())


def iso_after(seconds: float) -> str:
    """ISO timestamp ``seconds`` from now."""
    return format_iso(now_utc() + timedelta(seconds=seconds))
