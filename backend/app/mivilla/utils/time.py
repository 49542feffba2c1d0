"""UTC time helpers."""

from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Normalize to aware UTC.

    SQLite 读回的时间不带时区，这里统一按 UTC 解释。
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
