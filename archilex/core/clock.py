"""UTC helpers. Every timestamp is stored in UTC."""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def normalize_now(now: Optional[datetime] = None) -> datetime:
    """Default to the current instant; naive values are taken as UTC."""
    if now is None:
        return utc_now()
    return as_utc(now)


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive values
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
