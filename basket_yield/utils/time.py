"""Time utilities (UTC)."""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    Normalize to timezone-aware UTC.

    DB timestamps in this app are stored as naive UTC, so naive values are
    interpreted as UTC here.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_db(dt: datetime) -> datetime:
    """Convert to naive UTC for DB storage."""
    return to_utc(dt).replace(tzinfo=None)


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO timestamp (as written to the cache) back to aware UTC."""
    if not value:
        return None
    try:
        return to_utc(datetime.fromisoformat(value))
    except (TypeError, ValueError):
        return None


def from_unix(seconds: float) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)
