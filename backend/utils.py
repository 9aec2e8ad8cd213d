from datetime import datetime, timezone
from typing import Any, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_iso(value: datetime) -> str:
    """Format an instant as YYYY-MM-DDTHH:MM:SS+00:00 (lexically sortable)."""
    return ensure_utc(value).replace(microsecond=0).isoformat()


def parse_instant(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string (or datetime) into a UTC instant; None if unparseable."""
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str) or not value.strip():
        return None
    raw = value.strip()
    if raw.endswith("Z") or raw.endswith("z"):
        raw = raw[:-1] + "+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(raw))
    except (ValueError, OverflowError):
        return None
