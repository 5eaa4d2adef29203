from datetime import datetime, timezone

from bson import ObjectId
from bson.errors import InvalidId


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Make a naive datetime timezone-aware (UTC). Already-aware datetimes pass through.

    MongoDB hands back naive datetimes. Game start times read from a document
    must go through ensure_utc() before being compared with utcnow(),
    otherwise Python raises "can't compare offset-naive and offset-aware
    datetimes".
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def as_utc(dt: datetime | None) -> datetime | None:
    """None-safe UTC conversion for JSON serialization.

    Use at API response boundaries so naive datetimes from MongoDB serialize
    with a '+00:00' suffix and the browser does not read them as local time.
    """
    if dt is None:
        return None
    return ensure_utc(dt)


def parse_utc(value: str | datetime) -> datetime:
    """Parse an ISO 8601 string (with or without Z/offset) or datetime into UTC."""
    if isinstance(value, datetime):
        return ensure_utc(value)
    return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def parse_object_id(value: str) -> ObjectId | None:
    """Return an ObjectId for a 24-hex string, or None when the id is malformed."""
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None
