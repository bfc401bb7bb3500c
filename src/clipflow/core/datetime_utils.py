"""UTC datetime utilities.

All timestamps are stored as ISO-8601 strings in UTC with microsecond
precision so that string comparison in SQL matches chronological order.
"""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_utc_iso(dt: datetime) -> str:
    """Format a datetime as a fixed-width ISO-8601 UTC string.

    Naive datetimes are assumed to already be UTC.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_iso_timestamp(timestamp: str) -> datetime:
    """Parse ISO-8601 timestamp, handling both Z and +00:00 suffixes.

    Args:
        timestamp: ISO-8601 timestamp string (e.g., "2024-01-15T10:30:00Z").

    Returns:
        Timezone-aware datetime object (always UTC if no offset specified).
    """
    normalized = timestamp.strip().replace("Z", "+00:00")
    dt = datetime.fromisoformat(normalized)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def resolve_timezone(name: str) -> ZoneInfo:
    """Look up an IANA timezone by name.

    Raises:
        ValueError: If the zone is unknown.
    """
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {name!r}") from e


def to_aware(value: datetime | str, tz_name: str = "UTC") -> datetime:
    """Interpret a user-supplied time in the given timezone.

    Strings are parsed as ISO-8601. A value that already carries an offset
    keeps it; a naive value is read as wall-clock time in ``tz_name``.

    Raises:
        ValueError: If the string cannot be parsed or the zone is unknown.
    """
    tz = resolve_timezone(tz_name)
    if isinstance(value, str):
        text = value.strip().replace("Z", "+00:00")
        try:
            value = datetime.fromisoformat(text)
        except ValueError as e:
            raise ValueError(f"Invalid time {text!r}: {e}") from e
    if value.tzinfo is None:
        value = value.replace(tzinfo=tz)
    return value


def calculate_duration_seconds(started_at: str, finished_at: str) -> int | None:
    """Calculate duration between two ISO timestamps.

    Returns:
        Duration in seconds, or None if parsing fails.
    """
    try:
        started = parse_iso_timestamp(started_at)
        finished = parse_iso_timestamp(finished_at)
        return int((finished - started).total_seconds())
    except (ValueError, TypeError):
        return None
