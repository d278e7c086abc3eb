"""UTC timestamp helpers. All stored timestamps are ISO-8601 in UTC."""

from __future__ import annotations

from datetime import datetime, timezone


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    """Render a datetime as a fixed-width UTC ISO string.

    Naive datetimes are assumed to be UTC. Fixed width keeps stored
    values comparable as plain strings.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_timestamp(raw: str | datetime) -> datetime:
    """Parse an ISO timestamp (a trailing "Z" is accepted) into aware UTC.

    Raises ValueError on malformed input.
    """
    if isinstance(raw, datetime):
        dt = raw
    else:
        text = raw.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
