"""Check-in interval parsing — pure business logic.

Converts duration strings such as "2 days" or "1 Week" into milliseconds.
Month is 30 days and year is 365 days; there is no calendar arithmetic.

Unrecognised input yields 0 rather than raising. Callers treat 0 as
"never overdue by duration".
"""

from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

_SECOND_MS = 1000
_MINUTE_MS = 60 * _SECOND_MS
_HOUR_MS = 60 * _MINUTE_MS
_DAY_MS = 24 * _HOUR_MS

UNIT_MS: dict[str, int] = {
    "second": _SECOND_MS,
    "minute": _MINUTE_MS,
    "hour": _HOUR_MS,
    "day": _DAY_MS,
    "week": 7 * _DAY_MS,
    "month": 30 * _DAY_MS,
    "year": 365 * _DAY_MS,
}

_INTERVAL_RE = re.compile(
    r"^\s*(\d+)\s+(second|minute|hour|day|week|month|year)s?\s*$",
    re.IGNORECASE,
)


def parse_interval(text: str | None) -> int:
    """Return the interval in milliseconds, or 0 if it cannot be parsed."""
    if not text:
        return 0
    match = _INTERVAL_RE.match(text)
    if match is None:
        logger.debug("Unparseable interval %r", text)
        return 0
    value = int(match.group(1))
    unit = match.group(2).lower()
    return value * UNIT_MS[unit]


def interval_unit(text: str) -> str | None:
    """Return the canonical unit of an interval string ("day"), or None."""
    match = _INTERVAL_RE.match(text or "")
    return match.group(2).lower() if match else None


def is_valid_interval(text: str | None) -> bool:
    return parse_interval(text) > 0


def format_interval(ms: int, unit: str) -> str:
    """Express a millisecond count in the given unit, e.g. (172800000, "day") → "2 days".

    Raises ValueError for an unknown unit or a value that is not a whole
    number of that unit.
    """
    unit = unit.lower().rstrip("s")
    if unit not in UNIT_MS:
        raise ValueError(f"Unknown interval unit: {unit!r}")
    if ms < 0:
        raise ValueError("Intervals cannot be negative")
    value, remainder = divmod(ms, UNIT_MS[unit])
    if remainder:
        raise ValueError(f"{ms} ms is not a whole number of {unit}s")
    return f"{value} {unit}" if value == 1 else f"{value} {unit}s"


def humanize_ms(ms: int) -> str:
    """Render a duration in the largest whole unit that fits, e.g. "3 hours".

    Months and years are skipped so "45 days" stays in days or weeks.
    """
    ms = abs(ms)
    for unit in ("week", "day", "hour", "minute"):
        size = UNIT_MS[unit]
        if ms >= size:
            value = ms // size
            return f"{value} {unit}" if value == 1 else f"{value} {unit}s"
    value = ms // _SECOND_MS
    return "1 second" if value == 1 else f"{value} seconds"
