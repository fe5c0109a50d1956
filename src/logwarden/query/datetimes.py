"""Datetime parsing for the ``timestamp:`` pseudo-field.

Accepted forms, tried in order:

    today / yesterday        midnight UTC of the current / previous day
    -<N>m|h|d|w              N minutes, hours, days or weeks before now
    YYYY-MM-DD               ISO-8601 date, midnight UTC
    ISO-8601 datetime        e.g. 2025-08-12T10:30:00Z, 2025-08-12 10:30
    flexible layouts         see _FLEXIBLE_FORMATS

Anything without an explicit zone is taken as UTC.  Unparseable input
returns None; the caller drops the token.
"""
from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone

from .tokens import TIMESTAMP_LAYOUT

_RELATIVE_RE = re.compile(r"^-(\d{1,9})([mhdw])$")

_RELATIVE_UNITS: dict[str, str] = {
    "m": "minutes",
    "h": "hours",
    "d": "days",
    "w": "weeks",
}

# Tried in order after the ISO parsers give up
_FLEXIBLE_FORMATS: list[str] = [
    TIMESTAMP_LAYOUT,
    "%Y%m%d",
    "%Y/%m/%d",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d %H:%M",
    "%d/%b/%Y:%H:%M:%S %z",      # Apache Combined
    "%d/%b/%Y",
    "%a, %d %b %Y %H:%M:%S %z",  # RFC 2822
    "%a, %d %b %Y %H:%M:%S",
    "%d %b %Y %H:%M:%S",
    "%d %b %Y",
    "%b %d %Y %H:%M:%S",
    "%b %d %Y",
    "%b %d, %Y",
    "%B %d %Y",
    "%B %d, %Y",
    "%d %B %Y",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y",
]


def utc_now() -> datetime:
    """Current UTC time truncated to whole seconds."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def start_of_day(value: datetime) -> datetime:
    """Midnight UTC of the day containing ``value``."""
    day = value.astimezone(timezone.utc).date()
    return datetime(day.year, day.month, day.day, tzinfo=timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes; leave aware ones untouched."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _parse_relative(value: str, now: datetime) -> datetime | None:
    match = _RELATIVE_RE.match(value)
    if match is None:
        return None
    try:
        amount = int(match.group(1))
        return now - timedelta(**{_RELATIVE_UNITS[match.group(2)]: amount})
    except (OverflowError, ValueError):
        return None


def _parse_iso(value: str) -> datetime | None:
    try:
        day = date.fromisoformat(value)
    except ValueError:
        pass
    else:
        return datetime(day.year, day.month, day.day, tzinfo=timezone.utc)

    # fromisoformat only learned the trailing "Z" in 3.11
    candidate = value[:-1] + "+00:00" if value.endswith(("Z", "z")) else value
    try:
        return ensure_utc(datetime.fromisoformat(candidate))
    except ValueError:
        return None


def _parse_flexible(value: str) -> datetime | None:
    for fmt in _FLEXIBLE_FORMATS:
        try:
            parsed = datetime.strptime(value, fmt)
        except ValueError:
            continue
        if fmt == TIMESTAMP_LAYOUT:
            return parsed.replace(tzinfo=timezone.utc)
        return ensure_utc(parsed)
    return None


def parse_instant(value: str, now: datetime | None = None) -> datetime | None:
    """Parse a timestamp comparand into an aware UTC-based datetime.

    ``now`` anchors ``today``, ``yesterday`` and relative offsets; it
    defaults to the current UTC time.
    """
    value = value.strip()
    if not value:
        return None
    now = ensure_utc(now) if now is not None else utc_now()
    lowered = value.lower()

    if lowered == "today":
        return start_of_day(now)
    if lowered == "yesterday":
        return start_of_day(now - timedelta(days=1))
    if lowered.startswith("-"):
        return _parse_relative(lowered, now)

    return _parse_iso(value) or _parse_flexible(value)
