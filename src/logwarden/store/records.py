"""Log record shape shared by the predicate applier and log stores."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from ..query.datetimes import parse_instant
from ..query.tokens import LEVELS

# Forms parse_instant resolves against the current time
_RELATIVE_WORDS = ("today", "yesterday")


def normalize_level(level: object) -> str:
    """Map an arbitrary level string onto one of the canonical levels.

    ``warn`` becomes ``warning``; anything unrecognised becomes ``info``.
    """
    value = str(level or "").strip().lower()
    if value in LEVELS:
        return value
    if value == "warn":
        return "warning"
    return "info"


def parse_timestamp(raw: object) -> datetime | None:
    """Read a record timestamp: epoch seconds or an absolute date string.

    Relative forms (``today``, ``-1h``) are rejected so re-reading the same
    line always yields the same instant.
    """
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        try:
            return datetime.fromtimestamp(raw, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(raw, str):
        return None
    value = raw.strip()
    if value.lower() in _RELATIVE_WORDS or value.startswith("-"):
        return None
    return parse_instant(value)


@dataclass(frozen=True)
class LogRecord:
    """A stored log line.

    Attributes:
        id:        Unique, monotonically increasing store id.
        timestamp: When the event happened (tz-aware, UTC).
        level:     One of ``debug``, ``info``, ``warning``, ``error``.
        message:   Free-text body.
        source:    Name of the emitting application or host.
        metadata:  Arbitrary structured fields.
    """

    id: int
    timestamp: datetime
    level: str
    message: str
    source: str
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_entry(cls, record_id: int, entry: dict[str, Any]) -> "LogRecord":
        """Build a record from a parsed log-entry dict (e.g. one NDJSON line).

        ``timestamp``, ``level``, ``message`` and ``source`` are lifted into
        columns; every other key lands in ``metadata``.  Raises ValueError
        when the entry carries no usable timestamp.
        """
        rest = dict(entry)
        raw_ts = rest.pop("timestamp", None)
        timestamp = parse_timestamp(raw_ts)
        if timestamp is None:
            raise ValueError(f"no usable timestamp: {raw_ts!r}")
        return cls(
            id=record_id,
            timestamp=timestamp,
            level=normalize_level(rest.pop("level", None)),
            message=str(rest.pop("message", "") or ""),
            source=str(rest.pop("source", "") or ""),
            metadata=rest,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "level": self.level,
            "message": self.message,
            "source": self.source,
            "metadata": dict(self.metadata),
        }
