"""Clock abstraction so evaluation time can be driven by tests."""
from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    def now(self) -> datetime:
        """Current time, tz-aware UTC."""
        ...


class SystemClock:
    """Wall-clock UTC, truncated to whole seconds like stored cursors."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(microsecond=0)


class ManualClock:
    """A clock that only moves when told to.

    Usage::

        clock = ManualClock(datetime(2025, 8, 12, tzinfo=timezone.utc))
        evaluator.tick()
        clock.advance(seconds=3600)
        evaluator.tick()
    """

    def __init__(self, start: datetime | None = None) -> None:
        start = start or datetime.now(timezone.utc).replace(microsecond=0)
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        self._now = start
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def advance(self, **delta: float) -> datetime:
        """Move forward by ``timedelta(**delta)`` and return the new time."""
        with self._lock:
            self._now += timedelta(**delta)
            return self._now

    def set(self, value: datetime) -> None:
        with self._lock:
            self._now = value
