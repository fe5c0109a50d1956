"""Log store contract and an in-memory implementation.

The evaluator only needs four read primitives plus ``max_id`` for alert
baselines.  ``InMemoryLogStore`` answers them by running the predicate
applier over its records; a SQL-backed store would compile the same
tokens into a WHERE clause instead.
"""
from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Any, Iterable, Protocol, Sequence, runtime_checkable

from ..query.tokens import Token
from ..search.predicates import build_chain
from .records import LogRecord, normalize_level


@runtime_checkable
class LogStore(Protocol):
    """Read side of the log store, as consumed by the alert evaluator."""

    def first_match_after(self, after_id: int | None, tokens: Sequence[Token]) -> LogRecord | None:
        """Earliest record with ``id > after_id`` matching every token."""
        ...

    def last_match_after(self, after_id: int | None, tokens: Sequence[Token]) -> LogRecord | None:
        """Latest record with ``id > after_id`` matching every token."""
        ...

    def count_matches_since(self, cutoff: datetime, tokens: Sequence[Token]) -> int:
        """Number of records with ``timestamp >= cutoff`` matching every token."""
        ...

    def max_id(self) -> int | None:
        """Highest id currently stored, or None when empty."""
        ...


class InMemoryLogStore:
    """Thread-safe, append-only log store kept in a Python list.

    Ids start at 1 and increase by one per appended record, so ascending id
    order is insertion order.

    Usage::

        store = InMemoryLogStore()
        store.append("api", level="error", message="upstream timeout")
        store.first_match_after(None, parse("level:error"))
    """

    def __init__(self, records: Iterable[LogRecord] = ()) -> None:
        self._lock = threading.Lock()
        self._records: list[LogRecord] = []
        self._next_id = 1
        for record in records:
            self.add(record)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add(self, record: LogRecord) -> LogRecord:
        """Store a pre-built record; its id must exceed every stored id."""
        with self._lock:
            if record.id < self._next_id:
                raise ValueError(f"log id {record.id} is not greater than {self._next_id - 1}")
            self._records.append(record)
            self._next_id = record.id + 1
        return record

    def append(
        self,
        source: str,
        *,
        message: str = "",
        level: str = "info",
        timestamp: datetime | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> LogRecord:
        """Assign the next id and store a new record."""
        ts = timestamp or datetime.now(timezone.utc)
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        with self._lock:
            record = LogRecord(
                id=self._next_id,
                timestamp=ts,
                level=normalize_level(level),
                message=message,
                source=source,
                metadata=dict(metadata or {}),
            )
            self._records.append(record)
            self._next_id += 1
        return record

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _snapshot(self) -> list[LogRecord]:
        with self._lock:
            return list(self._records)

    def search(self, tokens: Sequence[Token], limit: int | None = None) -> list[LogRecord]:
        """All records matching every token, ascending by id."""
        chain = build_chain(tokens)
        out: list[LogRecord] = []
        for record in chain.apply(self._snapshot()):
            out.append(record)
            if limit is not None and len(out) >= limit:
                break
        return out

    def first_match_after(self, after_id: int | None, tokens: Sequence[Token]) -> LogRecord | None:
        chain = build_chain(tokens)
        floor = after_id if after_id is not None else 0
        for record in self._snapshot():
            if record.id > floor and chain.matches(record):
                return record
        return None

    def last_match_after(self, after_id: int | None, tokens: Sequence[Token]) -> LogRecord | None:
        chain = build_chain(tokens)
        floor = after_id if after_id is not None else 0
        for record in reversed(self._snapshot()):
            if record.id <= floor:
                break
            if chain.matches(record):
                return record
        return None

    def count_matches_since(self, cutoff: datetime, tokens: Sequence[Token]) -> int:
        chain = build_chain(tokens)
        return sum(1 for r in self._snapshot() if r.timestamp >= cutoff and chain.matches(r))

    def max_id(self) -> int | None:
        with self._lock:
            return self._records[-1].id if self._records else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
