"""Composable filter chain for log records.

Filters are callables that accept a LogRecord and return bool.
Chains short-circuit on the first failing predicate (AND semantics).
"""
from __future__ import annotations

from typing import Callable, Iterable, Iterator

from ..store.records import LogRecord

Predicate = Callable[[LogRecord], bool]


class FilterChain:
    """Apply multiple predicates in sequence (logical AND).

    Usage::

        chain = FilterChain()
        chain.add(lambda r: r.level == "error")
        chain.add(lambda r: "timeout" in r.message)

        results = list(chain.apply(records))

    An empty chain accepts every record.
    """

    def __init__(self) -> None:
        self._predicates: list[Predicate] = []

    def add(self, predicate: Predicate) -> "FilterChain":
        """Append a predicate and return self for chaining."""
        self._predicates.append(predicate)
        return self

    def matches(self, record: LogRecord) -> bool:
        """Return True if all predicates accept the record."""
        return all(p(record) for p in self._predicates)

    def apply(self, records: Iterable[LogRecord]) -> Iterator[LogRecord]:
        """Yield records that pass every predicate."""
        for record in records:
            if self.matches(record):
                yield record

    # Allow combining two chains with &
    def __and__(self, other: "FilterChain") -> "FilterChain":
        combined = FilterChain()
        combined._predicates = self._predicates + other._predicates
        return combined

    def __len__(self) -> int:
        return len(self._predicates)

    def __repr__(self) -> str:
        return f"FilterChain({len(self._predicates)} predicates)"
