"""Typed tokens produced by the query compiler.

Every variant is a frozen dataclass so token lists compare by value and can
be used as dict keys.  The ``Token`` alias is the closed union consumed by
the predicate applier, which matches on it exhaustively.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, time, timezone
from enum import Enum
from typing import Iterable, Union

# Canonical severity levels, lowest first
LEVELS: tuple[str, ...] = ("debug", "info", "warning", "error")

# Values made only of these characters survive the lexer unquoted
_BARE_RE = re.compile(r"^[\w.-]+$")

# Compact UTC layout with no ':' so it lexes as a single bare value
TIMESTAMP_LAYOUT = "%Y%m%dT%H%M%SZ"


class Operator(str, Enum):
    """Comparison operator attached to metadata and timestamp filters."""

    EQ = "eq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"

    @property
    def symbol(self) -> str:
        return _SYMBOLS[self]


_SYMBOLS = {
    Operator.EQ: "",
    Operator.GT: ">",
    Operator.GTE: ">=",
    Operator.LT: "<",
    Operator.LTE: "<=",
}


@dataclass(frozen=True)
class Term:
    """Free-text match against the message or any metadata value."""

    text: str


@dataclass(frozen=True)
class Phrase:
    """Exact phrase, taken from a double-quoted fragment."""

    text: str


@dataclass(frozen=True)
class ExcludePhrase:
    text: str


@dataclass(frozen=True)
class Exclude:
    text: str


@dataclass(frozen=True)
class MetadataFilter:
    """Comparison against the metadata value stored under ``key``."""

    key: str
    operator: Operator
    value: str


@dataclass(frozen=True)
class ExcludeMetadataFilter:
    key: str
    operator: Operator
    value: str


@dataclass(frozen=True)
class LevelFilter:
    level: str


@dataclass(frozen=True)
class ExcludeLevelFilter:
    level: str


@dataclass(frozen=True)
class TimestampFilter:
    """Comparison against the record timestamp; ``instant`` is tz-aware."""

    operator: Operator
    instant: datetime


@dataclass(frozen=True)
class ExcludeTimestampFilter:
    operator: Operator
    instant: datetime


@dataclass(frozen=True)
class SourceFilter:
    """Substring (or ``*`` wildcard) match on the record source."""

    pattern: str


@dataclass(frozen=True)
class ExcludeSourceFilter:
    pattern: str


Token = Union[
    Term,
    Phrase,
    ExcludePhrase,
    Exclude,
    MetadataFilter,
    ExcludeMetadataFilter,
    LevelFilter,
    ExcludeLevelFilter,
    TimestampFilter,
    ExcludeTimestampFilter,
    SourceFilter,
    ExcludeSourceFilter,
]


# ---------------------------------------------------------------------------
# Canonical re-serialization
# ---------------------------------------------------------------------------


def _quote(value: str) -> str:
    return '"' + value.replace('"', '\\"') + '"'


def _value(value: str) -> str:
    return value if _BARE_RE.match(value) else _quote(value)


def _instant(value: datetime) -> str:
    value = value.astimezone(timezone.utc)
    if value.time() == time(0, 0):
        return value.date().isoformat()
    return value.strftime(TIMESTAMP_LAYOUT)


def serialize(token: Token) -> str:
    """Render a single token back into query syntax."""
    if isinstance(token, Term):
        return token.text
    if isinstance(token, Phrase):
        return _quote(token.text)
    if isinstance(token, ExcludePhrase):
        return "-" + _quote(token.text)
    if isinstance(token, Exclude):
        return "-" + token.text
    if isinstance(token, (MetadataFilter, ExcludeMetadataFilter)):
        sign = "-" if isinstance(token, ExcludeMetadataFilter) else ""
        if token.operator is Operator.EQ:
            return f"{sign}{token.key}:{_value(token.value)}"
        return f"{sign}{token.key}:{token.operator.symbol}{token.value}"
    if isinstance(token, (LevelFilter, ExcludeLevelFilter)):
        sign = "-" if isinstance(token, ExcludeLevelFilter) else ""
        return f"{sign}level:{token.level}"
    if isinstance(token, (TimestampFilter, ExcludeTimestampFilter)):
        sign = "-" if isinstance(token, ExcludeTimestampFilter) else ""
        return f"{sign}timestamp:{token.operator.symbol}{_instant(token.instant)}"
    if isinstance(token, (SourceFilter, ExcludeSourceFilter)):
        sign = "-" if isinstance(token, ExcludeSourceFilter) else ""
        return f"{sign}source:{_value(token.pattern)}"
    raise TypeError(f"not a query token: {token!r}")


def to_query(tokens: Iterable[Token]) -> str:
    """Join tokens into a query string that parses back to the same tokens."""
    return " ".join(serialize(t) for t in tokens)


def is_exclusion(token: Token) -> bool:
    """True for the negated variants."""
    return isinstance(
        token,
        (
            Exclude,
            ExcludePhrase,
            ExcludeMetadataFilter,
            ExcludeLevelFilter,
            ExcludeTimestampFilter,
            ExcludeSourceFilter,
        ),
    )
