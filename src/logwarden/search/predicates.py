"""Predicate applier — turn compiled query tokens into record predicates.

Each token variant maps to one predicate; ``apply_tokens`` ANDs them onto
a FilterChain.  Text comparisons are case-insensitive throughout.
"""
from __future__ import annotations

import json
import math
import re
from datetime import datetime, timedelta, time, timezone
from typing import Any, Iterable

from ..query.tokens import (
    Exclude,
    ExcludeLevelFilter,
    ExcludeMetadataFilter,
    ExcludePhrase,
    ExcludeSourceFilter,
    ExcludeTimestampFilter,
    LevelFilter,
    MetadataFilter,
    Operator,
    Phrase,
    SourceFilter,
    Term,
    TimestampFilter,
    Token,
)
from ..store.records import LogRecord
from .filter_chain import FilterChain, Predicate

_MISSING = object()


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------


def _text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str, sort_keys=True)


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return None if math.isnan(number) else number


def lookup(metadata: dict[str, Any], key: str) -> Any:
    """Return ``metadata[key]``, walking nested objects for dotted keys.

    A literal key wins over a nested path.  Returns a sentinel when absent.
    """
    if key in metadata:
        return metadata[key]
    node: Any = metadata
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            return _MISSING
        node = node[part]
    return node


def _contains_text(record: LogRecord, needle: str) -> bool:
    needle = needle.lower()
    if needle in record.message.lower():
        return True
    return any(needle in _text(v).lower() for v in record.metadata.values())


def compare(actual: Any, operator: Operator, expected: str) -> bool:
    """Compare a metadata value against a query comparand.

    Numeric when both sides are numbers, otherwise lexical.  Equality on
    non-numeric values is a case-insensitive substring test.
    """
    if actual is None:
        return False
    left, right = _as_number(actual), _as_number(expected)
    if left is not None and right is not None:
        pair: tuple[Any, Any] = (left, right)
    else:
        if operator is Operator.EQ:
            return expected.lower() in _text(actual).lower()
        pair = (_text(actual), expected)
    a, b = pair
    if operator is Operator.EQ:
        return a == b
    if operator is Operator.GT:
        return a > b
    if operator is Operator.GTE:
        return a >= b
    if operator is Operator.LT:
        return a < b
    if operator is Operator.LTE:
        return a <= b
    raise ValueError(f"unknown operator: {operator!r}")


def _metadata_matches(record: LogRecord, key: str, operator: Operator, value: str) -> bool:
    actual = lookup(record.metadata, key)
    if actual is _MISSING:
        return False
    return compare(actual, operator, value)


def _level_matches(record: LogRecord, level: str) -> bool:
    if record.level == level:
        return True
    meta_level = record.metadata.get("level")
    return isinstance(meta_level, str) and meta_level.lower() == level


def source_regex(pattern: str) -> re.Pattern[str]:
    """Compile a source pattern: ``*`` is a wildcard, the rest is literal."""
    body = ".*".join(re.escape(part) for part in pattern.split("*"))
    return re.compile(body, re.IGNORECASE)


def _source_matches(record: LogRecord, regex: re.Pattern[str]) -> bool:
    if regex.search(record.source):
        return True
    meta_source = record.metadata.get("source")
    return isinstance(meta_source, str) and bool(regex.search(meta_source))


def _timestamp_matches(record: LogRecord, operator: Operator, instant: datetime) -> bool:
    ts = record.timestamp
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    if operator is Operator.GT:
        return ts > instant
    if operator is Operator.GTE:
        return ts >= instant
    if operator is Operator.LT:
        return ts < instant
    if operator is Operator.LTE:
        return ts <= instant
    # eq: midnight means "that day", anything else "that second"
    utc = instant.astimezone(timezone.utc)
    span = timedelta(days=1) if utc.time() == time(0, 0) else timedelta(seconds=1)
    return instant <= ts < instant + span


# ---------------------------------------------------------------------------
# Token -> predicate
# ---------------------------------------------------------------------------


def predicate_for(token: Token) -> Predicate:
    """Return the record predicate for a single token."""
    if isinstance(token, (Term, Phrase)):
        text = token.text
        return lambda r: _contains_text(r, text)
    if isinstance(token, (Exclude, ExcludePhrase)):
        text = token.text
        return lambda r: not _contains_text(r, text)
    if isinstance(token, MetadataFilter):
        key, op, value = token.key, token.operator, token.value
        return lambda r: _metadata_matches(r, key, op, value)
    if isinstance(token, ExcludeMetadataFilter):
        key, op, value = token.key, token.operator, token.value
        return lambda r: not _metadata_matches(r, key, op, value)
    if isinstance(token, LevelFilter):
        level = token.level
        return lambda r: _level_matches(r, level)
    if isinstance(token, ExcludeLevelFilter):
        level = token.level
        return lambda r: not _level_matches(r, level)
    if isinstance(token, TimestampFilter):
        op, instant = token.operator, token.instant
        return lambda r: _timestamp_matches(r, op, instant)
    if isinstance(token, ExcludeTimestampFilter):
        op, instant = token.operator, token.instant
        return lambda r: not _timestamp_matches(r, op, instant)
    if isinstance(token, SourceFilter):
        regex = source_regex(token.pattern)
        return lambda r: _source_matches(r, regex)
    if isinstance(token, ExcludeSourceFilter):
        regex = source_regex(token.pattern)
        return lambda r: not _source_matches(r, regex)
    raise TypeError(f"not a query token: {token!r}")


def apply_tokens(chain: FilterChain, tokens: Iterable[Token]) -> FilterChain:
    """Narrow ``chain`` by every token (logical AND) and return it."""
    for token in tokens:
        chain.add(predicate_for(token))
    return chain


def build_chain(tokens: Iterable[Token]) -> FilterChain:
    return apply_tokens(FilterChain(), tokens)
