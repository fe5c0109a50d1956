"""Search query compiler: free text in, typed tokens out.

Supported syntax (tokens combine with AND)::

    error                      term, matches message or any metadata value
    "error in module"          exact phrase
    -oban   -"easypost msg"    exclusions
    user_id:123                metadata equality
    duration_ms:>100           metadata comparison (>, >=, <, <=)
    -level:debug               negated filter
    level:err                  level pseudo-field (aliases accepted)
    timestamp:>=-1h            timestamp pseudo-field
    source:"api*"              source pseudo-field, substring / wildcard

Parsing never fails.  Fragments that cannot be classified (unknown level,
unparseable timestamp, empty quotes) are dropped one by one and the rest
of the query still applies.
"""
from __future__ import annotations

import re
from datetime import datetime

from .datetimes import parse_instant
from .lexer import BARE_PAIR_RE, OPERATOR_PAIR_RE, QUOTED_PAIR_RE, tokenize
from .tokens import (
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

# Level spellings accepted after ``level:``, lower-cased
LEVEL_ALIASES: dict[str, str] = {
    "debug": "debug",
    "dbg": "debug",
    "info": "info",
    "inf": "info",
    "warning": "warning",
    "warn": "warning",
    "wrn": "warning",
    "error": "error",
    "err": "error",
}

# Longest prefix first so ">=" is not read as ">"
_OPERATOR_PREFIXES: list[tuple[str, Operator]] = [
    (">=", Operator.GTE),
    ("<=", Operator.LTE),
    (">", Operator.GT),
    ("<", Operator.LT),
]

_ESCAPED_QUOTE_RE = re.compile(r'\\"')


def unquote(value: str) -> str:
    """Trim whitespace and surrounding quotes, then unescape ``\\"``."""
    return _ESCAPED_QUOTE_RE.sub('"', value.strip().strip('"'))


def extract_operator(value: str) -> tuple[Operator, str]:
    for prefix, operator in _OPERATOR_PREFIXES:
        if value.startswith(prefix):
            return operator, value[len(prefix):]
    return Operator.EQ, value


def _is_pair(lexeme: str) -> bool:
    return bool(
        QUOTED_PAIR_RE.match(lexeme)
        or OPERATOR_PAIR_RE.match(lexeme)
        or BARE_PAIR_RE.match(lexeme)
    )


def _classify_pair(pair: str, negated: bool, now: datetime | None) -> Token | None:
    key, _, raw_value = pair.partition(":")
    if not key:
        return None
    operator, comparand = extract_operator(raw_value)
    field = key.lower()

    if field == "level":
        level = LEVEL_ALIASES.get(unquote(comparand).lower())
        if level is None:
            return None
        return ExcludeLevelFilter(level) if negated else LevelFilter(level)

    if field == "timestamp":
        instant = parse_instant(unquote(comparand), now=now)
        if instant is None:
            return None
        if negated:
            return ExcludeTimestampFilter(operator, instant)
        return TimestampFilter(operator, instant)

    if field == "source":
        # No operator semantics: a stray ">" stays part of the pattern
        pattern = unquote(raw_value)
        return ExcludeSourceFilter(pattern) if negated else SourceFilter(pattern)

    value = unquote(comparand)
    if negated:
        return ExcludeMetadataFilter(key, operator, value)
    return MetadataFilter(key, operator, value)


def _classify_phrase(lexeme: str, negated: bool) -> Token | None:
    text = unquote(lexeme)
    if not text:
        return None
    return ExcludePhrase(text) if negated else Phrase(text)


def classify(lexeme: str, now: datetime | None = None) -> Token | None:
    """Turn one lexeme into a token, or None when it should be dropped."""
    negated = lexeme.startswith("-")
    body = lexeme[1:] if negated else lexeme

    if _is_pair(body):
        return _classify_pair(body, negated, now)
    if body.startswith('"') and body.endswith('"') and len(body) >= 2:
        return _classify_phrase(body, negated)
    if not body:
        return None
    return Exclude(body) if negated else Term(body)


def parse(query: str | None, now: datetime | None = None) -> list[Token]:
    """Compile a search query into an ordered list of tokens.

    ``now`` anchors relative timestamps (``today``, ``-1h``); it defaults
    to the current UTC time.  Never raises: ``None``, empty and
    whitespace-only queries yield ``[]``.

    >>> parse("error user_id:123 -debug")
    [Term(text='error'), MetadataFilter(key='user_id', operator=<Operator.EQ: 'eq'>, value='123'), Exclude(text='debug')]
    """
    if not query or not query.strip():
        return []
    tokens: list[Token] = []
    for lexeme in tokenize(query):
        token = classify(lexeme, now=now)
        if token is not None:
            tokens.append(token)
    return tokens


def escape_like(term: str) -> str:
    """Escape LIKE/ILIKE wildcards and wrap the term in ``%...%``.

    For stores that compile tokens to SQL.

    >>> escape_like("100%")
    '%100\\\\%%'
    """
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"
