"""Lexical scanner for search queries.

The grammar is a single alternation tried left to right at each position,
most specific first.  Operator-bearing and quoted forms must come before
the generic ``key:value`` and bare-term fallbacks, otherwise
``duration_ms:>100`` would lex as ``duration_ms`` followed by ``100``.
Characters no alternative accepts are skipped.
"""
from __future__ import annotations

import re

_KEY = r"[\w.-]+"
_VALUE = r"[\w.-]+"
_QUOTED = r'"[^"]*"'
_OP = r"(?:>=|<=|>|<)"

LEXEME_RE = re.compile(
    rf"""
      -{_KEY}:{_QUOTED}       # -key:"quoted value"
    | {_KEY}:{_QUOTED}        # key:"quoted value"
    | -{_QUOTED}              # -"negated phrase"
    | {_QUOTED}               # "quoted phrase"
    | -{_KEY}:{_OP}{_VALUE}   # -key:>=value
    | {_KEY}:{_OP}{_VALUE}    # key:>=value
    | -{_KEY}:{_VALUE}        # -key:value
    | {_KEY}:{_VALUE}         # key:value
    | -{_VALUE}               # -term
    | {_VALUE}                # term
    """,
    re.VERBOSE,
)

QUOTED_PAIR_RE = re.compile(rf"^{_KEY}:{_QUOTED}$")
OPERATOR_PAIR_RE = re.compile(rf"^{_KEY}:{_OP}{_VALUE}$")
BARE_PAIR_RE = re.compile(rf"^{_KEY}:{_VALUE}$")


def tokenize(query: str) -> list[str]:
    """Split a trimmed query into lexemes, in order of appearance."""
    return LEXEME_RE.findall(query.strip())
