"""Tests for the query lexer, compiler and datetime parsing."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from logwarden.query.datetimes import ensure_utc, parse_instant, start_of_day
from logwarden.query.lexer import tokenize
from logwarden.query.parser import classify, escape_like, extract_operator, parse, unquote
from logwarden.query.tokens import (
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
    is_exclusion,
    serialize,
    to_query,
)

NOW = datetime(2025, 8, 12, 10, 30, 0, tzinfo=timezone.utc)
UTC = timezone.utc


# ---------------------------------------------------------------------------
# Lexer
# ---------------------------------------------------------------------------

class TestTokenize:
    def test_splits_on_whitespace(self) -> None:
        assert tokenize("error user_id:123 -debug") == ["error", "user_id:123", "-debug"]

    def test_operator_pair_is_one_lexeme(self) -> None:
        assert tokenize("duration_ms:>100") == ["duration_ms:>100"]

    def test_quoted_pair_keeps_spaces(self) -> None:
        assert tokenize('msg:"disk full" x') == ['msg:"disk full"', "x"]

    def test_negated_phrase(self) -> None:
        assert tokenize('-"easypost msg" ok') == ['-"easypost msg"', "ok"]

    def test_trims_input(self) -> None:
        assert tokenize("   error   ") == ["error"]

    def test_skips_unlexable_characters(self) -> None:
        assert tokenize("error ; !!") == ["error"]


# ---------------------------------------------------------------------------
# Compiler
# ---------------------------------------------------------------------------

class TestParse:
    @pytest.mark.parametrize("query", ["", "   ", "\t\n", None])
    def test_empty_queries_yield_nothing(self, query) -> None:
        assert parse(query) == []

    def test_mixed_query_in_order(self) -> None:
        assert parse("error user_id:123 -debug") == [
            Term("error"),
            MetadataFilter("user_id", Operator.EQ, "123"),
            Exclude("debug"),
        ]

    def test_metadata_comparison(self) -> None:
        assert parse("duration_ms:>100") == [MetadataFilter("duration_ms", Operator.GT, "100")]

    @pytest.mark.parametrize(
        "prefix,operator",
        [(">=", Operator.GTE), ("<=", Operator.LTE), (">", Operator.GT), ("<", Operator.LT)],
    )
    def test_all_operators(self, prefix: str, operator: Operator) -> None:
        assert parse(f"n:{prefix}5") == [MetadataFilter("n", operator, "5")]

    def test_negated_metadata(self) -> None:
        assert parse("-status:>=500") == [ExcludeMetadataFilter("status", Operator.GTE, "500")]

    def test_metadata_key_case_is_preserved(self) -> None:
        assert parse("UserId:7") == [MetadataFilter("UserId", Operator.EQ, "7")]

    def test_dotted_key(self) -> None:
        assert parse("request.status:200") == [MetadataFilter("request.status", Operator.EQ, "200")]

    def test_quoted_value_is_unescaped(self) -> None:
        assert parse('msg:"disk full"') == [MetadataFilter("msg", Operator.EQ, "disk full")]

    def test_phrases(self) -> None:
        assert parse('"error in module" -"easypost msg"') == [
            Phrase("error in module"),
            ExcludePhrase("easypost msg"),
        ]

    def test_empty_phrase_dropped(self) -> None:
        assert parse('"" error') == [Term("error")]

    @pytest.mark.parametrize(
        "query",
        [
            "timestamp:>-" + "1" * 5000 + "h",
            "timestamp:-99999999999999999999w",
            "-",
            ":",
            '"',
            '"unbalanced error',
            'msg:"open',
            "key:>",
            "timestamp:>=",
            "-timestamp:<",
            "level:",
            "--::--",
            "ümlaut 日本語 level:错误",
            "error\x00\x1b[31m\x7f",
            "a:b " * 5000,
            "x" * 100_000,
        ],
    )
    def test_never_raises(self, query: str) -> None:
        assert isinstance(parse(query, now=NOW), list)

    def test_huge_relative_offset_is_dropped(self) -> None:
        assert parse("error timestamp:>-" + "1" * 5000 + "h", now=NOW) == [Term("error")]


class TestLevelField:
    @pytest.mark.parametrize(
        "alias,level",
        [
            ("err", "error"),
            ("ERROR", "error"),
            ("warn", "warning"),
            ("wrn", "warning"),
            ("inf", "info"),
            ("dbg", "debug"),
            ("debug", "debug"),
        ],
    )
    def test_aliases(self, alias: str, level: str) -> None:
        assert parse(f"level:{alias}") == [LevelFilter(level)]

    def test_unknown_level_dropped(self) -> None:
        assert parse("level:bogus") == []

    def test_unknown_level_does_not_drop_siblings(self) -> None:
        assert parse("level:bogus timeout") == [Term("timeout")]

    def test_negated_level(self) -> None:
        assert parse("-level:debug") == [ExcludeLevelFilter("debug")]

    def test_key_is_case_insensitive(self) -> None:
        assert parse("LEVEL:err") == [LevelFilter("error")]

    def test_operator_is_ignored(self) -> None:
        assert parse("level:>=warn") == [LevelFilter("warning")]


class TestTimestampField:
    def test_date_comparison(self) -> None:
        assert parse("timestamp:>=2025-08-12") == [
            TimestampFilter(Operator.GTE, datetime(2025, 8, 12, tzinfo=UTC))
        ]

    def test_relative_offset(self) -> None:
        assert parse("timestamp:>=-1h", now=NOW) == [
            TimestampFilter(Operator.GTE, NOW - timedelta(hours=1))
        ]

    def test_today_is_midnight(self) -> None:
        assert parse("timestamp:today", now=NOW) == [
            TimestampFilter(Operator.EQ, datetime(2025, 8, 12, tzinfo=UTC))
        ]

    def test_negated_timestamp(self) -> None:
        assert parse("-timestamp:<yesterday", now=NOW) == [
            ExcludeTimestampFilter(Operator.LT, datetime(2025, 8, 11, tzinfo=UTC))
        ]

    def test_quoted_datetime(self) -> None:
        assert parse('timestamp:"2025-08-12 10:30"') == [
            TimestampFilter(Operator.EQ, datetime(2025, 8, 12, 10, 30, tzinfo=UTC))
        ]

    def test_unparseable_dropped(self) -> None:
        assert parse("timestamp:>garbage error", now=NOW) == [Term("error")]


class TestSourceField:
    def test_quoted_wildcard(self) -> None:
        assert parse('source:"api*"') == [SourceFilter("api*")]

    def test_operator_chars_stay_in_pattern(self) -> None:
        assert parse("source:>api") == [SourceFilter(">api")]

    def test_negated_source(self) -> None:
        assert parse("-source:cron") == [ExcludeSourceFilter("cron")]


class TestClassifyHelpers:
    def test_extract_operator_prefers_longest(self) -> None:
        assert extract_operator(">=5") == (Operator.GTE, "5")
        assert extract_operator("5") == (Operator.EQ, "5")

    def test_unquote(self) -> None:
        assert unquote('"disk full"') == "disk full"
        assert unquote('"say \\"hi\\" now"') == 'say "hi" now'

    def test_classify_bare_dash_dropped(self) -> None:
        assert classify("-") is None

    def test_escape_like(self) -> None:
        assert escape_like("100%_x") == "%100\\%\\_x%"


# ---------------------------------------------------------------------------
# Canonical form
# ---------------------------------------------------------------------------

class TestCanonicalForm:
    @pytest.mark.parametrize(
        "query",
        [
            "error user_id:123 -debug",
            'duration_ms:>100 "disk full" -"retry later"',
            "level:warn -level:debug",
            'msg:"two words" -env:staging',
            'source:"api*" -source:cron',
            "timestamp:>=-1h timestamp:<2025-08-13",
            "timestamp:today -timestamp:>=-90m",
        ],
    )
    def test_reparse_is_stable(self, query: str) -> None:
        tokens = parse(query, now=NOW)
        assert parse(to_query(tokens), now=NOW) == tokens

    def test_midnight_serializes_as_date(self) -> None:
        token = TimestampFilter(Operator.GTE, datetime(2025, 8, 12, tzinfo=UTC))
        assert serialize(token) == "timestamp:>=2025-08-12"

    def test_instant_serializes_compact(self) -> None:
        token = TimestampFilter(Operator.LT, datetime(2025, 8, 12, 9, 30, tzinfo=UTC))
        assert serialize(token) == "timestamp:<20250812T093000Z"

    def test_is_exclusion(self) -> None:
        assert is_exclusion(Exclude("x"))
        assert not is_exclusion(Term("x"))


# ---------------------------------------------------------------------------
# Datetimes
# ---------------------------------------------------------------------------

class TestParseInstant:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("-30m", NOW - timedelta(minutes=30)),
            ("-2d", NOW - timedelta(days=2)),
            ("-1w", NOW - timedelta(days=7)),
            ("2025-08-01", datetime(2025, 8, 1, tzinfo=UTC)),
            ("2025-08-01T12:00:00Z", datetime(2025, 8, 1, 12, tzinfo=UTC)),
            ("20250801T120000Z", datetime(2025, 8, 1, 12, tzinfo=UTC)),
            ("2025/08/01 12:00", datetime(2025, 8, 1, 12, tzinfo=UTC)),
            ("Aug 1, 2025", datetime(2025, 8, 1, tzinfo=UTC)),
            ("YESTERDAY", datetime(2025, 8, 11, tzinfo=UTC)),
        ],
    )
    def test_accepted_forms(self, value: str, expected: datetime) -> None:
        assert parse_instant(value, now=NOW) == expected

    def test_explicit_offset_is_kept(self) -> None:
        parsed = parse_instant("2025-08-01T12:00:00+02:00")
        assert parsed == datetime(2025, 8, 1, 10, tzinfo=UTC)

    @pytest.mark.parametrize(
        "value", ["", "soon", "-5y", "2025-13-45", "-999999999w", "-" + "9" * 5000 + "m"]
    )
    def test_rejected_forms(self, value: str) -> None:
        assert parse_instant(value, now=NOW) is None

    def test_start_of_day_and_ensure_utc(self) -> None:
        assert start_of_day(NOW) == datetime(2025, 8, 12, tzinfo=UTC)
        assert ensure_utc(datetime(2025, 1, 1)).tzinfo is UTC
