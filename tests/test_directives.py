"""Tests for osqtool.directives module.

Tests cover:
- Quote-aware comment splitting
- Description, directive and tag extraction
- Multi-line and compact query text
- Platform inference from the query name
- Rendering and re-parsing
"""

import pytest

from osqtool.directives import (
    Directive,
    DirectiveKind,
    classify,
    infer_platform,
    parse,
    render,
    split_comment,
)
from osqtool.errors import ParseError
from osqtool.schemas import QueryRecord


XPROTECT = """-- Returns a list of malware matches from macOS XProtect
--
-- interval: 1200
-- platform: darwin

SELECT * FROM xprotect_reports;
"""


class TestSplitComment:
    """Tests for split_comment."""

    def test_no_comment(self):
        assert split_comment("SELECT * FROM t;") is None

    def test_comment_only_line(self):
        assert split_comment("-- interval: 60") == ("", " interval: 60")

    def test_inline_comment(self):
        assert split_comment("SELECT 1; -- trailing") == ("SELECT 1; ", " trailing")

    def test_marker_inside_single_quotes_is_text(self):
        assert split_comment("select * from t where x = '--not-a-comment';") is None

    def test_marker_inside_double_quotes_is_text(self):
        assert split_comment('select "a--b" from t;') is None

    def test_comment_after_quoted_marker(self):
        """A real comment following a quoted `--` is still found."""
        before, after = split_comment("select '--x' from t; -- real")
        assert before == "select '--x' from t; "
        assert after == " real"


class TestClassify:
    """Tests for classify."""

    def test_known_directive(self):
        assert classify("interval: 60") == Directive(DirectiveKind.INTERVAL, "interval", "60")

    def test_value_keeps_later_colons(self):
        d = classify("value: see https://example.com/x")
        assert d.kind is DirectiveKind.VALUE
        assert d.value == "see https://example.com/x"

    def test_unknown_directive(self):
        assert classify("oncall: secops").kind is DirectiveKind.UNKNOWN

    def test_not_a_directive(self):
        assert classify("Returns running processes") is None


class TestParse:
    """Tests for parse."""

    def test_xprotect(self):
        """Description, interval and platform from a typical query file."""
        got = parse("xprotect-reports", XPROTECT.encode())

        assert got == QueryRecord(
            name="xprotect-reports",
            query_text="SELECT * FROM xprotect_reports;",
            query_text_compact="SELECT * FROM xprotect_reports;",
            interval="1200",
            description="Returns a list of malware matches from macOS XProtect",
            platform="darwin",
        )

    def test_literal_marker_is_not_truncated(self):
        got = parse("q", "select * from t where x = '--not-a-comment';")
        assert got.query_text == "select * from t where x = '--not-a-comment';"
        assert got.description == ""

    def test_inline_comment_dropped(self):
        got = parse("q", "-- desc\nSELECT a,\n  b -- column b\nFROM t\nWHERE x = 1")
        assert got.query_text == "SELECT a,\n  b\nFROM t\nWHERE x = 1;"
        assert got.query_text_compact == "SELECT a, b FROM t WHERE x = 1;"

    def test_terminator_not_doubled(self):
        got = parse("q", "SELECT 1;\n")
        assert got.query_text == "SELECT 1;"
        assert got.query_text_compact == "SELECT 1;"

    def test_first_comment_is_description_even_if_directive(self):
        got = parse("q", "-- interval: 60\nSELECT 1")
        assert got.description == "interval: 60"
        assert got.interval == "60"

    def test_description_from_first_comment_after_code(self):
        got = parse("q", "SELECT 1\n-- late description")
        assert got.description == "late description"

    def test_all_directives(self):
        source = "\n".join([
            "-- Find things",
            "-- interval: 300",
            "-- platform: linux",
            "-- version: 5.2.0",
            "-- shard: 25",
            "-- tags: persistent often",
            "-- value: Shows odd things",
            "SELECT * FROM things",
        ])
        got = parse("things", source)
        assert got.interval == "300"
        assert got.platform == "linux"
        assert got.version == "5.2.0"
        assert got.shard == 25
        assert got.tags == frozenset({"persistent", "often"})
        assert got.value == "Shows odd things"

    def test_tags_accumulate(self):
        got = parse("q", "-- d\n-- tags: a b\n-- tags: c\nSELECT 1")
        assert got.tags == frozenset({"a", "b", "c"})

    def test_interval_duration_normalized(self):
        assert parse("q", "-- d\n-- interval: 6h\nSELECT 1").interval == "21600"

    def test_interval_unset_is_none(self):
        assert parse("q", "SELECT 1").interval is None

    def test_zero_interval_is_not_unset(self):
        assert parse("q", "-- d\n-- interval: 0\nSELECT 1").interval == "0"

    def test_bad_shard_raises(self):
        with pytest.raises(ParseError, match="shard"):
            parse("q", "-- d\n-- shard: lots\nSELECT 1")

    def test_bad_interval_raises(self):
        with pytest.raises(ParseError, match="interval"):
            parse("q", "-- d\n-- interval: often\nSELECT 1")

    def test_unknown_directive_ignored(self):
        got = parse("q", "-- d\n-- oncall: secops\nSELECT 1")
        assert got.query_text == "SELECT 1;"
        assert got.extended_description == "oncall: secops"

    def test_extended_description(self):
        got = parse("q", "-- Short\n--\n-- Longer words\n-- more words\n-- \n-- interval: 60\nSELECT 1")
        assert got.description == "Short"
        assert got.extended_description == "Longer words\nmore words"

    def test_crlf_source(self):
        got = parse("q", "-- d\r\n-- interval: 60\r\nSELECT 1\r\n")
        assert got.interval == "60"
        assert got.query_text == "SELECT 1;"


class TestPlatformInference:
    """Tests for infer_platform and its use in parse."""

    @pytest.mark.parametrize("name,platform", [
        ("kernel-modules-linux", "linux"),
        ("Launchd-MACOS", "darwin"),
        ("unsigned-darwin", "darwin"),
        ("ssh-keys-posix", "posix"),
        ("services-windows", "windows"),
        ("processes", None),
    ])
    def test_suffixes(self, name, platform):
        assert infer_platform(name) == platform

    def test_parse_infers_platform(self):
        assert parse("kernel-modules-linux", "SELECT 1").platform == "linux"

    def test_directive_wins_over_suffix(self):
        got = parse("kernel-modules-linux", "-- d\n-- platform: posix\nSELECT 1")
        assert got.platform == "posix"


class TestRender:
    """Tests for render."""

    def test_render_xprotect(self):
        record = QueryRecord(
            name="xprotect-reports",
            query_text="SELECT * FROM xprotect_reports;",
            query_text_compact="SELECT * FROM xprotect_reports;",
            interval="1200",
            platform="darwin",
            description="Returns a list of malware matches from macOS XProtect",
        )
        assert render(record) == XPROTECT

    def test_reparse_is_equivalent(self):
        source = "\n".join([
            "-- Unexpected listeners",
            "--",
            "-- Anything bound to all interfaces",
            "-- ",
            "-- interval: 600",
            "-- shard: 10",
            "-- tags: net often",
            "-- version: 5.0.0",
            "SELECT *",
            "  FROM listening_ports -- all of them",
            "  WHERE address = '0.0.0.0'",
        ])
        record = parse("listeners-linux", source)
        assert parse("listeners-linux", render(record)) == record

    def test_multiline_description_folded(self, make_record):
        record = make_record("q", description="Listening ports\nSELECT 2", extended_description="one\n\ntwo")
        got = parse("q", render(record))
        assert got.description == "Listening ports SELECT 2"
        assert got.extended_description == "one\ntwo"
        assert got.query_text == record.query_text

    def test_directive_shaped_text_stays_free_text(self, make_record):
        record = make_record("q", description="value: x", extended_description="interval: 5")
        got = parse("q", render(record))
        assert got.value is None
        assert got.interval is None
        assert got.description == '"value: x"'
        assert got.extended_description == '"interval: 5"'
        assert render(got) == render(record)

    def test_description_directive_that_agrees_is_kept(self):
        record = parse("q", "-- interval: 60\nSELECT 1")
        assert render(record).startswith("-- interval: 60\n")
        assert parse("q", render(record)) == record

    def test_render_without_description(self):
        record = parse("q", "SELECT 1")
        assert render(record).startswith("--\n")
        assert parse("q", render(record)) == record
