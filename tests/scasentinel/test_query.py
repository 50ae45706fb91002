"""Tests for search query building, escaping and parsing."""

from __future__ import annotations

import pytest

from scasentinel.data.query import QuerySyntaxError, QueryTerm, escape, parse_query, unescape
from scasentinel.engines.identification.query_builder import (
    build_search,
    cleanse_text,
    equals_ignore_case_and_non_alpha,
)


# ── build_search ─────────────────────────────────────────────────────────


class TestBuildSearch:
    def test_exact_format_without_weighting(self):
        query = build_search("apache software foundation", "struts 2 core")
        assert query == " product:( struts 2 core )  AND  vendor:( apache software foundation ) "
        assert query.strip() == (
            "product:( struts 2 core )  AND  vendor:( apache software foundation )"
        )

    def test_weighted_term_adds_weighted_entry(self):
        query = build_search("apache", "struts 2 core", product_weighting={"struts2"})
        assert query.strip() == "product:(  struts^5 struts2^5 2 core )  AND  vendor:( apache )"

    def test_weighted_term_same_as_word(self):
        query = build_search("apache software", "struts", vendor_weighting={"Apache"})
        assert "vendor:(  apache^5 software )" in query
        assert "Apache^5" not in query

    def test_empty_vendor_aborts(self):
        assert build_search("", "struts") is None
        assert build_search("@@@", "struts") is None

    def test_empty_product_aborts(self):
        assert build_search("apache", "   ") is None

    def test_special_characters_cleansed_and_escaped(self):
        query = build_search("apache", "commons-lang (core)")
        assert r"commons\-lang  core " in query
        assert "(core)" not in query


class TestHelpers:
    def test_cleanse_text(self):
        assert cleanse_text("a+b/c_d-e.f") == "a b c_d-e.f"

    def test_equals_ignore_case_and_non_alpha(self):
        assert equals_ignore_case_and_non_alpha("Struts2", "struts")
        assert not equals_ignore_case_and_non_alpha("struts", "core")
        assert not equals_ignore_case_and_non_alpha(None, "x")


# ── escaping / parsing ───────────────────────────────────────────────────


class TestEscape:
    def test_escape_specials(self):
        assert escape("a-b:c") == r"a\-b\:c"

    def test_unescape_roundtrip(self):
        assert unescape(escape('x+y && "z"')) == 'x+y && "z"'


class TestParseQuery:
    def test_two_clauses(self):
        clauses = parse_query(
            " product:(  struts^5 struts2^5 2 core )  AND  vendor:( apache ) "
        )
        assert clauses["product"] == [
            QueryTerm("struts", 5.0),
            QueryTerm("struts2", 5.0),
            QueryTerm("2"),
            QueryTerm("core"),
        ]
        assert clauses["vendor"] == [QueryTerm("apache")]

    def test_escaped_terms(self):
        clauses = parse_query(r"product:( commons\-lang ) AND vendor:( apache )")
        assert clauses["product"] == [QueryTerm("commons-lang")]

    def test_escaped_caret_is_not_boost(self):
        clauses = parse_query(r"product:( a\^5 ) AND vendor:( b )")
        assert clauses["product"] == [QueryTerm("a^5")]

    def test_unterminated_clause(self):
        with pytest.raises(QuerySyntaxError):
            parse_query("product:( struts")

    def test_missing_field(self):
        with pytest.raises(QuerySyntaxError):
            parse_query("struts")
