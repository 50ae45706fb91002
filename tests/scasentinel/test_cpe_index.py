"""Tests for the in-memory CPE search index."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from scasentinel.core.config import DEFAULT_MIN_SCORE
from scasentinel.core.exceptions import AnalysisError, IndexUnavailableError
from scasentinel.data.cpe_index import CpeMemoryIndex, CpeSearchIndex, IndexEntry, tokenize

PAIRS = [
    ("apache", "struts"),
    ("apache", "axis"),
    ("apache", "axis2"),
    ("apache", "commons_lang"),
    ("openssl", "openssl"),
    ("springsource", "spring_framework"),
]


@pytest.fixture
def index():
    idx = CpeMemoryIndex(pairs=PAIRS)
    idx.open()
    yield idx
    idx.close()


class TestTokenize:
    def test_splits_on_separators(self):
        assert tokenize("Spring_Framework-core.x y") == ["spring", "framework", "core", "x", "y"]


class TestIndexEntry:
    def test_equality_ignores_score(self):
        assert IndexEntry("apache", "struts", 0.3) == IndexEntry("apache", "struts", 0.9)


class TestCpeMemoryIndex:
    def test_satisfies_protocol(self, index):
        assert isinstance(index, CpeSearchIndex)

    def test_exact_match_scores_one(self, index):
        results = index.search(" product:( openssl )  AND  vendor:( openssl ) ", 25)
        assert results == [IndexEntry("openssl", "openssl")]
        assert results[0].score == pytest.approx(1.0)

    def test_scores_within_unit_interval(self, index):
        results = index.search("product:( struts 2 core ) AND vendor:( apache software foundation )", 25)
        assert IndexEntry("apache", "struts") in results
        assert all(0.0 < r.score <= 1.0 for r in results)

    def test_broadened_query_keeps_true_hit(self, index):
        results = index.search(
            "product:( struts 2 core xwork framework library ) "
            "AND vendor:( apache software foundation opensymphony )",
            25,
        )
        assert results[0] == IndexEntry("apache", "struts")
        assert results[0].score >= DEFAULT_MIN_SCORE

    def test_and_semantics(self, index):
        assert index.search("product:( struts ) AND vendor:( openssl )", 25) == []

    def test_boost_prefers_weighted_term(self, index):
        results = index.search("product:( axis axis2^5 ) AND vendor:( apache )", 25)
        assert results[0] == IndexEntry("apache", "axis2")

    def test_escaped_terms_are_tokenized(self, index):
        results = index.search(r"product:( commons\-lang ) AND vendor:( apache )", 25)
        assert results[0] == IndexEntry("apache", "commons_lang")
        assert results[0].score == pytest.approx(1.0)

    def test_max_results(self, index):
        results = index.search("product:( struts axis axis2 ) AND vendor:( apache )", 2)
        assert len(results) == 2

    def test_search_before_open(self):
        with pytest.raises(IndexUnavailableError):
            CpeMemoryIndex(pairs=PAIRS).search("product:( a ) AND vendor:( b )", 5)

    def test_search_after_close(self, index):
        index.close()
        with pytest.raises(IndexUnavailableError):
            index.search("product:( a ) AND vendor:( b )", 5)

    def test_bad_query_is_analysis_error(self, index):
        with pytest.raises(AnalysisError):
            index.search("product:( struts", 5)
        with pytest.raises(AnalysisError):
            index.search("cpe:( struts )", 5)

    def test_built_from_database(self):
        database = MagicMock()
        database.vendor_product_list.return_value = [("openssl", "openssl")]
        idx = CpeMemoryIndex(database=database)
        idx.open()
        idx.open()
        database.vendor_product_list.assert_called_once()
        assert len(idx) == 1

    def test_requires_a_source(self):
        with pytest.raises(ValueError):
            CpeMemoryIndex()
