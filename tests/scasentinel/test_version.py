"""Tests for structured versions and version parsing."""

from __future__ import annotations

import pytest

from scasentinel.dependency.version import DependencyVersion, parse_version


class TestDependencyVersion:
    def test_parts(self):
        assert DependencyVersion("1.2.3-beta").parts == ["1", "2", "3", "beta"]

    def test_text_without_parts_kept_whole(self):
        assert DependencyVersion("-").parts == ["-"]

    def test_qualifier_letter_is_dropped(self):
        assert str(DependencyVersion("1.0.1c")) == "1.0.1"

    def test_trailing_zero_equality(self):
        assert DependencyVersion("1.0") == DependencyVersion("1")
        assert DependencyVersion("1.0.0") == DependencyVersion("1")
        assert hash(DependencyVersion("1.0.0")) == hash(DependencyVersion("1"))

    def test_inequality(self):
        assert DependencyVersion("1.0.1") != DependencyVersion("1.0.2")
        assert DependencyVersion("1.1") != DependencyVersion("1")

    def test_three_levels(self):
        assert DependencyVersion("2.1.2").matches_at_least_three_levels(DependencyVersion("2.1.2.5"))
        assert not DependencyVersion("2.1.3").matches_at_least_three_levels(
            DependencyVersion("2.1.2.5")
        )
        assert DependencyVersion("2.1").matches_at_least_three_levels(DependencyVersion("2.1.9"))
        assert not DependencyVersion("2.1").matches_at_least_three_levels(None)

    def test_compare_numeric(self):
        assert DependencyVersion("1.10").compare(DependencyVersion("1.9")) == 1
        assert DependencyVersion("1.9") < DependencyVersion("1.10")

    def test_compare_length_breaks_tie(self):
        assert DependencyVersion("1.0").compare(DependencyVersion("1.0.1")) == -1
        assert DependencyVersion("1.0.1").compare(DependencyVersion("1.0.1")) == 0

    def test_compare_lexical_for_words(self):
        assert DependencyVersion("1.0.alpha").compare(DependencyVersion("1.0.beta")) == -1


class TestParseVersion:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("struts2-core-2.1.2.jar", "2.1.2"),
            ("axis2-kernel-1.4.1.jar", "1.4.1"),
            ("openssl 1.0.1c", "1.0.1"),
            ("commons-lang-2.6", "2.6"),
            ("version 7", "7"),
        ],
    )
    def test_finds_version(self, text, expected):
        assert str(parse_version(text)) == expected

    def test_none_and_missing(self):
        assert parse_version(None) is None
        assert parse_version("no digits here") is None

    def test_wildcard(self):
        assert parse_version("-").parts == ["-"]

    def test_two_versions_is_ambiguous(self):
        assert parse_version("upgrade 1.2.3 to 2.0.1") is None

    def test_first_match_only(self):
        assert str(parse_version("upgrade 1.2.3 to 2.0.1", first_match_only=True)) == "1.2.3"

    def test_two_single_numbers_is_ambiguous(self):
        assert parse_version("build 7 of 9") is None

    def test_py2_suffix_stripped(self):
        assert parse_version("1.2.3-py2").parts == ["1", "2", "3"]
