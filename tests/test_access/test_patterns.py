"""Tests for database/table pattern matching."""

import pytest

from chouse_rbac.access.patterns import is_regex_pattern, is_valid_pattern, matches_pattern, pattern_to_regex


class TestWildcard:
    """A bare ``*`` matches every name."""

    @pytest.mark.parametrize("name", ["default", "prod.analytics", "", "UPPER"])
    def test_star_matches_everything(self, name: str) -> None:
        assert matches_pattern(name, "*") is True


class TestGlob:
    """Patterns containing ``*`` are anchored, case-insensitive globs."""

    def test_prefix_glob_matches(self) -> None:
        assert matches_pattern("prod_analytics", "prod_*") is True

    def test_prefix_glob_is_anchored(self) -> None:
        assert matches_pattern("staging_prod", "prod_*") is False

    def test_glob_is_case_insensitive(self) -> None:
        assert matches_pattern("PROD_Sales", "prod_*") is True

    def test_glob_escapes_regex_metacharacters(self) -> None:
        assert matches_pattern("a.b_events", "a.b_*") is True
        assert matches_pattern("axb_events", "a.b_*") is False

    def test_infix_glob(self) -> None:
        assert matches_pattern("events_2024_raw", "events_*_raw") is True
        assert matches_pattern("events_2024", "events_*_raw") is False

    def test_pattern_to_regex(self) -> None:
        assert pattern_to_regex("prod_*") == "^prod_.*$"


class TestRegex:
    """Patterns wrapped in slashes are case-insensitive regular expressions."""

    def test_regex_search(self) -> None:
        assert matches_pattern("sales_eu", "/^sales_(eu|us)$/") is True
        assert matches_pattern("sales_apac", "/^sales_(eu|us)$/") is False

    def test_regex_is_unanchored_search(self) -> None:
        assert matches_pattern("my_logs_db", "/logs/") is True

    def test_regex_is_case_insensitive(self) -> None:
        assert matches_pattern("LOGS", "/^logs$/") is True

    def test_invalid_regex_matches_nothing(self) -> None:
        assert matches_pattern("anything", "/[unclosed/") is False
        assert is_valid_pattern("/[unclosed/") is False

    def test_single_slash_is_literal(self) -> None:
        assert is_regex_pattern("/") is False
        assert matches_pattern("/", "/") is True

    def test_empty_regex_is_literal(self) -> None:
        """``//`` has no expression between the slashes, so it cannot match every name."""
        assert is_regex_pattern("//") is False
        assert matches_pattern("sales", "//") is False
        assert matches_pattern("//", "//") is True


class TestExact:
    """Everything else is an exact, case-insensitive comparison."""

    def test_exact_match(self) -> None:
        assert matches_pattern("analytics", "analytics") is True

    def test_exact_is_case_insensitive(self) -> None:
        assert matches_pattern("Analytics", "analytics") is True

    def test_exact_does_not_match_substring(self) -> None:
        assert matches_pattern("analytics_v2", "analytics") is False

    def test_plain_patterns_are_valid(self) -> None:
        assert is_valid_pattern("analytics") is True
        assert is_valid_pattern("prod_*") is True
