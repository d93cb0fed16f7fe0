"""
Unit tests for endpoint pattern matching.
"""

import pytest

from service_introspection.app.endpoints.matcher import (
    PatternParseError, match_endpoints, parse_pattern, require_endpoint, split_path
)
from shared.errors import EndpointNotGrantedError


class TestParsePattern:
    """Test cases for parse_pattern."""

    def test_absolute_url(self):
        pattern = parse_pattern("https://api.example.com/users/:id")

        assert pattern.hostname == "api.example.com"
        assert [s.value for s in pattern.segments] == ["users", "id"]
        assert [s.is_param for s in pattern.segments] == [False, True]

    def test_bare_path(self):
        pattern = parse_pattern("/public-report")

        assert pattern.hostname is None
        assert len(pattern.segments) == 1

    @pytest.mark.parametrize("raw", ["", "ftp://host/path", "not a url", "/users/:", "/users/:9bad"])
    def test_invalid(self, raw):
        with pytest.raises(PatternParseError):
            parse_pattern(raw)


class TestMatching:
    """Test cases for template-aware matching."""

    def test_param_matches_single_segment(self):
        pattern = parse_pattern("/users/:id")

        assert pattern.matches("/users/42")
        assert not pattern.matches("/users/42/extra")
        assert not pattern.matches("/users")

    def test_param_does_not_match_empty_segment(self):
        assert not parse_pattern("/users/:id").matches("/users//")

    def test_trailing_slash_ignored(self):
        assert parse_pattern("/users/:id").matches("/users/42/")

    def test_literal_segments_exact(self):
        pattern = parse_pattern("https://api.example.com/v1/ask")

        assert pattern.matches("/v1/ask")
        assert not pattern.matches("/v1/asked")
        assert not pattern.matches("/v2/ask")

    def test_percent_decoded_before_compare(self):
        assert parse_pattern("/files/my report").matches("/files/my%20report")

    def test_root(self):
        assert parse_pattern("https://api.example.com/").matches("/")
        assert split_path("/") == ()

    def test_origin_is_not_compared(self):
        """Matching looks at path structure only, not the requested origin."""
        pattern, matched = match_endpoints("/ask", ["https://api.openai.com/ask"])

        assert matched
        assert pattern.hostname == "api.openai.com"


class TestMatchEndpoints:
    """Test cases for any-match semantics."""

    def test_first_matching_pattern_returned(self):
        patterns = [
            "https://a.example.com/orders/:id",
            "https://b.example.com/users/:id",
            "https://c.example.com/users/:name",
        ]

        pattern, matched = match_endpoints("/users/7", patterns)

        assert matched
        assert pattern.hostname == "b.example.com"

    def test_no_match(self):
        pattern, matched = match_endpoints("/admin", ["/users/:id", "/public"])

        assert pattern is None
        assert matched is False

    def test_unparseable_pattern_skipped(self):
        pattern, matched = match_endpoints("/public", ["ftp://bad/x", "", "/public"])

        assert matched
        assert pattern.raw == "/public"

    def test_empty_pattern_list(self):
        assert match_endpoints("/anything", []) == (None, False)

    def test_require_endpoint_raises(self):
        with pytest.raises(EndpointNotGrantedError) as exc_info:
            require_endpoint("/users/42/extra", ["/users/:id"])

        assert exc_info.value.code == "ENDPOINT_NOT_GRANTED"

    def test_require_endpoint_returns_pattern(self):
        assert require_endpoint("/users/42", iter(["/users/:id"])).raw == "/users/:id"
