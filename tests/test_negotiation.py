"""Unit tests for Accept-header negotiation."""

import pytest
from songbook.negotiation import (
    MIME_TEXT_HTML,
    MIME_TEXT_PLAIN,
    MIME_TEXT_SONG,
    best_match,
    negotiate,
    parse_accept,
    wants_json,
)


class TestParseAccept:
    def test_missing_header_accepts_anything(self):
        assert parse_accept(None) == [("*", "*", 1.0)]
        assert parse_accept("  ") == [("*", "*", 1.0)]

    def test_quality_values(self):
        ranges = parse_accept("text/html;q=0.5, text/plain")
        assert ("text", "html", 0.5) in ranges
        assert ("text", "plain", 1.0) in ranges

    def test_bad_quality_is_zero(self):
        assert parse_accept("text/html;q=abc") == [("text", "html", 0.0)]

    def test_malformed_ranges_skipped(self):
        assert parse_accept("garbage, text/plain") == [("text", "plain", 1.0)]


class TestNegotiate:
    @pytest.mark.parametrize("header, expected", [
        ("text/song", MIME_TEXT_SONG),
        ("text/plain", MIME_TEXT_PLAIN),
        ("text/html", MIME_TEXT_HTML),
        ("text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8", MIME_TEXT_HTML),
        ("text/plain;q=0.5, text/html", MIME_TEXT_HTML),
        ("text/*;q=0.5, text/plain", MIME_TEXT_PLAIN),
    ])
    def test_picks_best(self, header, expected):
        assert negotiate(header) == expected

    def test_wildcard_prefers_first_listed(self):
        assert negotiate("*/*") == MIME_TEXT_SONG
        assert negotiate(None) == MIME_TEXT_SONG

    def test_nothing_acceptable_falls_back_to_html(self):
        assert negotiate("image/png") == MIME_TEXT_HTML
        assert negotiate("text/plain;q=0") == MIME_TEXT_HTML

    def test_best_match_returns_none_when_unacceptable(self):
        assert best_match([MIME_TEXT_PLAIN], "image/png") is None

    def test_specific_range_beats_wildcard_quality(self):
        # text/html is explicitly refused even though */* is accepted
        assert best_match([MIME_TEXT_HTML, MIME_TEXT_PLAIN], "*/*, text/html;q=0") == MIME_TEXT_PLAIN


class TestWantsJson:
    def test_explicit_json(self):
        assert wants_json("application/json")
        assert wants_json("text/html, application/json;q=0.5")

    def test_wildcards_do_not_count(self):
        assert not wants_json("*/*")
        assert not wants_json(None)
        assert not wants_json("application/json;q=0")
