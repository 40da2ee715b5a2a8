"""
Unit tests for the locale-aware text parser.

Tests libs/parsing/text_parser.py
"""

from datetime import datetime

import pytest

from libs.parsing.text_parser import (
    find_duration,
    looks_like_relative_date,
    parse_absolute_year,
    parse_datetime_attr,
    parse_duration,
    parse_relative_or_absolute_year,
    parse_relative_year,
    parse_tags,
    parse_tags_from_links,
    parse_tags_from_text,
)

NOW = datetime(2024, 6, 1)


class TestRelativeYear:
    """Relative phrases across locales."""

    @pytest.mark.parametrize("text,expected", [
        ("3 years ago", 2021),
        ("a year ago", 2023),
        ("Streamed 5 days ago", 2024),
        ("3 hours ago", 2024),
        ("2 anni fa", 2022),
        ("1 mese fa", 2024),
        ("hace 1 año", 2023),
        ("il y a 2 ans", 2022),
        ("há 4 anos", 2020),
    ])
    def test_phrases(self, text, expected):
        assert parse_relative_year(text, NOW) == expected

    def test_month_crossing_year_boundary(self):
        assert parse_relative_year("vor einem Monat", datetime(2024, 1, 15)) == 2023

    def test_no_phrase(self):
        assert parse_relative_year("Deep Cuts", NOW) is None
        assert parse_relative_year("", NOW) is None

    def test_locale_restriction(self):
        assert parse_relative_year("2 anni fa", NOW, locales=("en",)) is None

    def test_looks_like_relative_date(self):
        assert looks_like_relative_date("2 weeks ago")
        assert not looks_like_relative_date("1,234 views")


class TestAbsoluteYear:
    """Standalone year tokens."""

    def test_plain_token(self):
        assert parse_absolute_year("Released 2015 - remaster", NOW) == 2015

    def test_parenthesized_and_trailing_comma(self):
        assert parse_absolute_year("Live (2015)", NOW) == 2015
        assert parse_absolute_year("2015, Berlin", NOW) == 2015

    def test_count_words_rejected(self):
        assert parse_absolute_year("2015 views", NOW) is None
        assert parse_absolute_year("1,234 views", NOW) is None

    def test_glued_digits_rejected(self):
        assert parse_absolute_year("12015", NOW) is None
        assert parse_absolute_year("3.2015", NOW) is None

    def test_bounds(self):
        assert parse_absolute_year("1949", NOW) is None
        assert parse_absolute_year("2029", NOW) == 2029
        assert parse_absolute_year("2030", NOW) is None


class TestYearStrategyOrder:
    """Date attribute, then relative phrase, then absolute token."""

    def test_attribute_wins(self):
        year = parse_relative_or_absolute_year("3 years ago", "2016-05-01T10:00:00Z", NOW)
        assert year == 2016

    def test_relative_before_absolute(self):
        assert parse_relative_or_absolute_year("Mix 2015 • 3 years ago", now=NOW) == 2021

    def test_absolute_fallback(self):
        assert parse_relative_or_absolute_year("uploaded 2015", now=NOW) == 2015

    def test_nothing(self):
        assert parse_relative_or_absolute_year("no date here", now=NOW) is None

    def test_datetime_attr(self):
        assert parse_datetime_attr("2016-05-01", NOW) == 2016
        assert parse_datetime_attr("2016", NOW) == 2016
        assert parse_datetime_attr("garbage", NOW) is None
        assert parse_datetime_attr("1900-01-01", NOW) is None
        assert parse_datetime_attr(None, NOW) is None


class TestDuration:
    """Duration tokens and their range check."""

    @pytest.mark.parametrize("text,expected", [
        ("3:45", 225),
        ("1:02:03", 3723),
        ("45", 45),
        (" 3:45 ", 225),
        ("125:00", 7500),
    ])
    def test_valid(self, text, expected):
        assert parse_duration(text) == expected

    @pytest.mark.parametrize("text", ["0", "4:00:00", "3:75", "abc", "", "3:45 min"])
    def test_rejected(self, text):
        assert parse_duration(text) is None

    def test_embedded(self):
        assert find_duration("Song • 3:45 • 2015") == 225
        assert find_duration("1,234 views") is None


class TestTags:
    """Tag links first, free-text hashtags as fallback."""

    def test_links(self):
        hrefs = ["/tags/deep%20house", "/tags/Techno?x=1", "/user/track", None]
        assert parse_tags_from_links(hrefs) == ["deep house", "techno"]

    def test_text(self):
        text = "new mix #House #techno #2015 &#39; #house"
        assert parse_tags_from_text(text) == ["house", "techno"]

    def test_links_take_priority(self):
        assert parse_tags(["/tags/ambient"], "#house") == ["ambient"]
        assert parse_tags([], "#house") == ["house"]
