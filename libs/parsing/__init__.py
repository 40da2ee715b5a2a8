"""Locale-aware text parsers for feed metadata."""

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

__all__ = [
    # Year
    "parse_datetime_attr",
    "parse_relative_year",
    "parse_absolute_year",
    "parse_relative_or_absolute_year",
    "looks_like_relative_date",
    # Duration
    "parse_duration",
    "find_duration",
    # Tags
    "parse_tags",
    "parse_tags_from_links",
    "parse_tags_from_text",
]
