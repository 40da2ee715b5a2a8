"""
Locale-aware text parsing for feed metadata.

Turns free text found on feed items into typed values:

- a publish year, from a machine-readable date attribute, a relative phrase
  ("3 years ago", "2 anni fa", "vor einem Monat") or an absolute year token;
- a duration in seconds, from "H:MM:SS", "M:SS" or bare-seconds tokens;
- a tag list, from canonical tag links or free-text ``#tokens``.

Every parser returns ``None`` (or an empty list) on failure. Callers treat
``None`` as unknown, never as zero.
"""

import re
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Sequence
from urllib.parse import unquote

from libs.parsing.locale_patterns import (
    COUNT_WORDS,
    DEFAULT_LOCALE_ORDER,
    LOCALES,
    UNIT_DAYS,
    compiled_patterns,
)

MIN_YEAR = 1950
FUTURE_YEAR_SLACK = 5

MIN_DURATION_S = 1
MAX_DURATION_S = 3 * 3600

_DATETIME_ATTR = re.compile(r"^\s*(\d{4})(?:-\d{2}|\b)")
_ABSOLUTE_YEAR = re.compile(
    r"(?<![\w.,:/])(\d{4})(?![\w:/]|[.,]\d)"
    r"(?!\s*(?:" + "|".join(COUNT_WORDS) + r")\b)",
    re.IGNORECASE,
)
_STRICT_DURATION = re.compile(r"^(?:(\d{1,2}):([0-5]\d):([0-5]\d)|(\d{1,3}):([0-5]\d)|(\d+))$")
_EMBEDDED_DURATION = re.compile(r"(?<![\d:])(\d{1,2}(?::[0-5]\d){1,2})(?![\d:])")
_TAG_LINK = re.compile(r"/tags/([^/?#]+)")
_HASHTAG = re.compile(r"(?<![\w&/#])#(\w[\w-]*)")


# =============================================================================
# Year
# =============================================================================

def _year_bounds(now: datetime) -> tuple[int, int]:
    return MIN_YEAR, now.year + FUTURE_YEAR_SLACK


def parse_datetime_attr(value: Optional[str], now: Optional[datetime] = None) -> Optional[int]:
    """Year from a machine-readable date (``2016-05-01T...``, ``2016``)."""
    if not value:
        return None
    match = _DATETIME_ATTR.match(value)
    if not match:
        return None
    year = int(match.group(1))
    low, high = _year_bounds(now or datetime.now())
    return year if low <= year <= high else None


def parse_relative_year(
    text: str,
    now: Optional[datetime] = None,
    locales: Sequence[str] = DEFAULT_LOCALE_ORDER,
) -> Optional[int]:
    """Year from a relative phrase, subtracting the phrase's day offset from now."""
    if not text:
        return None
    now = now or datetime.now()
    for code in locales:
        if code not in LOCALES:
            continue
        for pattern, unit in compiled_patterns(code):
            match = pattern.search(text)
            if not match:
                continue
            magnitude = LOCALES[code].magnitude(match.group("n"))
            days = magnitude * UNIT_DAYS[unit]
            return (now - timedelta(days=days)).year
    return None


def parse_absolute_year(text: str, now: Optional[datetime] = None) -> Optional[int]:
    """
    First standalone 4-digit year within [1950, current year + 5].

    The token must sit on a word/punctuation boundary: digits glued to other
    digits, decimal separators, colons or a trailing count word ("2015 views")
    are rejected.
    """
    if not text:
        return None
    low, high = _year_bounds(now or datetime.now())
    for match in _ABSOLUTE_YEAR.finditer(text):
        year = int(match.group(1))
        if low <= year <= high:
            return year
    return None


def parse_relative_or_absolute_year(
    text: str,
    datetime_attr: Optional[str] = None,
    now: Optional[datetime] = None,
    locales: Sequence[str] = DEFAULT_LOCALE_ORDER,
) -> Optional[int]:
    """
    Year from the first strategy that succeeds: date attribute, relative
    phrase, absolute year. Results are never merged across strategies.
    """
    now = now or datetime.now()
    year = parse_datetime_attr(datetime_attr, now)
    if year is not None:
        return year
    year = parse_relative_year(text, now, locales)
    if year is not None:
        return year
    return parse_absolute_year(text, now)


def looks_like_relative_date(text: str, locales: Sequence[str] = DEFAULT_LOCALE_ORDER) -> bool:
    """True when ``text`` contains a relative-date phrase in any known locale."""
    return parse_relative_year(text, locales=locales) is not None


# =============================================================================
# Duration
# =============================================================================

def _in_duration_range(seconds: int) -> Optional[int]:
    return seconds if MIN_DURATION_S <= seconds <= MAX_DURATION_S else None


def parse_duration(text: str) -> Optional[int]:
    """
    Seconds from a whole duration token: ``H:MM:SS``, ``M:SS`` or ``S``.

    Values outside [1, 10800] are treated as not-a-duration.
    """
    if not text:
        return None
    match = _STRICT_DURATION.match(text.strip())
    if not match:
        return None
    h, m, s, m2, s2, bare = match.groups()
    if h is not None:
        seconds = int(h) * 3600 + int(m) * 60 + int(s)
    elif m2 is not None:
        seconds = int(m2) * 60 + int(s2)
    else:
        seconds = int(bare)
    return _in_duration_range(seconds)


def find_duration(text: str) -> Optional[int]:
    """First colon-separated duration token embedded in longer text."""
    if not text:
        return None
    for match in _EMBEDDED_DURATION.finditer(text):
        seconds = parse_duration(match.group(1))
        if seconds is not None:
            return seconds
    return None


# =============================================================================
# Tags
# =============================================================================

def _dedupe(tags: Iterable[str]) -> List[str]:
    seen = set()
    out = []
    for tag in tags:
        if tag and tag not in seen:
            seen.add(tag)
            out.append(tag)
    return out


def parse_tags_from_links(hrefs: Iterable[Optional[str]]) -> List[str]:
    """Tags from canonical ``/tags/<name>`` links."""
    tags = []
    for href in hrefs:
        match = _TAG_LINK.search(href or "")
        if match:
            tags.append(unquote(match.group(1)).strip().lower())
    return _dedupe(tags)


def parse_tags_from_text(text: str) -> List[str]:
    """Tags from free-text ``#token`` occurrences; numeric-only tokens are skipped."""
    if not text:
        return []
    return _dedupe(
        t.lower() for t in _HASHTAG.findall(text) if not t.isdigit()
    )


def parse_tags(hrefs: Iterable[Optional[str]], text: str) -> List[str]:
    """Canonical tag links first; free-text hashtags only when no link matched."""
    tags = parse_tags_from_links(hrefs)
    if tags:
        return tags
    return parse_tags_from_text(text)
