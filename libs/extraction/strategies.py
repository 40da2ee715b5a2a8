"""
Extraction strategy kinds.

A strategy takes an item's parsed subtree, one ``StrategySpec`` from the
source profile and the pass context, and returns a typed value or ``None``.
Strategies never raise on missing markup; the extractor moves on to the next
entry in the field's list.

Kinds, roughly from most to least specific:

- ``text`` / ``attr`` / ``aria_label``: a structural marker
- ``href_param`` / ``href_pattern`` / ``page_param``: identity from links
- ``link_text`` / ``positional_link``: generic link traversal
- ``datetime_attr`` / ``relative_date`` / ``release_label`` / ``absolute_year``
- ``duration_text`` / ``duration_scan``
- ``tag_links`` / ``hashtag_text``
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional, Sequence
from urllib.parse import parse_qs, urlparse

from soupsieve import SelectorSyntaxError

from libs.extraction.sources import StrategySpec
from libs.parsing.locale_patterns import DEFAULT_LOCALE_ORDER
from libs.parsing.text_parser import (
    MIN_YEAR,
    find_duration,
    parse_absolute_year,
    parse_datetime_attr,
    parse_duration,
    parse_relative_year,
    parse_tags_from_links,
    parse_tags_from_text,
)

logger = logging.getLogger(__name__)

RELEASE_LABEL = re.compile(
    r"(?:Album|EP|Single|Singolo|Álbum|Sencillo|Compilation)\s*[•·]\s*(\d{4})\b",
    re.IGNORECASE,
)


@dataclass
class StrategyContext:
    """Per-pass inputs shared by every strategy."""

    now: datetime = field(default_factory=datetime.now)
    locales: Sequence[str] = DEFAULT_LOCALE_ORDER
    page_url: Optional[str] = None


Strategy = Callable[[Any, StrategySpec, StrategyContext], Any]

STRATEGIES: dict[str, Strategy] = {}


def strategy(kind: str):
    """Register a strategy function under ``kind``."""
    def decorator(fn: Strategy) -> Strategy:
        STRATEGIES[kind] = fn
        return fn
    return decorator


def run_strategy(node: Any, spec: StrategySpec, ctx: StrategyContext) -> Any:
    """Run one strategy; unknown kinds and malformed selectors yield ``None``."""
    fn = STRATEGIES.get(spec.kind)
    if fn is None:
        logger.warning(f"[Strategies] Unknown strategy kind '{spec.kind}'")
        return None
    try:
        return fn(node, spec, ctx)
    except SelectorSyntaxError as e:
        logger.warning(f"[Strategies] Bad selector {spec.selector!r} in {spec.kind}: {e}")
        return None


# =============================================================================
# Helpers
# =============================================================================

def normalize_text(el: Any) -> str:
    return " ".join(el.get_text(" ", strip=True).split())


def select_all(node: Any, selector: Optional[str]) -> list:
    """Elements matching ``selector`` in document order, the item root included."""
    if not selector:
        return [node]
    matches = [node] if node.css.match(selector) else []
    matches.extend(node.select(selector))
    return matches


def _has_class(el: Any, name: Optional[str]) -> bool:
    return bool(name) and name in (el.get("class") or [])


def _is_label_noise(text: str) -> bool:
    """Counters and durations masquerading as link text."""
    return text.isdigit() or parse_duration(text) is not None


def _query_param(url: Optional[str], name: Optional[str]) -> Optional[str]:
    if not url or not name:
        return None
    values = parse_qs(urlparse(url).query).get(name)
    return values[0] if values else None


# =============================================================================
# Identity and text
# =============================================================================

@strategy("text")
def text_strategy(node, spec, ctx) -> Optional[str]:
    for el in select_all(node, spec.selector):
        text = normalize_text(el)
        if len(text) >= spec.min_length:
            return text
    return None


@strategy("attr")
def attr_strategy(node, spec, ctx) -> Optional[str]:
    for el in select_all(node, spec.selector):
        value = el.get(spec.attr)
        if not isinstance(value, str) or not value.strip():
            continue
        if spec.pattern:
            match = re.search(spec.pattern, value)
            if not match:
                continue
            value = match.group(1)
        return value.strip()
    return None


@strategy("aria_label")
def aria_label_strategy(node, spec, ctx) -> Optional[str]:
    """Capture group 1 of ``pattern`` from an aria-label ("Play <title> by <artist>")."""
    for el in select_all(node, spec.selector):
        label = el.get("aria-label")
        if not label:
            continue
        match = re.search(spec.pattern or r"(.+)", label, re.IGNORECASE)
        if match and len(match.group(1).strip()) >= spec.min_length:
            return match.group(1).strip()
    return None


@strategy("href_param")
def href_param_strategy(node, spec, ctx) -> Optional[str]:
    for el in select_all(node, spec.selector):
        value = _query_param(el.get("href"), spec.param)
        if value:
            return value
    return None


@strategy("page_param")
def page_param_strategy(node, spec, ctx) -> Optional[str]:
    """Identity from the page URL, for items that are the page itself."""
    if spec.selector and not node.css.match(spec.selector):
        return None
    return _query_param(ctx.page_url, spec.param)


@strategy("href_pattern")
def href_pattern_strategy(node, spec, ctx) -> Optional[str]:
    for el in select_all(node, spec.selector):
        if _has_class(el, spec.exclude_class):
            continue
        match = re.search(spec.pattern or r"(.+)", el.get("href") or "")
        if match:
            return match.group(1)
    return None


@strategy("link_text")
def link_text_strategy(node, spec, ctx) -> Optional[str]:
    """Text of the first link whose href matches ``pattern``."""
    for el in select_all(node, spec.selector or "a[href]"):
        if _has_class(el, spec.exclude_class):
            continue
        if spec.pattern and not re.search(spec.pattern, el.get("href") or ""):
            continue
        text = normalize_text(el)
        if len(text) >= spec.min_length and not _is_label_noise(text):
            return text
    return None


@strategy("positional_link")
def positional_link_strategy(node, spec, ctx) -> Optional[str]:
    """The ``index``-th meaningful link among the item's links."""
    texts = [
        normalize_text(el)
        for el in select_all(node, spec.selector or "a[href]")
    ]
    texts = [t for t in texts if len(t) >= spec.min_length and not _is_label_noise(t)]
    if spec.index < len(texts):
        return texts[spec.index]
    return None


# =============================================================================
# Year
# =============================================================================

@strategy("datetime_attr")
def datetime_attr_strategy(node, spec, ctx) -> Optional[int]:
    for el in select_all(node, spec.selector or "time"):
        year = parse_datetime_attr(el.get(spec.attr or "datetime"), ctx.now)
        if year is not None:
            return year
    return None


@strategy("relative_date")
def relative_date_strategy(node, spec, ctx) -> Optional[int]:
    for el in select_all(node, spec.selector):
        year = parse_relative_year(normalize_text(el), ctx.now, ctx.locales)
        if year is not None:
            return year
    return None


@strategy("release_label")
def release_label_strategy(node, spec, ctx) -> Optional[int]:
    """Year from a release label such as "Album • 2016"."""
    for el in select_all(node, spec.selector):
        match = RELEASE_LABEL.search(normalize_text(el))
        if match:
            year = int(match.group(1))
            if MIN_YEAR <= year <= ctx.now.year:
                return year
    return None


@strategy("absolute_year")
def absolute_year_strategy(node, spec, ctx) -> Optional[int]:
    for el in select_all(node, spec.selector):
        texts = [normalize_text(el)]
        if spec.include_aria and el.get("aria-label"):
            texts.append(el["aria-label"])
        for text in texts:
            year = parse_absolute_year(text, ctx.now)
            if year is None:
                continue
            if spec.not_future and year > ctx.now.year:
                continue
            return year
    return None


# =============================================================================
# Duration
# =============================================================================

@strategy("duration_text")
def duration_text_strategy(node, spec, ctx) -> Optional[int]:
    """Whole-text duration tokens only ("3:45", "1:02:03")."""
    for el in select_all(node, spec.selector):
        seconds = parse_duration(normalize_text(el))
        if seconds is not None:
            return seconds
    return None


@strategy("duration_scan")
def duration_scan_strategy(node, spec, ctx) -> Optional[int]:
    """Duration tokens embedded in longer text ("Song • 3:45")."""
    for el in select_all(node, spec.selector):
        seconds = find_duration(normalize_text(el))
        if seconds is not None:
            return seconds
    return None


# =============================================================================
# Tags
# =============================================================================

@strategy("tag_links")
def tag_links_strategy(node, spec, ctx) -> list[str]:
    hrefs = [el.get("href") for el in select_all(node, spec.selector or "a[href*='/tags/']")]
    if spec.pattern:
        hrefs = [
            "/tags/" + m.group(1)
            for m in (re.search(spec.pattern, h or "") for h in hrefs)
            if m
        ]
    return parse_tags_from_links(hrefs)


@strategy("hashtag_text")
def hashtag_text_strategy(node, spec, ctx) -> list[str]:
    tags: list[str] = []
    for el in select_all(node, spec.selector):
        for tag in parse_tags_from_text(el.get_text(" ", strip=True)):
            if tag not in tags:
                tags.append(tag)
    return tags
