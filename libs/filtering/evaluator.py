"""
Filter evaluation.

Pure functions from (ItemRecord, FilterConfig) to a hide/show decision.
Every enabled rule is evaluated on every record so the decision carries a
full per-rule breakdown; the reported rule is the first one, in evaluation
order, that voted to hide. Ranges are validated when the configuration is
built, so no range checks happen here.
"""

from dataclasses import dataclass, field
from typing import Optional

from libs.core.models import FilterConfig, ItemRecord, MatchMode, RuleName


@dataclass(frozen=True)
class FilterDecision:
    """Outcome of evaluating one record."""

    hidden: bool
    rule: Optional[RuleName] = None
    # rule -> True when that rule voted to hide; only enabled rules appear
    verdicts: dict[RuleName, bool] = field(default_factory=dict)


def _year_hides(record: ItemRecord, config: FilterConfig) -> bool:
    rule = config.rules.year
    if record.year is None:
        return not rule.show_unknown
    return not (rule.min <= record.year <= rule.max)


def _duration_hides(record: ItemRecord, config: FilterConfig) -> bool:
    rule = config.rules.duration
    if record.duration_seconds is None:
        return False
    return not (rule.min <= record.duration_seconds <= rule.max)


def _genre_hides(record: ItemRecord, config: FilterConfig) -> bool:
    # Allow-list: the only rule that hides unless something matches
    terms = config.rules.genre.terms
    if not terms:
        return False
    text = record.searchable_text
    return not any(term in text for term in terms)


def _blacklist_hides(record: ItemRecord, config: FilterConfig) -> bool:
    terms = config.rules.blacklist.terms
    if not terms:
        return False
    text = record.searchable_text
    return any(term in text for term in terms)


def _tags_hide(record: ItemRecord, config: FilterConfig) -> bool:
    rule = config.rules.tags
    if not rule.values:
        return False
    present = {t.lower() for t in record.tags}
    if rule.mode == MatchMode.ALL:
        return not all(tag in present for tag in rule.values)
    return not any(tag in present for tag in rule.values)


_CHECKS = (
    (RuleName.YEAR, _year_hides),
    (RuleName.DURATION, _duration_hides),
    (RuleName.GENRE, _genre_hides),
    (RuleName.BLACKLIST, _blacklist_hides),
    (RuleName.TAGS, _tags_hide),
)


def evaluate(record: ItemRecord, config: FilterConfig) -> FilterDecision:
    """Evaluate every enabled rule against ``record``."""
    if not config.enabled:
        return FilterDecision(hidden=False)

    verdicts: dict[RuleName, bool] = {}
    for name, check in _CHECKS:
        if getattr(config.rules, name.value).enabled:
            verdicts[name] = check(record, config)

    first = next((name for name, hides in verdicts.items() if hides), None)
    return FilterDecision(hidden=first is not None, rule=first, verdicts=verdicts)


def should_hide(record: ItemRecord, config: FilterConfig) -> bool:
    """True when any enabled rule hides ``record``."""
    return evaluate(record, config).hidden
