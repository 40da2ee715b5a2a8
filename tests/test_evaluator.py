"""
Unit tests for filter evaluation.

Tests libs/filtering/evaluator.py
"""

import pytest

from libs.core.models import FilterConfig, ItemRecord, RuleName, merge_config
from libs.filtering.evaluator import evaluate, should_hide


def record(**kwargs) -> ItemRecord:
    base = {"id": "x1", "title": "x", "author": "y"}
    base.update(kwargs)
    if "tags" in base:
        base["tags"] = tuple(base["tags"])
    return ItemRecord(**base)


def config(rules: dict, **extra) -> FilterConfig:
    return merge_config({"rules": rules, **extra})


class TestNoRules:
    """With nothing enabled, nothing is hidden."""

    @pytest.mark.parametrize("rec", [
        record(),
        record(year=None, duration_seconds=None),
        record(year=1960, duration_seconds=10000, tags=["house"]),
    ])
    def test_never_hides(self, rec):
        assert should_hide(rec, FilterConfig()) is False

    def test_disabled_config_ignores_rules(self):
        cfg = config({"year": {"enabled": True, "min": 2020, "max": 2021}}, enabled=False)
        assert should_hide(record(year=1999), cfg) is False


class TestYearRule:
    """Unknown-year policy and the year window."""

    def test_unknown_hidden_when_show_unknown_off(self):
        cfg = config({"year": {"enabled": True, "showUnknown": False}})
        assert should_hide(record(year=None), cfg) is True

    def test_unknown_shown_when_show_unknown_on(self):
        cfg = config({"year": {"enabled": True, "showUnknown": True}})
        assert should_hide(record(year=None), cfg) is False

    def test_unknown_shown_by_default(self):
        cfg = config({"year": {"enabled": True}})
        assert should_hide(record(year=None), cfg) is False

    def test_window(self):
        cfg = config({"year": {"enabled": True, "min": 2010, "max": 2020, "showUnknown": False}})
        assert should_hide(record(year=2019), cfg) is False
        assert should_hide(record(year=2010), cfg) is False
        assert should_hide(record(year=2021), cfg) is True
        assert should_hide(record(year=2009), cfg) is True


class TestDurationRule:
    """Unknown durations are never hidden by this rule."""

    def test_exceeds_max(self):
        cfg = config({"duration": {"enabled": True, "min": 0, "max": 1800}})
        rec = record(title="festival set 2015", duration_seconds=3723)
        decision = evaluate(rec, cfg)
        assert decision.hidden is True
        assert decision.rule == RuleName.DURATION

    def test_unknown_duration_shown(self):
        cfg = config({"duration": {"enabled": True, "min": 60, "max": 600}})
        assert should_hide(record(duration_seconds=None), cfg) is False


class TestTermRules:
    """Allow-list hides unless matched; block-list hides when matched."""

    def test_allow_list_hides_without_match(self):
        cfg = config({"genre": {"enabled": True, "value": "rock"}})
        assert should_hide(record(title="x", author="y"), cfg) is True

    def test_allow_list_shows_with_match(self):
        cfg = config({"genre": {"enabled": True, "value": "rock"}})
        assert should_hide(record(title="Classic ROCK anthems", author="y"), cfg) is False
        assert should_hide(record(title="x", author="The Rockers"), cfg) is False

    def test_allow_list_any_term(self):
        cfg = config({"genre": {"enabled": True, "value": "jazz, house"}})
        assert should_hide(record(title="deep house mix"), cfg) is False

    def test_empty_allow_list_is_no_constraint(self):
        cfg = config({"genre": {"enabled": True, "value": " , "}})
        assert should_hide(record(), cfg) is False

    def test_block_list(self):
        cfg = config({"blacklist": {"enabled": True, "keywords": "remix, live"}})
        assert should_hide(record(title="Song (Remix)"), cfg) is True
        assert should_hide(record(title="Song"), cfg) is False


class TestTagRule:
    """any / all membership modes."""

    def test_any(self):
        cfg = config({"tags": {"enabled": True, "values": ["#house", "techno"], "mode": "any"}})
        assert should_hide(record(tags=["house"]), cfg) is False
        assert should_hide(record(tags=["ambient"]), cfg) is True
        assert should_hide(record(tags=[]), cfg) is True

    def test_all(self):
        cfg = config({"tags": {"enabled": True, "values": "house, techno", "matchMode": "all"}})
        assert should_hide(record(tags=["house", "techno", "ambient"]), cfg) is False
        assert should_hide(record(tags=["house"]), cfg) is True


class TestDiagnostics:
    """Every enabled rule is evaluated; the first hiding rule is reported."""

    def test_all_verdicts_recorded(self):
        cfg = config({
            "year": {"enabled": True, "min": 2010, "max": 2020},
            "duration": {"enabled": True, "min": 0, "max": 600},
            "blacklist": {"enabled": True, "keywords": "live"},
        })
        decision = evaluate(record(title="live set", year=2005, duration_seconds=3000), cfg)
        assert decision.hidden is True
        assert decision.rule == RuleName.YEAR
        assert decision.verdicts == {
            RuleName.YEAR: True,
            RuleName.DURATION: True,
            RuleName.BLACKLIST: True,
        }

    def test_shown_has_no_rule(self):
        cfg = config({"year": {"enabled": True, "min": 2010, "max": 2020}})
        decision = evaluate(record(year=2015), cfg)
        assert decision.hidden is False
        assert decision.rule is None
        assert decision.verdicts == {RuleName.YEAR: False}
