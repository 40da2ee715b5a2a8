"""Filter evaluation for extracted item records."""

from libs.filtering.evaluator import FilterDecision, evaluate, should_hide

__all__ = ["FilterDecision", "evaluate", "should_hide"]
