"""
Unit tests for the convergence scroll driver.

Tests apps/services/pipeline/scroll_driver.py
"""

import pytest

from apps.services.pipeline.scroll_driver import (
    CancellationToken,
    ConvergenceScrollDriver,
    StopReason,
)


class GrowingFeed:
    """Scroll surface that grows for the first ``grow_for`` scrolls."""

    def __init__(self, grow_for: int, start_y: int = 250, on_scroll=None):
        self.grow_for = grow_for
        self.y = start_y
        self.height = 1000
        self.scrolls = 0
        self.on_scroll = on_scroll

    async def scroll_by(self, dy):
        self.scrolls += 1
        self.y += dy
        if self.grow_for is None or self.scrolls <= self.grow_for:
            self.height += 500
        if self.on_scroll:
            self.on_scroll(self.scrolls)

    async def scroll_to(self, y):
        self.y = y

    async def scroll_position(self):
        return self.y

    async def scroll_height(self):
        return self.height


def driver(host, progress=lambda: 0, **kwargs):
    params = {"step_px": 800, "interval_s": 0, "stable_ticks": 3, "max_ticks": 50}
    params.update(kwargs)
    return ConvergenceScrollDriver(host, progress, **params)


class TestConvergence:
    @pytest.mark.asyncio
    async def test_stops_after_stable_window(self):
        host = GrowingFeed(grow_for=5)
        outcome = await driver(host).run(CancellationToken())
        assert outcome.reason == StopReason.CONVERGED
        assert outcome.ticks == 5 + 3

    @pytest.mark.asyncio
    async def test_restores_initial_position(self):
        host = GrowingFeed(grow_for=2, start_y=250)
        await driver(host).run(CancellationToken())
        assert host.scrolls > 0
        assert host.y == 250

    @pytest.mark.asyncio
    async def test_processed_count_keeps_it_going(self):
        """Hidden items shrink the page; new processed items still count as progress."""
        host = GrowingFeed(grow_for=0)
        counts = iter(range(1, 100))
        state = {"count": 0}

        def progress():
            return state["count"]

        host.on_scroll = lambda n: state.update(count=next(counts)) if n <= 4 else None
        outcome = await driver(host, progress).run(CancellationToken())
        assert outcome.reason == StopReason.CONVERGED
        assert outcome.ticks == 4 + 3

    @pytest.mark.asyncio
    async def test_cap(self):
        host = GrowingFeed(grow_for=None)
        outcome = await driver(host, max_ticks=10).run(CancellationToken())
        assert outcome.reason == StopReason.CAP
        assert outcome.ticks == 10
        assert host.y == 250


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_before_start(self):
        token = CancellationToken()
        token.cancel()
        host = GrowingFeed(grow_for=None)
        outcome = await driver(host).run(token)
        assert outcome.reason == StopReason.CANCELLED
        assert outcome.ticks == 0
        assert host.scrolls == 0

    @pytest.mark.asyncio
    async def test_cancelled_mid_run(self):
        token = CancellationToken()
        host = GrowingFeed(grow_for=None, on_scroll=lambda n: token.cancel() if n == 3 else None)
        outcome = await driver(host).run(token)
        assert outcome.reason == StopReason.CANCELLED
        assert outcome.ticks == 3
        assert host.y == 250
