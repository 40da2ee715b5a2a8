"""
apps/services/pipeline/scroll_driver.py

Convergence scroll driver: forces progressive loading until the feed is
exhausted.

Each tick scrolls forward one step, waits one interval, then compares page
height and processed-item count with the previous tick. The feed counts as
converged after ``stable_ticks`` consecutive ticks in which neither moved.
Processed count is tracked as well as height because hiding items shrinks
the page, which looks like "no new content" from height alone.

The initial scroll position is always restored, whether the run converged,
hit the cap or was cancelled.
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from apps.services.pipeline.host import FeedHost
from libs.core.config import ScrollSettings

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation for long-running operations."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout``; True if cancelled meanwhile."""
        try:
            await asyncio.wait_for(self._event.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True


class StopReason(str, Enum):
    CONVERGED = "converged"
    CAP = "cap"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ScrollOutcome:
    ticks: int
    reason: StopReason


class ConvergenceScrollDriver:
    """
    Args:
        host: Page to scroll
        progress: Returns the current processed-item count
        step_px: Pixels per forward scroll
        interval_s: Delay between ticks
        stable_ticks: No-progress ticks before stopping
        max_ticks: Hard cap on ticks
    """

    def __init__(
        self,
        host: FeedHost,
        progress: Callable[[], int],
        step_px: int = 1000,
        interval_s: float = 0.2,
        stable_ticks: int = 15,
        max_ticks: int = 500,
    ):
        self.host = host
        self.progress = progress
        self.step_px = step_px
        self.interval_s = interval_s
        self.stable_ticks = stable_ticks
        self.max_ticks = max_ticks

    @classmethod
    def from_settings(
        cls,
        host: FeedHost,
        progress: Callable[[], int],
        settings: Optional[ScrollSettings] = None,
    ) -> "ConvergenceScrollDriver":
        settings = settings or ScrollSettings()
        return cls(
            host,
            progress,
            step_px=settings.step_px,
            interval_s=settings.interval_s,
            stable_ticks=settings.stable_ticks,
            max_ticks=settings.max_ticks,
        )

    async def run(self, token: CancellationToken) -> ScrollOutcome:
        initial = await self.host.scroll_position()
        last_height = await self.host.scroll_height()
        last_count = self.progress()
        stable = 0
        ticks = 0
        reason = StopReason.CAP

        logger.info(f"[ScrollDriver] Start (step={self.step_px}px, stable={self.stable_ticks}, cap={self.max_ticks})")
        try:
            while ticks < self.max_ticks:
                if token.cancelled:
                    reason = StopReason.CANCELLED
                    break

                await self.host.scroll_by(self.step_px)
                ticks += 1

                if await token.wait(self.interval_s):
                    reason = StopReason.CANCELLED
                    break

                height = await self.host.scroll_height()
                count = self.progress()
                if height == last_height and count == last_count:
                    stable += 1
                else:
                    stable = 0
                last_height, last_count = height, count

                if stable >= self.stable_ticks:
                    reason = StopReason.CONVERGED
                    break
        finally:
            await self.host.scroll_to(initial)

        logger.info(f"[ScrollDriver] Stopped after {ticks} ticks: {reason.value}")
        return ScrollOutcome(ticks=ticks, reason=reason)
