"""
apps/services/pipeline/controller.py

Incremental processing controller.

Owns the per-context set of processed item keys. An item moves from unseen
to processed exactly once per page load; it is never re-extracted unless a
configuration change clears the whole set and restarts the pass.

Work arrives three ways:
- the initial pass over every item already present,
- mutation notifications for newly inserted subtrees,
- a periodic re-scan that catches insertions the mutation channel missed.

Items are evaluated in document order. Items whose year must be resolved
remotely are handed to a task of their own so siblings are not held up;
their decisions may land out of order. A decision computed under an older
configuration generation is discarded.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from apps.services.pipeline.host import FeedHost
from apps.services.pipeline.scroll_driver import CancellationToken, ConvergenceScrollDriver, ScrollOutcome
from libs.core.config import Settings, get_settings
from libs.core.logging_config import log_decision, log_pass_start
from libs.core.models import FeedItem, FilterConfig, ItemRecord
from libs.extraction.extractor import AttributeExtractor
from libs.filtering.evaluator import FilterDecision, evaluate

logger = logging.getLogger(__name__)


@dataclass
class ControllerStats:
    processed: int = 0
    hidden: int = 0
    shown: int = 0
    abstained: int = 0
    failed: int = 0
    discarded: int = 0
    by_rule: Dict[str, int] = field(default_factory=dict)


class ProcessingController:
    """
    Drives extraction and filtering for one context.

    Args:
        host: Page being filtered
        extractor: Extractor for the page's source
        config: Effective filter configuration
        context_id: Context (tab) identifier, used in logs
        settings: Application settings (intervals, hide mode, scroll tuning)
    """

    def __init__(
        self,
        host: FeedHost,
        extractor: AttributeExtractor,
        config: FilterConfig,
        context_id: str = "default",
        settings: Optional[Settings] = None,
    ):
        self.host = host
        self.extractor = extractor
        self.profile = extractor.profile
        self.config = config
        self.context_id = str(context_id)
        self.settings = settings or get_settings()

        self.processed: Set[str] = set()
        self.generation = 0
        self.stats = ControllerStats()
        # item key -> (record, decision) for the current generation
        self.decisions: Dict[str, Tuple[ItemRecord, FilterDecision]] = {}

        self._pending: Set[asyncio.Task] = set()
        self._rescan_task: Optional[asyncio.Task] = None
        self._scroll_task: Optional[asyncio.Task] = None
        self._scroll_token: Optional[CancellationToken] = None
        self._running = False

    @property
    def processed_count(self) -> int:
        return len(self.processed)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self):
        """Initial pass, mutation subscription, periodic re-scan and scroll driver."""
        self._running = True
        await self._wait_for_items()
        await self.rescan()
        self.host.subscribe(self.profile.item_selectors, self.process_items)
        self._rescan_task = asyncio.create_task(self._rescan_loop())
        self._start_scroll()
        logger.info(f"[Controller] [{self.context_id}] Started for {self.profile.name}")

    async def stop(self):
        """Tear down every background activity for this context."""
        self._running = False
        self.host.unsubscribe()
        if self._rescan_task is not None:
            self._rescan_task.cancel()
            await asyncio.gather(self._rescan_task, return_exceptions=True)
            self._rescan_task = None
        await self.stop_scroll()
        for task in list(self._pending):
            task.cancel()
        await asyncio.gather(*self._pending, return_exceptions=True)
        logger.info(f"[Controller] [{self.context_id}] Stopped: {self.stats}")

    async def apply_config(self, config: FilterConfig):
        """
        Switch to a new configuration and restart the pass.

        Clears every processed marker and bumps the generation, so pending
        remote-resolution decisions from the old pass are discarded when
        they land (their cache entries are still kept).
        """
        await self.stop_scroll()
        self.config = config
        self.generation += 1
        self.processed.clear()
        self.decisions.clear()
        revealed = await self.host.reveal_all()
        logger.info(
            f"[Controller] [{self.context_id}] Config changed; generation {self.generation}, "
            f"revealed {revealed} items"
        )
        await self.rescan()
        if self._running:
            self._start_scroll()

    async def wait_idle(self):
        """Wait for every pending remote-resolution decision."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # =========================================================================
    # Passes
    # =========================================================================

    async def _wait_for_items(self):
        deadline = asyncio.get_running_loop().time() + self.settings.pipeline.wait_for_items_s
        while True:
            if await self.host.query_items(self.profile.item_selectors):
                return
            if asyncio.get_running_loop().time() >= deadline:
                logger.info(f"[Controller] [{self.context_id}] No items yet; starting anyway")
                return
            await asyncio.sleep(0.5)

    async def _collect(self) -> List[FeedItem]:
        items = await self.host.query_items(self.profile.item_selectors)
        discovery = self.profile.discovery
        if discovery is not None:
            known = {item.key for item in items}
            extra = await self.host.discover_items(
                discovery.date_selectors,
                discovery.ancestor_selectors,
                discovery.title_marker,
                discovery.max_ascent,
            )
            items.extend(item for item in extra if item.key not in known)
        return items

    async def rescan(self) -> int:
        """Scan the whole page for unseen items."""
        items = await self._collect()
        unseen = [item for item in items if item.key not in self.processed]
        if unseen:
            log_pass_start(logger, self.context_id, self.generation, len(unseen))
        return await self.process_items(unseen)

    async def _rescan_loop(self):
        while True:
            await asyncio.sleep(self.settings.pipeline.rescan_interval_s)
            try:
                await self.rescan()
            except Exception as e:
                logger.error(f"[Controller] [{self.context_id}] Re-scan failed: {e}", exc_info=True)

    async def process_items(self, items: List[FeedItem]) -> int:
        """Process unseen items in document order; returns how many were taken."""
        generation = self.generation
        taken = 0
        for item in items:
            # Superseded by apply_config; the new pass owns the remaining items
            if generation != self.generation:
                break
            if item.key in self.processed:
                continue
            self.processed.add(item.key)
            self.stats.processed += 1
            taken += 1

            try:
                record = self.extractor.extract(item)
            except Exception as e:
                self.stats.failed += 1
                logger.warning(f"[Controller] [{self.context_id}] Extraction failed for {item.key}: {e}")
                continue

            if record is None:
                self.stats.abstained += 1
                continue

            if self.extractor.needs_remote_year(record):
                self._spawn(self._resolve_and_apply(item, record, generation))
            else:
                await self._apply(item, record, generation)
        return taken

    def _spawn(self, coro):
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _resolve_and_apply(self, item: FeedItem, record: ItemRecord, generation: int):
        try:
            record = await self.extractor.resolve_year(record)
        except Exception as e:
            logger.warning(f"[Controller] [{self.context_id}] Year resolution failed for {record.id}: {e}")
        await self._apply(item, record, generation)

    async def _apply(self, item: FeedItem, record: ItemRecord, generation: int):
        if generation != self.generation:
            self.stats.discarded += 1
            logger.debug(f"[Controller] [{self.context_id}] Discarding stale decision for {record.id}")
            return

        decision = evaluate(record, self.config)
        self.decisions[item.key] = (record, decision)
        log_decision(logger, self.context_id, record.id, decision.hidden, decision.rule.value if decision.rule else None)

        try:
            if decision.hidden:
                self.stats.hidden += 1
                rule = decision.rule.value
                self.stats.by_rule[rule] = self.stats.by_rule.get(rule, 0) + 1
                await self.host.hide(
                    item.key,
                    self.profile.container_selectors,
                    self.settings.pipeline.hide_mode,
                )
            else:
                self.stats.shown += 1
                if record.year_verified and record.year is not None and self.config.options.show_verified_year:
                    await self.host.annotate_year(item.key, record.year, self.profile.date_selectors)
        except Exception as e:
            logger.warning(f"[Controller] [{self.context_id}] Could not apply decision to {item.key}: {e}")

    # =========================================================================
    # Scroll driver
    # =========================================================================

    def _start_scroll(self):
        if not self.config.has_active_rules():
            return
        self._scroll_token = CancellationToken()
        driver = ConvergenceScrollDriver.from_settings(
            self.host, lambda: self.processed_count, self.settings.scroll
        )
        self._scroll_task = asyncio.create_task(driver.run(self._scroll_token))

    async def stop_scroll(self) -> Optional[ScrollOutcome]:
        """Cancel the scroll driver and wait for it to restore the scroll position."""
        if self._scroll_task is None:
            return None
        self._scroll_token.cancel()
        task, self._scroll_task = self._scroll_task, None
        try:
            return await task
        except Exception as e:
            logger.warning(f"[Controller] [{self.context_id}] Scroll driver failed: {e}")
            return None

    async def wait_scroll(self) -> Optional[ScrollOutcome]:
        """Wait for the scroll driver to finish on its own."""
        if self._scroll_task is None:
            return None
        return await self._scroll_task
