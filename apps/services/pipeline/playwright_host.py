"""
apps/services/pipeline/playwright_host.py

A FeedHost over a live Playwright page.

Item keys are stamped on the elements as ``data-sieve-key``; item subtrees
are shipped to Python as outerHTML and parsed with BeautifulSoup, so the
extractor sees the same kind of node as with DocumentHost. Insertions are
observed with a MutationObserver that marks inserted roots and pings
Python through an exposed function.
"""
import asyncio
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from bs4 import BeautifulSoup

from apps.services.pipeline.host import HIDDEN_ATTR, KEY_ATTR, YEAR_ATTR, FeedHost, MutationCallback
from libs.core.config import BrowserSettings
from libs.core.models import FeedItem

if TYPE_CHECKING:
    from playwright.async_api import Browser, Page, Playwright

logger = logging.getLogger(__name__)

INSERTED_ATTR = "data-sieve-inserted"

_QUERY_JS = '''(cfg) => {
    let counter = window.__sieveCounter || 0;
    const out = [];
    for (const el of document.querySelectorAll(cfg.selector)) {
        if (el.parentElement && el.parentElement.closest(cfg.selector)) continue;
        let key = el.getAttribute(cfg.keyAttr);
        if (!key) { key = `item-${++counter}`; el.setAttribute(cfg.keyAttr, key); }
        out.push({key: key, html: el.outerHTML});
    }
    window.__sieveCounter = counter;
    return out;
}'''

_DRAIN_JS = '''(cfg) => {
    let counter = window.__sieveCounter || 0;
    const seen = new Set();
    const out = [];
    for (const root of document.querySelectorAll(`[${cfg.insertedAttr}]`)) {
        root.removeAttribute(cfg.insertedAttr);
        const candidates = [];
        const owner = root.closest(cfg.selector);
        if (owner) candidates.push(owner);
        candidates.push(...root.querySelectorAll(cfg.selector));
        for (const el of candidates) {
            if (seen.has(el)) continue;
            if (el.parentElement && el.parentElement.closest(cfg.selector)) continue;
            seen.add(el);
            let key = el.getAttribute(cfg.keyAttr);
            if (!key) { key = `item-${++counter}`; el.setAttribute(cfg.keyAttr, key); }
            out.push({key: key, html: el.outerHTML});
        }
    }
    window.__sieveCounter = counter;
    return out;
}'''

_OBSERVE_JS = '''(cfg) => {
    if (window.__sieveObserver) return;
    window.__sieveObserver = new MutationObserver((records) => {
        let added = 0;
        for (const record of records) {
            for (const node of record.addedNodes) {
                if (node.nodeType === 1) { node.setAttribute(cfg.insertedAttr, '1'); added++; }
            }
        }
        if (added) window.sieveOnMutation(added);
    });
    window.__sieveObserver.observe(document.body, {childList: true, subtree: true});
}'''

_DISCOVER_JS = '''(cfg) => {
    let counter = window.__sieveCounter || 0;
    const seen = new Set();
    const out = [];
    for (const dateEl of document.querySelectorAll(cfg.dateSelector)) {
        let node = dateEl.parentElement;
        for (let depth = 0; node && depth < cfg.maxAscent; depth++, node = node.parentElement) {
            if (!node.matches(cfg.ancestorSelector)) continue;
            if (cfg.titleMarker && !node.querySelector(cfg.titleMarker)) continue;
            if (!seen.has(node)) {
                seen.add(node);
                let key = node.getAttribute(cfg.keyAttr);
                if (!key) { key = `item-${++counter}`; node.setAttribute(cfg.keyAttr, key); }
                out.push({key: key, html: node.outerHTML});
            }
            break;
        }
    }
    window.__sieveCounter = counter;
    return out;
}'''

_HIDE_JS = '''(cfg) => {
    const el = document.querySelector(`[${cfg.keyAttr}="${cfg.key}"]`);
    if (!el) return false;
    const target = (cfg.containers && el.closest(cfg.containers)) || el;
    if (cfg.mode === 'remove') {
        target.replaceWith(document.createComment(` feedsieve: hidden ${cfg.key} `));
    } else {
        target.style.setProperty('display', 'none', 'important');
        target.setAttribute(cfg.hiddenAttr, '1');
    }
    return true;
}'''

_ANNOTATE_JS = '''(cfg) => {
    const el = document.querySelector(`[${cfg.keyAttr}="${cfg.key}"]`);
    if (!el) return false;
    const dateEl = el.querySelector(cfg.dateSelector);
    if (!dateEl || dateEl.hasAttribute(cfg.yearAttr) || dateEl.textContent.includes(String(cfg.year))) return false;
    dateEl.appendChild(document.createTextNode(` (${cfg.year})`));
    dateEl.setAttribute(cfg.yearAttr, String(cfg.year));
    return true;
}'''


def _to_items(rows: List[Dict[str, Any]]) -> List[FeedItem]:
    items = []
    for row in rows:
        node = BeautifulSoup(row["html"], "html.parser").find()
        if node is not None:
            items.append(FeedItem(key=row["key"], node=node))
    return items


class PlaywrightHost(FeedHost):
    """FeedHost backed by a Chromium page."""

    def __init__(self, url: str, settings: Optional[BrowserSettings] = None, page: Optional["Page"] = None):
        self.url = url
        self.settings = settings or BrowserSettings()
        self.page = page
        self._playwright: Optional["Playwright"] = None
        self._browser: Optional["Browser"] = None
        self._subscription: Optional[tuple] = None
        self._exposed = False
        self._drain_task: Optional[asyncio.Task] = None
        self._observer_task: Optional[asyncio.Task] = None
        self._dirty = False

    async def start(self):
        """Launch a browser and open ``url`` unless a page was supplied."""
        if self.page is not None:
            return self
        from playwright.async_api import async_playwright

        self._playwright = await async_playwright().start()
        logger.info(f"[PlaywrightHost] Launching browser: headless={self.settings.headless}")
        self._browser = await self._playwright.chromium.launch(headless=self.settings.headless)
        context = await self._browser.new_context(
            viewport={"width": self.settings.viewport_width, "height": self.settings.viewport_height},
        )
        self.page = await context.new_page()
        await self.page.goto(self.url, wait_until="domcontentloaded", timeout=self.settings.timeout_ms)
        return self

    async def close(self):
        self.unsubscribe()
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    async def __aenter__(self):
        return await self.start()

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    # =========================================================================
    # Items
    # =========================================================================

    async def query_items(self, selectors: Sequence[str]) -> List[FeedItem]:
        if not selectors:
            return []
        rows = await self.page.evaluate(_QUERY_JS, {"selector": ", ".join(selectors), "keyAttr": KEY_ATTR})
        return _to_items(rows)

    async def discover_items(
        self,
        date_selectors: Sequence[str],
        ancestor_selectors: Sequence[str],
        title_marker: Optional[str],
        max_ascent: int,
    ) -> List[FeedItem]:
        if not date_selectors or not ancestor_selectors:
            return []
        rows = await self.page.evaluate(_DISCOVER_JS, {
            "dateSelector": ", ".join(date_selectors),
            "ancestorSelector": ", ".join(ancestor_selectors),
            "titleMarker": title_marker,
            "maxAscent": max_ascent,
            "keyAttr": KEY_ATTR,
        })
        return _to_items(rows)

    # =========================================================================
    # Mutations
    # =========================================================================

    def subscribe(self, selectors: Sequence[str], callback: MutationCallback) -> None:
        self._subscription = (", ".join(selectors), callback)
        self._observer_task = asyncio.ensure_future(self._install_observer())
        self._observer_task.add_done_callback(self._observer_installed)

    def unsubscribe(self) -> None:
        self._subscription = None
        if self._observer_task is not None and not self._observer_task.done():
            self._observer_task.cancel()
        if self._drain_task is not None and not self._drain_task.done():
            self._drain_task.cancel()

    async def _install_observer(self):
        if not self._exposed:
            await self.page.expose_function("sieveOnMutation", self._on_mutation)
            self._exposed = True
        await self.page.evaluate(_OBSERVE_JS, {"insertedAttr": INSERTED_ATTR})
        logger.debug("[PlaywrightHost] Mutation observer installed")

    def _observer_installed(self, task: asyncio.Task):
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"[PlaywrightHost] Mutation observer install failed: {error}")

    def _on_mutation(self, added: int):
        # Coalesce bursts: one drain handles every root marked so far
        if self._subscription is None:
            return
        self._dirty = True
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = asyncio.ensure_future(self._drain())

    async def _drain(self):
        while self._dirty and self._subscription is not None:
            self._dirty = False
            selector, callback = self._subscription
            rows = await self.page.evaluate(_DRAIN_JS, {
                "selector": selector, "keyAttr": KEY_ATTR, "insertedAttr": INSERTED_ATTR,
            })
            items = _to_items(rows)
            if items:
                await callback(items)

    # =========================================================================
    # Item actions
    # =========================================================================

    async def hide(self, key: str, container_selectors: Sequence[str] = (), mode: str = "style") -> bool:
        return await self.page.evaluate(_HIDE_JS, {
            "key": key,
            "keyAttr": KEY_ATTR,
            "hiddenAttr": HIDDEN_ATTR,
            "containers": ", ".join(container_selectors),
            "mode": mode,
        })

    async def reveal_all(self) -> int:
        return await self.page.evaluate('''(hiddenAttr) => {
            const hidden = document.querySelectorAll(`[${hiddenAttr}]`);
            for (const el of hidden) {
                el.removeAttribute(hiddenAttr);
                el.style.removeProperty('display');
            }
            return hidden.length;
        }''', HIDDEN_ATTR)

    async def annotate_year(self, key: str, year: int, date_selectors: Sequence[str]) -> bool:
        if not date_selectors:
            return False
        return await self.page.evaluate(_ANNOTATE_JS, {
            "key": key,
            "keyAttr": KEY_ATTR,
            "yearAttr": YEAR_ATTR,
            "dateSelector": ", ".join(date_selectors),
            "year": year,
        })

    # =========================================================================
    # Scrolling
    # =========================================================================

    async def scroll_by(self, dy: int) -> None:
        await self.page.evaluate("(dy) => window.scrollBy(0, dy)", dy)

    async def scroll_to(self, y: int) -> None:
        await self.page.evaluate("(y) => window.scrollTo(0, y)", y)

    async def scroll_position(self) -> int:
        return int(await self.page.evaluate("() => window.scrollY"))

    async def scroll_height(self) -> int:
        return int(await self.page.evaluate("() => document.documentElement.scrollHeight"))
