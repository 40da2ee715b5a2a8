"""
apps/services/pipeline/document_host.py

A FeedHost over a parsed HTML document.

Scrolling is simulated: every visible top-level child of the feed
container is ``item_height`` pixels tall, and reaching the bottom appends
the next queued page fragment, which is announced to the mutation
subscriber like a real insertion. Used by the offline CLI and the tests.
"""
import logging
from collections import deque
from typing import Iterable, List, Optional, Sequence

from bs4 import BeautifulSoup, Comment, Tag

from apps.services.pipeline.host import HIDDEN_ATTR, KEY_ATTR, YEAR_ATTR, FeedHost, MutationCallback
from libs.core.models import FeedItem

logger = logging.getLogger(__name__)


class DocumentHost(FeedHost):
    """
    Args:
        html: Initial document
        url: Page URL, used for page-level identity
        pages: Fragments appended, one per bottom-reach, to the feed container
        feed_selector: Container that receives page fragments (default body)
        item_height: Simulated pixel height of each visible feed child
        viewport_height: Simulated viewport height
    """

    def __init__(
        self,
        html: str,
        url: Optional[str] = None,
        pages: Sequence[str] = (),
        feed_selector: Optional[str] = None,
        item_height: int = 100,
        viewport_height: int = 800,
    ):
        self.soup = BeautifulSoup(html, "html.parser")
        self.url = url
        self.feed_selector = feed_selector
        self.item_height = item_height
        self.viewport_height = viewport_height

        self._pending_pages = deque(pages)
        self._position = 0
        self._next_key = 0
        self._subscription: Optional[tuple] = None

    # =========================================================================
    # Items
    # =========================================================================

    def _key_for(self, tag: Tag) -> str:
        key = tag.get(KEY_ATTR)
        if not key:
            self._next_key += 1
            key = f"item-{self._next_key}"
            tag[KEY_ATTR] = key
        return key

    def _find(self, key: str) -> Optional[Tag]:
        return self.soup.find(attrs={KEY_ATTR: key})

    def _has_matching_ancestor(self, tag: Tag, selector: str) -> bool:
        for parent in tag.parents:
            if parent is self.soup or not isinstance(parent, Tag):
                return False
            if parent.css.match(selector):
                return True
        return False

    def _outermost(self, roots: Iterable[Tag], selector: str) -> List[Tag]:
        found: List[Tag] = []
        seen = set()
        for root in roots:
            candidates = root.select(selector)
            if root is not self.soup and root.css.match(selector):
                candidates.insert(0, root)
            for tag in candidates:
                if id(tag) in seen or self._has_matching_ancestor(tag, selector):
                    continue
                seen.add(id(tag))
                found.append(tag)
        return found

    def _items(self, tags: Iterable[Tag]) -> List[FeedItem]:
        return [FeedItem(key=self._key_for(tag), node=tag) for tag in tags]

    async def query_items(self, selectors: Sequence[str]) -> List[FeedItem]:
        if not selectors:
            return []
        return self._items(self._outermost([self.soup], ", ".join(selectors)))

    async def discover_items(
        self,
        date_selectors: Sequence[str],
        ancestor_selectors: Sequence[str],
        title_marker: Optional[str],
        max_ascent: int,
    ) -> List[FeedItem]:
        if not date_selectors or not ancestor_selectors:
            return []
        ancestor = ", ".join(ancestor_selectors)
        found: List[Tag] = []
        seen = set()
        for date_el in self.soup.select(", ".join(date_selectors)):
            for depth, parent in enumerate(date_el.parents):
                if depth >= max_ascent or parent is self.soup or not isinstance(parent, Tag):
                    break
                if not parent.css.match(ancestor):
                    continue
                if title_marker and parent.select_one(title_marker) is None:
                    continue
                if id(parent) not in seen:
                    seen.add(id(parent))
                    found.append(parent)
                break
        return self._items(found)

    # =========================================================================
    # Mutations
    # =========================================================================

    def subscribe(self, selectors: Sequence[str], callback: MutationCallback) -> None:
        self._subscription = (", ".join(selectors), callback)

    def unsubscribe(self) -> None:
        self._subscription = None

    def _container(self) -> Tag:
        if self.feed_selector:
            container = self.soup.select_one(self.feed_selector)
            if container is not None:
                return container
        return self.soup.body or self.soup

    async def append_html(self, fragment: str) -> List[Tag]:
        """Insert a fragment into the feed container and notify the subscriber."""
        container = self._container()
        inserted = []
        for node in list(BeautifulSoup(fragment, "html.parser").contents):
            node = node.extract()
            container.append(node)
            if isinstance(node, Tag):
                inserted.append(node)

        if self._subscription is not None and inserted:
            selector, callback = self._subscription
            items = self._items(self._outermost(inserted, selector))
            if items:
                await callback(items)
        return inserted

    # =========================================================================
    # Item actions
    # =========================================================================

    def _closest(self, tag: Tag, selectors: Sequence[str]) -> Tag:
        if not selectors:
            return tag
        selector = ", ".join(selectors)
        if tag.css.match(selector):
            return tag
        for parent in tag.parents:
            if parent is self.soup or not isinstance(parent, Tag):
                break
            if parent.css.match(selector):
                return parent
        return tag

    async def hide(self, key: str, container_selectors: Sequence[str] = (), mode: str = "style") -> bool:
        tag = self._find(key)
        if tag is None:
            return False
        target = self._closest(tag, container_selectors)
        if mode == "remove":
            target.replace_with(Comment(f" feedsieve: hidden {key} "))
        else:
            target["style"] = "display: none !important;"
            target[HIDDEN_ATTR] = "1"
        return True

    async def reveal_all(self) -> int:
        revealed = 0
        for tag in self.soup.find_all(attrs={HIDDEN_ATTR: True}):
            del tag[HIDDEN_ATTR]
            if "style" in tag.attrs:
                del tag["style"]
            revealed += 1
        return revealed

    async def annotate_year(self, key: str, year: int, date_selectors: Sequence[str]) -> bool:
        tag = self._find(key)
        if tag is None or not date_selectors:
            return False
        date_el = tag.select_one(", ".join(date_selectors))
        if date_el is None or date_el.get(YEAR_ATTR) or str(year) in date_el.get_text():
            return False
        date_el.append(f" ({year})")
        date_el[YEAR_ATTR] = str(year)
        return True

    def is_hidden(self, key: str) -> bool:
        """True when the item (or its container) was hidden or removed."""
        tag = self._find(key)
        if tag is None:
            return True
        if tag.get(HIDDEN_ATTR):
            return True
        return any(
            isinstance(p, Tag) and p.get(HIDDEN_ATTR) for p in tag.parents
        )

    # =========================================================================
    # Scrolling
    # =========================================================================

    async def scroll_height(self) -> int:
        visible = 0
        for child in self._container().find_all(recursive=False):
            if child.get(HIDDEN_ATTR):
                continue
            visible += 1
        return visible * self.item_height

    async def scroll_position(self) -> int:
        return self._position

    async def scroll_to(self, y: int) -> None:
        self._position = max(0, y)

    async def scroll_by(self, dy: int) -> None:
        height = await self.scroll_height()
        self._position = max(0, min(self._position + dy, max(0, height - self.viewport_height)))
        if self._position + self.viewport_height >= height and self._pending_pages:
            logger.debug("[DocumentHost] Bottom reached; appending next page")
            await self.append_html(self._pending_pages.popleft())
