"""
apps/services/pipeline/host.py

The page a pipeline runs against.

The controller never touches markup directly; it asks a FeedHost for item
subtrees, for mutation notifications, to hide items and to scroll. Two
hosts exist: DocumentHost (a parsed HTML document, used offline and in
tests) and PlaywrightHost (a live browser page).
"""
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, List, Optional, Sequence

from libs.core.models import FeedItem

# Receives the items found inside one batch of inserted subtrees
MutationCallback = Callable[[List[FeedItem]], Awaitable[None]]

KEY_ATTR = "data-sieve-key"
HIDDEN_ATTR = "data-sieve-hidden"
YEAR_ATTR = "data-sieve-year"


class FeedHost(ABC):
    """Operations the processing controller needs from a page."""

    url: Optional[str] = None

    @abstractmethod
    async def query_items(self, selectors: Sequence[str]) -> List[FeedItem]:
        """
        Items matching any selector, outermost only, in document order.

        Keys are assigned on first sight and stay stable for the item's
        lifetime on the page.
        """

    @abstractmethod
    async def discover_items(
        self,
        date_selectors: Sequence[str],
        ancestor_selectors: Sequence[str],
        title_marker: Optional[str],
        max_ascent: int,
    ) -> List[FeedItem]:
        """
        Items found by walking up from date elements.

        For layouts the item selectors miss: from each date element, ascend
        at most ``max_ascent`` levels to an ancestor that matches one of
        ``ancestor_selectors`` and (when given) contains ``title_marker``.
        """

    @abstractmethod
    def subscribe(self, selectors: Sequence[str], callback: MutationCallback) -> None:
        """Deliver items inside newly inserted subtrees to ``callback``."""

    @abstractmethod
    def unsubscribe(self) -> None:
        """Stop mutation notifications."""

    @abstractmethod
    async def hide(self, key: str, container_selectors: Sequence[str] = (), mode: str = "style") -> bool:
        """
        Hide an item, or its closest matching container.

        ``mode`` is "style" (display: none) or "remove" (replace the
        element with a placeholder comment).
        """

    @abstractmethod
    async def reveal_all(self) -> int:
        """Undo every style-hidden item; returns how many were revealed."""

    @abstractmethod
    async def annotate_year(self, key: str, year: int, date_selectors: Sequence[str]) -> bool:
        """Append " (YYYY)" to the item's first date element, once."""

    @abstractmethod
    async def scroll_by(self, dy: int) -> None:
        ...

    @abstractmethod
    async def scroll_to(self, y: int) -> None:
        ...

    @abstractmethod
    async def scroll_position(self) -> int:
        ...

    @abstractmethod
    async def scroll_height(self) -> int:
        ...
