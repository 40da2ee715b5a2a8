"""
Attribute extraction for feed items.

Turns one item subtree into an ``ItemRecord`` by walking each field's
strategy list from the source profile; the first strategy that yields a
value wins. Only the title is mandatory: without it the item abstains and
is never classified. Extraction is a pure function of the subtree and the
pass clock, so re-extracting an unchanged subtree gives the same record.

When the profile allows it and the item carries no year of its own, the
year is looked up through the metadata resolution cache.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Optional

from libs.core.exceptions import ExtractionAbstain, FeedSieveError
from libs.core.models import FeedItem, ItemRecord
from libs.extraction.sources import FIELDS, SourceProfile
from libs.extraction.strategies import StrategyContext, run_strategy

logger = logging.getLogger(__name__)

SYNTHETIC_ID_PREFIX = "local:"


def synthetic_id(title: str, author: str) -> str:
    """Deterministic identity for items whose markup carries no id."""
    return f"{SYNTHETIC_ID_PREFIX}{title.lower()}|{author.lower()}"


class AttributeExtractor:
    """
    Per-source extractor.

    Args:
        profile: Strategy tables for the source
        year_resolver: Object with ``async resolve_year(item_id)``; usually
            the MetadataResolutionCache
        page_url: URL of the page being processed (for page-level identity)
        clock: Returns "now" for relative-date parsing
    """

    def __init__(
        self,
        profile: SourceProfile,
        year_resolver: Any = None,
        page_url: Optional[str] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.profile = profile
        self.year_resolver = year_resolver
        self.page_url = page_url
        self.clock = clock

    def _context(self) -> StrategyContext:
        return StrategyContext(
            now=self.clock(),
            locales=self.profile.locales,
            page_url=self.page_url,
        )

    def extract_field(self, name: str, node: Any, ctx: Optional[StrategyContext] = None) -> Any:
        """First non-empty result from the field's strategies, or None."""
        ctx = ctx or self._context()
        for spec in self.profile.fields.for_field(name):
            value = run_strategy(node, spec, ctx)
            if value is not None and value != [] and value != "":
                return value
        return None

    def extract(self, item: FeedItem) -> Optional[ItemRecord]:
        """Extract a record from local markup only; None when the item abstains."""
        try:
            return self.extract_strict(item)
        except ExtractionAbstain as e:
            logger.debug(f"[Extractor] {e}")
            return None

    def extract_strict(self, item: FeedItem) -> ItemRecord:
        """
        Extract a record from local markup only.

        Raises:
            ExtractionAbstain: no strategy located the title
        """
        ctx = self._context()
        values = {name: self.extract_field(name, item.node, ctx) for name in FIELDS}

        title = values["title"]
        if not title:
            raise ExtractionAbstain("title", item_key=item.key, context={"source": self.profile.name})

        author = values["author"] or ""
        return ItemRecord(
            id=values["id"] or synthetic_id(title, author),
            title=title,
            author=author,
            duration_seconds=values["duration"],
            year=values["year"],
            tags=tuple(values["tags"] or ()),
            source=self.profile.name,
        )

    def needs_remote_year(self, record: ItemRecord) -> bool:
        return (
            record.year is None
            and self.profile.remote_year
            and self.year_resolver is not None
            and not record.id.startswith(SYNTHETIC_ID_PREFIX)
        )

    async def resolve_year(self, record: ItemRecord) -> ItemRecord:
        """Fill in the year from the resolution cache; unchanged when unresolved."""
        try:
            resolution = await self.year_resolver.resolve_year(record.id)
        except FeedSieveError as e:
            logger.warning(f"[Extractor] Year lookup failed for {record.id}: {e}")
            return record

        if resolution.year is None:
            return record
        return replace(record, year=resolution.year, year_verified=True)

    async def extract_resolved(self, item: FeedItem) -> Optional[ItemRecord]:
        """Extract, then consult the resolution cache if the year is missing."""
        record = self.extract(item)
        if record is not None and self.needs_remote_year(record):
            record = await self.resolve_year(record)
        return record
