"""
apps/services/metadata/resolution_cache.py

TTL-bounded, two-tier, coalescing publish-year lookups.

Per key: UNRESOLVED -> IN_FLIGHT -> RESOLVED | UNRESOLVABLE.

- A fresh entry is served with no I/O.
- Concurrent lookups for the same key share one pending task.
- Tier 1 (page scrape) runs first; tier 2 (API) only when it failed and a
  credential is configured.
- Failures are never cached, so the next pass retries.
- Entries older than the TTL are ignored and overwritten on the next
  successful resolution; nothing sweeps them proactively.
"""
import asyncio
import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from apps.services.settings.storage import METADATA_CACHE_KEY, KeyValueStorage
from libs.core.exceptions import ResolutionTransientFailure, StorageUnavailable
from libs.core.models import CacheEntry

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000


class ResolutionState(str, Enum):
    UNRESOLVED = "unresolved"
    IN_FLIGHT = "in_flight"
    RESOLVED = "resolved"
    UNRESOLVABLE = "unresolvable"


@dataclass(frozen=True)
class Resolution:
    """Result of one ``resolve_year`` call."""

    year: Optional[int]
    was_cached: bool = False


class MetadataResolutionCache:
    """
    Year lookups keyed by item id.

    Args:
        storage: Record store holding the ``metadata_cache`` record
        scrape_resolver: Tier 1, ``async resolve(item_id)``
        api_resolver: Tier 2, ``async resolve(item_id, credential)``
        credentials: CredentialStore consulted before every tier-2 attempt
        ttl_days: Entry lifetime
        clock: Seconds since the epoch
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        scrape_resolver: Any,
        api_resolver: Any = None,
        credentials: Any = None,
        ttl_days: int = 7,
        clock: Callable[[], float] = time.time,
    ):
        self.storage = storage
        self.scrape_resolver = scrape_resolver
        self.api_resolver = api_resolver
        self.credentials = credentials
        self.ttl_ms = ttl_days * DAY_MS
        self.clock = clock

        self._in_flight: Dict[str, asyncio.Task] = {}
        self._states: Dict[str, ResolutionState] = {}
        self._write_lock = asyncio.Lock()

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def state(self, item_id: str) -> ResolutionState:
        return self._states.get(item_id, ResolutionState.UNRESOLVED)

    async def _entries(self) -> Dict[str, Any]:
        try:
            data = await self.storage.get(METADATA_CACHE_KEY, {})
        except StorageUnavailable as e:
            logger.warning(f"[ResolutionCache] {e}; treating cache as empty")
            return {}
        return data if isinstance(data, dict) else {}

    async def lookup(self, item_id: str) -> Optional[CacheEntry]:
        """Fresh cache entry for ``item_id``, or None."""
        raw = (await self._entries()).get(item_id)
        if raw is None:
            return None
        try:
            entry = CacheEntry.model_validate(raw)
        except ValidationError:
            logger.debug(f"[ResolutionCache] Ignoring malformed entry for {item_id}")
            return None
        if not entry.is_fresh(self._now_ms(), self.ttl_ms):
            return None
        return entry

    async def resolve_year(self, item_id: str) -> Resolution:
        """Resolve the publish year for ``item_id``; year is None when unresolvable."""
        entry = await self.lookup(item_id)
        if entry is not None:
            self._states[item_id] = ResolutionState.RESOLVED
            return Resolution(year=entry.year, was_cached=True)

        task = self._in_flight.get(item_id)
        if task is None:
            task = asyncio.create_task(self._resolve_uncached(item_id))
            self._in_flight[item_id] = task
            self._states[item_id] = ResolutionState.IN_FLIGHT
            task.add_done_callback(lambda t, key=item_id: self._forget(key, t))
        else:
            logger.debug(f"[ResolutionCache] Coalescing lookup for {item_id}")

        # Shielded so one cancelled waiter does not cancel the shared lookup
        year = await asyncio.shield(task)
        return Resolution(year=year, was_cached=False)

    def _forget(self, item_id: str, task: asyncio.Task):
        if self._in_flight.get(item_id) is task:
            del self._in_flight[item_id]

    async def _tier(self, name: str, item_id: str, call) -> Optional[int]:
        try:
            return await call()
        except ResolutionTransientFailure as e:
            logger.info(f"[ResolutionCache] {e}")
        except Exception as e:
            logger.warning(f"[ResolutionCache] {name} resolver error for {item_id}: {e}")
        return None

    async def _resolve_uncached(self, item_id: str) -> Optional[int]:
        year = await self._tier("scrape", item_id, lambda: self.scrape_resolver.resolve(item_id))

        if year is None and self.api_resolver is not None and self.credentials is not None:
            credential = await self.credentials.get()
            if credential:
                year = await self._tier(
                    "api", item_id, lambda: self.api_resolver.resolve(item_id, credential)
                )

        if year is None:
            self._states[item_id] = ResolutionState.UNRESOLVABLE
            logger.info(f"[ResolutionCache] {item_id} unresolvable this pass")
            return None

        await self._store(item_id, year)
        self._states[item_id] = ResolutionState.RESOLVED
        return year

    async def _store(self, item_id: str, year: int):
        entry = CacheEntry(year=year, fetched_at_ms=self._now_ms())
        async with self._write_lock:
            try:
                entries = await self._entries()
                entries[item_id] = entry.model_dump()
                await self.storage.set(METADATA_CACHE_KEY, entries)
            except StorageUnavailable as e:
                logger.warning(f"[ResolutionCache] Could not persist {item_id}: {e}")
                return
        logger.debug(f"[ResolutionCache] Cached {item_id} -> {year}")

    async def clear(self) -> bool:
        """Drop every cached entry."""
        async with self._write_lock:
            try:
                await self.storage.delete(METADATA_CACHE_KEY)
            except StorageUnavailable as e:
                logger.error(f"[ResolutionCache] Clear failed: {e}")
                return False
        self._states.clear()
        logger.info("[ResolutionCache] Cache cleared")
        return True

    async def stats(self) -> Dict[str, int]:
        """Entry count and approximate serialized size (expired entries included)."""
        entries = await self._entries()
        size = len(json.dumps(entries, ensure_ascii=False).encode("utf-8"))
        return {"count": len(entries), "approx_size_bytes": size}

    async def aclose(self):
        for resolver in (self.scrape_resolver, self.api_resolver):
            close = getattr(resolver, "aclose", None)
            if close is not None:
                await close()
