"""
apps/services/metadata/resolvers.py

Remote publish-year lookups, cheapest first:

1. PageScrapeResolver: fetch the item's canonical page and read the upload
   date from its metadata (``<meta itemprop="uploadDate">``, then
   ``datePublished``, then the embedded initial-data blob).
2. ApiResolver: the authenticated videos API (``snippet.publishedAt``).

A resolver returns ``None`` when the source answered but carries no year,
and raises ResolutionTransientFailure when the request itself failed.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional
from urllib.parse import quote

import httpx
from bs4 import BeautifulSoup

from libs.core.config import HttpSettings
from libs.core.exceptions import ResolutionTransientFailure
from libs.parsing.text_parser import parse_absolute_year, parse_datetime_attr

logger = logging.getLogger(__name__)

_INITIAL_DATA = re.compile(r"var ytInitialData\s*=\s*(\{.+?\});\s*</script>", re.DOTALL)


def _dig(data: Any, *path: Any) -> Any:
    for key in path:
        if isinstance(key, int):
            if not isinstance(data, list) or len(data) <= key:
                return None
        elif not isinstance(data, dict):
            return None
        data = data[key] if isinstance(key, int) else data.get(key)
    return data


def extract_year_from_page(html: str) -> Optional[int]:
    """Publish year from a watch page's markup, or None."""
    soup = BeautifulSoup(html, "html.parser")
    for prop in ("uploadDate", "datePublished"):
        meta = soup.find("meta", attrs={"itemprop": prop})
        if meta is not None:
            year = parse_datetime_attr(meta.get("content"))
            if year is not None:
                return year

    match = _INITIAL_DATA.search(html)
    if not match:
        return None
    try:
        data = json.loads(match.group(1))
    except json.JSONDecodeError:
        return None
    date_text = _dig(
        data,
        "contents", "twoColumnWatchNextResults", "results", "results", "contents",
        0, "videoPrimaryInfoRenderer", "dateText", "simpleText",
    )
    return parse_absolute_year(date_text) if isinstance(date_text, str) else None


class PageScrapeResolver:
    """Tier 1: scrape the canonical page for the item."""

    tier = "scrape"

    def __init__(self, settings: Optional[HttpSettings] = None, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings or HttpSettings()
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.settings.timeout_s,
                headers={"User-Agent": self.settings.user_agent},
                follow_redirects=True,
            )
        return self._client

    async def resolve(self, item_id: str) -> Optional[int]:
        url = self.settings.scrape_url_template.format(item_id=quote(item_id, safe=""))
        try:
            response = await self.client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ResolutionTransientFailure(item_id, self.tier, str(e) or type(e).__name__) from e

        year = extract_year_from_page(response.text)
        logger.debug(f"[Resolver] scrape {item_id} -> {year}")
        return year

    async def aclose(self):
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None


class ApiResolver:
    """Tier 2: authenticated API lookup. Only used when a credential is set."""

    tier = "api"

    def __init__(self, settings: Optional[HttpSettings] = None, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings or HttpSettings()
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.settings.timeout_s)
        return self._client

    async def resolve(self, item_id: str, credential: str) -> Optional[int]:
        params = {"id": item_id, "part": "snippet", "key": credential}
        try:
            response = await self.client.get(self.settings.api_endpoint, params=params)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise ResolutionTransientFailure(item_id, self.tier, str(e) or type(e).__name__) from e
        except ValueError as e:
            raise ResolutionTransientFailure(item_id, self.tier, f"bad payload: {e}") from e

        published = _dig(data, "items", 0, "snippet", "publishedAt")
        year = parse_datetime_attr(published) if isinstance(published, str) else None
        logger.debug(f"[Resolver] api {item_id} -> {year}")
        return year

    async def aclose(self):
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
