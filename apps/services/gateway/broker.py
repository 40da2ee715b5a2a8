"""
apps/services/gateway/broker.py

Request/response boundary between pipelines and the shared services
(configuration store, metadata cache, preferences).

``MessageBroker.handle`` takes a raw payload and always returns a wire
dict; it never raises. Configuration-store failures come back as an
explicit ``"Save failed"`` error instead of being dropped.
"""
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import ValidationError

from apps.services.gateway.messages import (
    REQUEST_ADAPTER,
    CacheStatsResponse,
    ConfigResponse,
    CredentialResponse,
    GlobalSettingsResponse,
    Response,
    YearResponse,
    failure,
)
from apps.services.metadata.resolution_cache import MetadataResolutionCache
from apps.services.metadata.resolvers import ApiResolver, PageScrapeResolver
from apps.services.settings.preferences import CredentialStore, GlobalPreferencesStore
from apps.services.settings.storage import JsonFileStorage, KeyValueStorage
from apps.services.settings.tab_store import TabSettingsStore
from libs.core.config import Settings, get_settings
from libs.core.exceptions import ConfigInvalid
from libs.core.models import FilterConfig

logger = logging.getLogger(__name__)

SAVE_FAILED = "Save failed"

ReloadHook = Callable[[FilterConfig], Awaitable[None]]


class MessageBroker:
    """Dispatches typed requests to the shared services."""

    def __init__(
        self,
        tab_store: TabSettingsStore,
        cache: MetadataResolutionCache,
        credentials: CredentialStore,
        preferences: GlobalPreferencesStore,
    ):
        self.tab_store = tab_store
        self.cache = cache
        self.credentials = credentials
        self.preferences = preferences
        self._reload_hooks: Dict[str, ReloadHook] = {}

        self._handlers = {
            "getConfig": self._get_config,
            "setConfig": self._set_config,
            "resolveYear": self._resolve_year,
            "setCredential": self._set_credential,
            "getCredential": self._get_credential,
            "clearMetadataCache": self._clear_cache,
            "getCacheStats": self._cache_stats,
            "getGlobalSettings": self._get_global_settings,
            "setGlobalSettings": self._set_global_settings,
            "contextCreated": self._context_created,
            "contextRemoved": self._context_removed,
        }

    def register_reload_hook(self, context_id: Any, hook: ReloadHook):
        """Called with the new effective config after each successful setConfig."""
        self._reload_hooks[str(context_id)] = hook

    def unregister_reload_hook(self, context_id: Any):
        self._reload_hooks.pop(str(context_id), None)

    async def handle(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            request = REQUEST_ADAPTER.validate_python(payload)
        except ValidationError as e:
            errors = e.errors()
            detail = errors[0].get("msg", str(e)) if errors else str(e)
            logger.warning(f"[Broker] Rejected request {payload.get('action') if isinstance(payload, dict) else payload!r}: {detail}")
            return failure(f"Invalid request: {detail}").to_wire()

        try:
            response = await self._handlers[request.action](request)
        except ConfigInvalid as e:
            logger.info(f"[Broker] {request.action} rejected: {e.message}")
            response = failure(e.message)
        except Exception as e:
            logger.error(f"[Broker] {request.action} failed: {e}", exc_info=True)
            response = failure(str(e) or type(e).__name__)
        return response.to_wire()

    # =========================================================================
    # Configuration
    # =========================================================================

    async def _get_config(self, request) -> Response:
        config = await self.tab_store.get(request.context_id)
        return ConfigResponse(config=config.model_dump(mode="json"))

    async def _set_config(self, request) -> Response:
        if not await self.tab_store.set(request.context_id, request.config):
            return failure(SAVE_FAILED)

        hook = self._reload_hooks.get(str(request.context_id))
        if hook is not None:
            config = await self.tab_store.get(request.context_id)
            try:
                await hook(config)
            except Exception as e:
                logger.error(f"[Broker] Reload of context {request.context_id} failed: {e}", exc_info=True)
        return Response()

    async def _context_created(self, request) -> Response:
        if request.opener_id is None:
            return Response()
        config = await self.tab_store.inherit(request.context_id, request.opener_id)
        if config is None:
            return failure(SAVE_FAILED)
        return ConfigResponse(config=config.model_dump(mode="json"))

    async def _context_removed(self, request) -> Response:
        self.unregister_reload_hook(request.context_id)
        if not await self.tab_store.delete(request.context_id):
            return failure(SAVE_FAILED)
        return Response()

    async def _get_global_settings(self, request) -> Response:
        settings = await self.preferences.get()
        return GlobalSettingsResponse(settings=settings.model_dump(mode="json"))

    async def _set_global_settings(self, request) -> Response:
        if not await self.preferences.set(request.settings):
            return failure(SAVE_FAILED)
        return Response()

    # =========================================================================
    # Metadata
    # =========================================================================

    async def _resolve_year(self, request) -> Response:
        resolution = await self.cache.resolve_year(request.item_id)
        return YearResponse(year=resolution.year, was_cached=resolution.was_cached)

    async def _clear_cache(self, request) -> Response:
        if not await self.cache.clear():
            return failure("Clear failed")
        return Response()

    async def _cache_stats(self, request) -> Response:
        stats = await self.cache.stats()
        return CacheStatsResponse(count=stats["count"], approx_size_bytes=stats["approx_size_bytes"])

    async def _set_credential(self, request) -> Response:
        if not await self.credentials.set(request.value):
            return failure(SAVE_FAILED)
        return Response()

    async def _get_credential(self, request) -> Response:
        return CredentialResponse(value=await self.credentials.get())


def create_broker(
    settings: Optional[Settings] = None,
    storage: Optional[KeyValueStorage] = None,
) -> MessageBroker:
    """Wire the shared services against one record store."""
    settings = settings or get_settings()
    storage = storage or JsonFileStorage(settings.storage_path)
    credentials = CredentialStore(storage)
    cache = MetadataResolutionCache(
        storage,
        scrape_resolver=PageScrapeResolver(settings.http),
        api_resolver=ApiResolver(settings.http),
        credentials=credentials,
        ttl_days=settings.cache.ttl_days,
    )
    return MessageBroker(
        tab_store=TabSettingsStore(storage),
        cache=cache,
        credentials=credentials,
        preferences=GlobalPreferencesStore(storage),
    )
