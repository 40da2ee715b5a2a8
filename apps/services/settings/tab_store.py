"""
apps/services/settings/tab_store.py

Context-scoped filter configuration.

Every read overlays the stored snapshot on the default configuration, so
fields added after a snapshot was written are always present. Writes are
validated here, at the configuration boundary; nothing downstream checks
ranges again.
"""
import asyncio
import logging
from typing import Any, List, Mapping, Optional, Union

from pydantic import ValidationError

from apps.services.settings.storage import TAB_SETTINGS_KEY, KeyValueStorage
from libs.core.exceptions import ConfigInvalid, StorageUnavailable
from libs.core.models import FilterConfig, merge_config

logger = logging.getLogger(__name__)

ConfigInput = Union[FilterConfig, Mapping[str, Any]]


def validate_config(config: ConfigInput, default: Optional[FilterConfig] = None) -> FilterConfig:
    """
    Build an effective FilterConfig from a full or partial snapshot.

    Raises:
        ConfigInvalid: the snapshot violates the schema (e.g. min > max)
    """
    if isinstance(config, FilterConfig):
        return config
    try:
        return merge_config(config, default)
    except ValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        loc = ".".join(str(p) for p in first.get("loc", ()))
        raise ConfigInvalid(f"Invalid filter configuration: {first.get('msg', e)}", field=loc or None) from e


class TabSettingsStore:
    """
    Per-context FilterConfig snapshots.

    Storage failures never reach the caller as exceptions: reads fall back
    to the default configuration and writes report ``False``.
    """

    def __init__(self, storage: KeyValueStorage, default: Optional[FilterConfig] = None):
        self.storage = storage
        self.default = default or FilterConfig()
        self._lock = asyncio.Lock()

    async def _load(self) -> dict:
        data = await self.storage.get(TAB_SETTINGS_KEY, {})
        return data if isinstance(data, dict) else {}

    async def get(self, context_id: Union[str, int]) -> FilterConfig:
        """Effective configuration for a context."""
        try:
            snapshot = (await self._load()).get(str(context_id))
        except StorageUnavailable as e:
            logger.warning(f"[TabStore] {e}; using default configuration")
            return self.default.model_copy(deep=True)

        try:
            return merge_config(snapshot, self.default)
        except ValidationError as e:
            logger.warning(f"[TabStore] Stored config for context {context_id} is invalid; using default: {e}")
            return self.default.model_copy(deep=True)

    async def set(self, context_id: Union[str, int], config: ConfigInput) -> bool:
        """
        Validate and persist a configuration.

        Returns:
            True on success, False when storage failed

        Raises:
            ConfigInvalid: the configuration was rejected
        """
        effective = validate_config(config, self.default)
        async with self._lock:
            try:
                data = await self._load()
                data[str(context_id)] = effective.model_dump(mode="json")
                await self.storage.set(TAB_SETTINGS_KEY, data)
            except StorageUnavailable as e:
                logger.error(f"[TabStore] Save failed for context {context_id}: {e}")
                return False
        logger.info(f"[TabStore] Saved config for context {context_id}")
        return True

    async def delete(self, context_id: Union[str, int]) -> bool:
        """Drop a context's snapshot on teardown."""
        async with self._lock:
            try:
                data = await self._load()
                if data.pop(str(context_id), None) is None:
                    return True
                await self.storage.set(TAB_SETTINGS_KEY, data)
            except StorageUnavailable as e:
                logger.error(f"[TabStore] Delete failed for context {context_id}: {e}")
                return False
        logger.info(f"[TabStore] Deleted config for context {context_id}")
        return True

    async def inherit(self, child_id: Union[str, int], parent_id: Union[str, int]) -> Optional[FilterConfig]:
        """
        Copy the parent's effective configuration into a new child context.

        Returns:
            The inherited configuration, or None when the child's snapshot
            could not be saved
        """
        effective = await self.get(parent_id)
        if not await self.set(child_id, effective):
            return None
        logger.info(f"[TabStore] Context {child_id} inherited config from {parent_id}")
        return effective

    async def contexts(self) -> List[str]:
        """Context ids with a stored snapshot."""
        try:
            return sorted(await self._load())
        except StorageUnavailable as e:
            logger.warning(f"[TabStore] {e}")
            return []
