"""
apps/services/settings/preferences.py

Process-wide records: per-source toggles with display options, and the
credential used for paid metadata lookups.
"""
import logging
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from apps.services.settings.storage import CREDENTIAL_KEY, GLOBAL_SETTINGS_KEY, KeyValueStorage
from libs.core.exceptions import ConfigInvalid, StorageUnavailable
from libs.core.models import GlobalSettings, deep_merge

logger = logging.getLogger(__name__)


class GlobalPreferencesStore:
    """Per-source enable/disable and display options, default-merged on read."""

    def __init__(self, storage: KeyValueStorage):
        self.storage = storage

    async def get(self) -> GlobalSettings:
        try:
            stored = await self.storage.get(GLOBAL_SETTINGS_KEY)
        except StorageUnavailable as e:
            logger.warning(f"[Preferences] {e}; using defaults")
            return GlobalSettings()
        if not isinstance(stored, Mapping):
            return GlobalSettings()
        try:
            return GlobalSettings.model_validate(
                deep_merge(GlobalSettings().model_dump(mode="json"), stored)
            )
        except ValidationError as e:
            logger.warning(f"[Preferences] Stored global settings invalid; using defaults: {e}")
            return GlobalSettings()

    async def set(self, settings: Any) -> bool:
        """
        Persist global settings (full or partial).

        Raises:
            ConfigInvalid: the settings were rejected
        """
        if not isinstance(settings, GlobalSettings):
            current = (await self.get()).model_dump(mode="json")
            try:
                settings = GlobalSettings.model_validate(deep_merge(current, settings or {}))
            except ValidationError as e:
                raise ConfigInvalid(f"Invalid global settings: {e}") from e
        try:
            await self.storage.set(GLOBAL_SETTINGS_KEY, settings.model_dump(mode="json"))
        except StorageUnavailable as e:
            logger.error(f"[Preferences] Save failed: {e}")
            return False
        return True


class CredentialStore:
    """The API credential for tier-2 resolution. Empty means none configured."""

    def __init__(self, storage: KeyValueStorage):
        self.storage = storage

    async def get(self) -> Optional[str]:
        try:
            value = await self.storage.get(CREDENTIAL_KEY)
        except StorageUnavailable as e:
            logger.warning(f"[Credentials] {e}")
            return None
        return value.strip() if isinstance(value, str) and value.strip() else None

    async def set(self, value: Optional[str]) -> bool:
        try:
            if value and value.strip():
                await self.storage.set(CREDENTIAL_KEY, value.strip())
            else:
                await self.storage.delete(CREDENTIAL_KEY)
        except StorageUnavailable as e:
            logger.error(f"[Credentials] Save failed: {e}")
            return False
        logger.info("[Credentials] Credential updated")
        return True
