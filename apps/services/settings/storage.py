"""
apps/services/settings/storage.py

Persistent key-value records shared by the configuration store, the
metadata cache and the preference stores.

Logical layout (one record each):
    tab_settings     context-id -> FilterConfig snapshot
    metadata_cache   item-id -> CacheEntry
    credential       API credential string
    global_settings  per-source toggles and display options

Records are plain JSON. Every failure surfaces as StorageUnavailable so
callers can fall back to a safe default.
"""
import asyncio
import copy
import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

from libs.core.exceptions import StorageUnavailable

logger = logging.getLogger(__name__)

TAB_SETTINGS_KEY = "tab_settings"
METADATA_CACHE_KEY = "metadata_cache"
CREDENTIAL_KEY = "credential"
GLOBAL_SETTINGS_KEY = "global_settings"


class KeyValueStorage(ABC):
    """Async record store. Values must be JSON-serializable."""

    @abstractmethod
    async def get(self, key: str, default: Any = None) -> Any:
        """Read a record; ``default`` when absent."""

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Replace a record."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove a record; absent keys are ignored."""


class InMemoryStorage(KeyValueStorage):
    """Process-local storage, used for tests and ephemeral runs."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = copy.deepcopy(initial or {})

    async def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStorage(KeyValueStorage):
    """
    All records in one JSON document on disk.

    Reads and writes go through ``asyncio.to_thread``; a lock serializes
    read-modify-write cycles within the process. Writes land in a temp file
    first and are swapped in with ``os.replace``.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _read_all(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, self.path)

    async def get(self, key: str, default: Any = None) -> Any:
        async with self._lock:
            try:
                data = await asyncio.to_thread(self._read_all)
            except (OSError, ValueError) as e:
                raise StorageUnavailable(key, "read", str(e)) from e
        return data.get(key, default)

    async def set(self, key: str, value: Any) -> None:
        async with self._lock:
            try:
                data = await asyncio.to_thread(self._read_all)
                data[key] = value
                await asyncio.to_thread(self._write_all, data)
            except (OSError, TypeError, ValueError) as e:
                raise StorageUnavailable(key, "write", str(e)) from e
        logger.debug(f"[Storage] Wrote record '{key}' to {self.path}")

    async def delete(self, key: str) -> None:
        async with self._lock:
            try:
                data = await asyncio.to_thread(self._read_all)
                if key not in data:
                    return
                del data[key]
                await asyncio.to_thread(self._write_all, data)
            except (OSError, ValueError) as e:
                raise StorageUnavailable(key, "delete", str(e)) from e
