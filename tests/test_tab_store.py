"""
Unit tests for the context-scoped configuration and preference stores.

Tests apps/services/settings/
"""

import json

import pytest

from apps.services.settings.preferences import CredentialStore, GlobalPreferencesStore
from apps.services.settings.storage import TAB_SETTINGS_KEY, InMemoryStorage, JsonFileStorage
from apps.services.settings.tab_store import TabSettingsStore
from libs.core.exceptions import ConfigInvalid, StorageUnavailable
from libs.core.models import FilterConfig


class TestTabSettingsStore:
    @pytest.mark.asyncio
    async def test_unknown_context_gets_defaults(self, storage):
        config = await TabSettingsStore(storage).get("nope")
        assert config == FilterConfig()

    @pytest.mark.asyncio
    async def test_partial_snapshot_filled_from_defaults(self):
        storage = InMemoryStorage({TAB_SETTINGS_KEY: {"7": {"rules": {"year": {"min": 2000}}}}})
        config = await TabSettingsStore(storage).get(7)
        defaults = FilterConfig()

        assert config.rules.year.min == 2000
        assert config.rules.year.max == defaults.rules.year.max
        assert config.rules.year.enabled is False
        assert config.rules.duration == defaults.rules.duration
        assert config.enabled is True

    @pytest.mark.asyncio
    async def test_set_then_get(self, storage):
        store = TabSettingsStore(storage)
        assert await store.set("a", {"rules": {"duration": {"enabled": True, "max": 600}}}) is True
        config = await store.get("a")
        assert config.rules.duration.enabled is True
        assert config.rules.duration.max == 600
        assert await store.contexts() == ["a"]

    @pytest.mark.asyncio
    async def test_contexts_are_isolated(self, storage):
        store = TabSettingsStore(storage)
        await store.set("a", {"rules": {"year": {"enabled": True}}})
        assert (await store.get("b")).rules.year.enabled is False

    @pytest.mark.asyncio
    async def test_min_above_max_rejected(self, storage):
        store = TabSettingsStore(storage)
        with pytest.raises(ConfigInvalid):
            await store.set("a", {"rules": {"year": {"min": 2020, "max": 2010}}})
        assert await store.contexts() == []

    @pytest.mark.asyncio
    async def test_inherit(self, storage):
        store = TabSettingsStore(storage)
        await store.set("parent", {"rules": {"blacklist": {"enabled": True, "keywords": "live"}}})

        inherited = await store.inherit("child", "parent")
        assert inherited.rules.blacklist.terms == ["live"]
        assert await store.get("child") == await store.get("parent")

        await store.set("parent", {"rules": {"blacklist": {"enabled": False}}})
        assert (await store.get("child")).rules.blacklist.enabled is True

    @pytest.mark.asyncio
    async def test_delete(self, storage):
        store = TabSettingsStore(storage)
        await store.set("a", {})
        assert await store.delete("a") is True
        assert await store.delete("a") is True
        assert await store.contexts() == []

    @pytest.mark.asyncio
    async def test_storage_failure_falls_back(self, broken_storage):
        store = TabSettingsStore(broken_storage)
        assert await store.get("a") == FilterConfig()
        assert await store.set("a", {}) is False
        assert await store.delete("a") is False
        assert await store.inherit("b", "a") is None

    @pytest.mark.asyncio
    async def test_corrupt_snapshot_falls_back(self):
        storage = InMemoryStorage({TAB_SETTINGS_KEY: {"a": {"rules": {"year": {"min": "old"}}}}})
        assert await TabSettingsStore(storage).get("a") == FilterConfig()


class TestPreferences:
    @pytest.mark.asyncio
    async def test_global_defaults_and_partial_update(self, storage):
        prefs = GlobalPreferencesStore(storage)
        assert (await prefs.get()).is_source_enabled("youtube") is True

        assert await prefs.set({"platforms": {"youtube": False}}) is True
        settings = await prefs.get()
        assert settings.is_source_enabled("youtube") is False
        assert settings.is_source_enabled("soundcloud") is True

    @pytest.mark.asyncio
    async def test_credential_roundtrip_and_clear(self, storage):
        creds = CredentialStore(storage)
        assert await creds.get() is None
        await creds.set(" abc ")
        assert await creds.get() == "abc"
        await creds.set("")
        assert await creds.get() is None


class TestJsonFileStorage:
    @pytest.mark.asyncio
    async def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "nested" / "store.json"
        await JsonFileStorage(path).set("k", {"a": 1})
        assert await JsonFileStorage(path).get("k") == {"a": 1}
        assert json.loads(path.read_text()) == {"k": {"a": 1}}

    @pytest.mark.asyncio
    async def test_corrupt_file_raises_storage_unavailable(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("{not json")
        with pytest.raises(StorageUnavailable):
            await JsonFileStorage(path).get("k")

    @pytest.mark.asyncio
    async def test_undecodable_file_raises_storage_unavailable(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_bytes(b'{"tab_settings": "\xff\xfe"}')
        with pytest.raises(StorageUnavailable):
            await JsonFileStorage(path).get(TAB_SETTINGS_KEY)

    @pytest.mark.asyncio
    async def test_undecodable_file_falls_back_to_default(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_bytes(b'{"tab_settings": "\xff\xfe"}')
        assert await TabSettingsStore(JsonFileStorage(path)).get("c") == FilterConfig()
