# conftest.py
# Put the repository root on sys.path so `libs.*` and `apps.services.*`
# import the same way under pytest as from the scripts.

import sys
from datetime import datetime
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
ROOT_STR = str(ROOT)

if ROOT_STR not in sys.path:
    sys.path.insert(0, ROOT_STR)

from apps.services.settings.storage import InMemoryStorage  # noqa: E402
from libs.core.config import PipelineSettings, ScrollSettings, Settings  # noqa: E402
from libs.core.exceptions import StorageUnavailable  # noqa: E402

FIXED_NOW = datetime(2024, 6, 1, 12, 0, 0)


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def fast_settings():
    """Settings with no waiting: instant ticks, short stability window."""
    return Settings(
        pipeline=PipelineSettings(rescan_interval_s=3600, wait_for_items_s=0),
        scroll=ScrollSettings(step_px=1000, interval_s=0, stable_ticks=3, max_ticks=50),
    )


class BrokenStorage(InMemoryStorage):
    """Storage whose every operation fails."""

    async def get(self, key, default=None):
        raise StorageUnavailable(key, "read", "disk gone")

    async def set(self, key, value):
        raise StorageUnavailable(key, "write", "disk gone")

    async def delete(self, key):
        raise StorageUnavailable(key, "delete", "disk gone")


@pytest.fixture
def broken_storage():
    return BrokenStorage()
