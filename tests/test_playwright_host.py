"""
Unit tests for the Playwright host's mutation subscription.

Tests apps/services/pipeline/playwright_host.py
"""

import asyncio
import logging

import pytest

from apps.services.pipeline.playwright_host import PlaywrightHost


class FakePage:
    def __init__(self, fail_expose=False):
        self.fail_expose = fail_expose
        self.exposed = []
        self.evaluated = 0

    async def expose_function(self, name, fn):
        if self.fail_expose:
            raise RuntimeError("page closed")
        self.exposed.append(name)

    async def evaluate(self, script, arg=None):
        self.evaluated += 1


async def noop(items):
    return None


class TestSubscribe:
    @pytest.mark.asyncio
    async def test_observer_installed(self):
        page = FakePage()
        host = PlaywrightHost("https://example.test/feed", page=page)

        host.subscribe(["div.item"], noop)
        await host._observer_task

        assert page.exposed == ["sieveOnMutation"]
        assert page.evaluated == 1

    @pytest.mark.asyncio
    async def test_install_failure_is_logged(self, caplog):
        host = PlaywrightHost("https://example.test/feed", page=FakePage(fail_expose=True))

        with caplog.at_level(logging.ERROR):
            host.subscribe(["div.item"], noop)
            await asyncio.gather(host._observer_task, return_exceptions=True)
            await asyncio.sleep(0)

        assert "Mutation observer install failed: page closed" in caplog.text

    @pytest.mark.asyncio
    async def test_unsubscribe_cancels_pending_install(self):
        host = PlaywrightHost("https://example.test/feed", page=FakePage())

        host.subscribe(["div.item"], noop)
        host.unsubscribe()
        await asyncio.gather(host._observer_task, return_exceptions=True)

        assert host._observer_task.cancelled()
