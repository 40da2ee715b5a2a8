"""
Unit tests for attribute extraction.

Tests libs/extraction/extractor.py against the bundled source profiles.
"""

from datetime import datetime

import pytest
from bs4 import BeautifulSoup

from apps.services.metadata.resolution_cache import Resolution
from libs.core.models import FeedItem
from libs.extraction.extractor import SYNTHETIC_ID_PREFIX, AttributeExtractor
from libs.extraction.sources import StrategySpec, load_profiles
from libs.extraction.strategies import StrategyContext, run_strategy

NOW = datetime(2024, 6, 1)


def item(html: str, key: str = "item-1") -> FeedItem:
    return FeedItem(key=key, node=BeautifulSoup(html, "html.parser").find())


@pytest.fixture(scope="module")
def profiles():
    return load_profiles()


def extractor_for(profiles, source, **kwargs) -> AttributeExtractor:
    return AttributeExtractor(profiles[source], clock=lambda: NOW, **kwargs)


YOUTUBE_ITEM = """
<ytd-rich-item-renderer>
  <a id="thumbnail" class="ytd-thumbnail" href="/watch?v=abc123XYZ&t=5">
    <ytd-thumbnail-overlay-time-status-renderer><span id="text">1:02:03</span></ytd-thumbnail-overlay-time-status-renderer>
  </a>
  <a id="video-title-link" href="/watch?v=abc123XYZ"><yt-formatted-string id="video-title">Festival Set 2015</yt-formatted-string></a>
  <ytd-channel-name><a href="/@dj">DJ Example</a></ytd-channel-name>
  <div id="metadata-line"><span>1,234 views</span><span>3 years ago</span></div>
</ytd-rich-item-renderer>
"""

SOUNDCLOUD_ITEM = """
<li class="soundList__item">
  <div class="sound__body">
    <a class="soundTitle__username" href="/artist-one"><span>Artist One</span></a>
    <a class="soundTitle__title" href="/artist-one/deep-cuts"><span>Deep Cuts</span></a>
    <time class="relativeTime" datetime="2016-05-01T10:00:00.000Z">7 years ago</time>
    <a class="sc-tag" href="/tags/deep%20house"><span>deep house</span></a>
    <div class="playbackTimeline__duration">
      <span class="sc-visuallyhidden">Duration: 5 minutes</span><span aria-hidden="true">5:12</span>
    </div>
  </div>
</li>
"""

YTM_ITEM = """
<ytmusic-responsive-list-item-renderer>
  <ytmusic-play-button-renderer video-id="ytm123" aria-label="Play Blue Monday by New Order"></ytmusic-play-button-renderer>
  <div class="flex-columns">
    <div class="title-column">
      <yt-formatted-string class="title"><a class="yt-simple-endpoint" href="watch?v=ytm123">Blue Monday</a></yt-formatted-string>
    </div>
    <div class="secondary-flex-columns">
      <yt-formatted-string><a class="yt-simple-endpoint" href="channel/UC1">New Order</a></yt-formatted-string>
    </div>
  </div>
  <div class="fixed-columns"><yt-formatted-string>7:29</yt-formatted-string></div>
</ytmusic-responsive-list-item-renderer>
"""


class FakeResolver:
    def __init__(self, year):
        self.year = year
        self.calls = []

    async def resolve_year(self, item_id):
        self.calls.append(item_id)
        return Resolution(year=self.year, was_cached=False)


class TestYouTube:
    def test_full_record(self, profiles):
        rec = extractor_for(profiles, "youtube").extract(item(YOUTUBE_ITEM))
        assert rec.id == "abc123XYZ"
        assert rec.title == "Festival Set 2015"
        assert rec.author == "DJ Example"
        assert rec.duration_seconds == 3723
        assert rec.year == 2021
        assert rec.tags == ()
        assert rec.source == "youtube"

    def test_idempotent(self, profiles):
        extractor = extractor_for(profiles, "youtube")
        node = item(YOUTUBE_ITEM)
        assert extractor.extract(node) == extractor.extract(node)

    def test_watch_page_identity_from_url(self, profiles):
        html = "<ytd-watch-metadata><h1><yt-formatted-string>Song</yt-formatted-string></h1></ytd-watch-metadata>"
        extractor = extractor_for(profiles, "youtube", page_url="https://www.youtube.com/watch?v=page42")
        rec = extractor.extract(item(html))
        assert rec.id == "page42"
        assert rec.title == "Song"


class TestSoundCloud:
    def test_full_record(self, profiles):
        rec = extractor_for(profiles, "soundcloud").extract(item(SOUNDCLOUD_ITEM))
        assert rec.id == "/artist-one/deep-cuts"
        assert rec.title == "Deep Cuts"
        assert rec.author == "Artist One"
        assert rec.duration_seconds == 312
        assert rec.year == 2016
        assert rec.tags == ("deep house",)

    def test_relative_date_in_other_locale(self, profiles):
        html = """
        <li class="soundList__item">
          <a class="soundTitle__title" href="/a/b"><span>Track</span></a>
          <span class="relativeTime">2 anni fa</span>
        </li>"""
        rec = extractor_for(profiles, "soundcloud").extract(item(html))
        assert rec.year == 2022

    def test_hashtag_fallback_and_synthetic_id(self, profiles):
        html = """
        <li class="soundList__item">
          <span class="trackItem__trackTitle">Sunset mix #House #chill</span>
          <span class="trackItem__username">Someone</span>
        </li>"""
        rec = extractor_for(profiles, "soundcloud").extract(item(html))
        assert rec.tags == ("house", "chill")
        assert rec.id == f"{SYNTHETIC_ID_PREFIX}sunset mix #house #chill|someone"
        assert rec.year is None

    def test_abstains_without_title(self, profiles):
        html = '<li class="soundList__item"><div>no title here</div></li>'
        assert extractor_for(profiles, "soundcloud").extract(item(html)) is None


class TestYouTubeMusic:
    def test_local_record(self, profiles):
        rec = extractor_for(profiles, "youtube_music").extract(item(YTM_ITEM))
        assert rec.id == "ytm123"
        assert rec.title == "Blue Monday"
        assert rec.author == "New Order"
        assert rec.duration_seconds == 449
        assert rec.year is None

    def test_release_label_year(self, profiles):
        html = YTM_ITEM.replace(
            "</ytmusic-responsive-list-item-renderer>",
            '<yt-formatted-string class="subtitle">Album • 2016</yt-formatted-string></ytmusic-responsive-list-item-renderer>',
        )
        rec = extractor_for(profiles, "youtube_music").extract(item(html))
        assert rec.year == 2016

    def test_play_label_title_fallback(self, profiles):
        html = """
        <ytmusic-responsive-list-item-renderer>
          <ytmusic-play-button-renderer video-id="v9" aria-label="Riproduci Blue Monday di New Order"></ytmusic-play-button-renderer>
        </ytmusic-responsive-list-item-renderer>"""
        rec = extractor_for(profiles, "youtube_music").extract(item(html))
        assert rec.title == "Blue Monday"

    @pytest.mark.asyncio
    async def test_remote_year_when_missing(self, profiles):
        resolver = FakeResolver(1983)
        extractor = extractor_for(profiles, "youtube_music", year_resolver=resolver)
        rec = await extractor.extract_resolved(item(YTM_ITEM))
        assert rec.year == 1983
        assert rec.year_verified is True
        assert resolver.calls == ["ytm123"]

    @pytest.mark.asyncio
    async def test_unresolved_year_stays_unknown(self, profiles):
        extractor = extractor_for(profiles, "youtube_music", year_resolver=FakeResolver(None))
        rec = await extractor.extract_resolved(item(YTM_ITEM))
        assert rec.year is None
        assert rec.year_verified is False

    @pytest.mark.asyncio
    async def test_no_remote_lookup_for_local_year(self, profiles):
        resolver = FakeResolver(1983)
        html = YTM_ITEM.replace("7:29", "7:29 • 2016")
        extractor = extractor_for(profiles, "youtube_music", year_resolver=resolver)
        rec = await extractor.extract_resolved(item(html))
        assert rec.year == 2016
        assert resolver.calls == []


class TestStrategies:
    def test_unknown_kind_yields_none(self):
        node = BeautifulSoup("<div>x</div>", "html.parser").find()
        assert run_strategy(node, StrategySpec(kind="nope"), StrategyContext(now=NOW)) is None

    def test_bad_selector_yields_none(self):
        node = BeautifulSoup("<div>x</div>", "html.parser").find()
        spec = StrategySpec(kind="text", selector="div[[")
        assert run_strategy(node, spec, StrategyContext(now=NOW)) is None

    def test_positional_link_skips_counters(self):
        node = BeautifulSoup(
            '<div><a href="/1">12</a><a href="/2">First</a><a href="/3">3:45</a><a href="/4">Second</a></div>',
            "html.parser",
        ).find()
        spec = StrategySpec(kind="positional_link", index=1)
        assert run_strategy(node, spec, StrategyContext(now=NOW)) == "Second"
