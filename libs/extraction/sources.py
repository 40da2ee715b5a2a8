"""Per-source profiles loaded from sources.yaml."""

import logging
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from libs.core.config import load_source_registry
from libs.core.exceptions import ConfigInvalid
from libs.parsing.locale_patterns import DEFAULT_LOCALE_ORDER

logger = logging.getLogger(__name__)

FIELDS = ("id", "title", "author", "duration", "year", "tags")


class StrategySpec(BaseModel):
    """One entry of a field's strategy list."""

    model_config = ConfigDict(extra="forbid")

    kind: str
    selector: Optional[str] = None
    attr: Optional[str] = None
    param: Optional[str] = None
    pattern: Optional[str] = None
    exclude_class: Optional[str] = None
    index: int = 0
    min_length: int = 1
    include_aria: bool = False
    not_future: bool = False


class FieldStrategies(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: list[StrategySpec] = Field(default_factory=list)
    title: list[StrategySpec] = Field(default_factory=list)
    author: list[StrategySpec] = Field(default_factory=list)
    duration: list[StrategySpec] = Field(default_factory=list)
    year: list[StrategySpec] = Field(default_factory=list)
    tags: list[StrategySpec] = Field(default_factory=list)

    def for_field(self, name: str) -> list[StrategySpec]:
        return getattr(self, name)


class DiscoverySpec(BaseModel):
    """Anchors for finding items the item selectors miss, via their date element."""

    date_selectors: list[str] = Field(default_factory=list)
    ancestor_selectors: list[str] = Field(default_factory=list)
    title_marker: Optional[str] = None
    max_ascent: int = 7


class SourceProfile(BaseModel):
    """Everything the pipeline knows about one feed source."""

    name: str
    item_selectors: list[str]
    container_selectors: list[str] = Field(default_factory=list)
    date_selectors: list[str] = Field(default_factory=list)
    discovery: Optional[DiscoverySpec] = None
    locales: list[str] = Field(default_factory=lambda: list(DEFAULT_LOCALE_ORDER))
    # Look the publish year up through the metadata cache when the item
    # carries none of its own
    remote_year: bool = False
    fields: FieldStrategies = Field(default_factory=FieldStrategies)

    @property
    def item_selector(self) -> str:
        return ", ".join(self.item_selectors)


def parse_profiles(registry: dict[str, Any]) -> dict[str, SourceProfile]:
    """Validate a raw registry mapping into profiles keyed by source name."""
    profiles: dict[str, SourceProfile] = {}
    for name, raw in (registry or {}).items():
        try:
            profiles[name] = SourceProfile.model_validate({"name": name, **(raw or {})})
        except ValidationError as e:
            raise ConfigInvalid(f"Invalid source profile '{name}': {e}", field=name) from e
    return profiles


_profiles: Optional[dict[str, SourceProfile]] = None


def load_profiles(path: Optional[Path] = None) -> dict[str, SourceProfile]:
    """Load (and cache, for the default path) every source profile."""
    global _profiles
    if path is not None:
        return parse_profiles(load_source_registry(path))
    if _profiles is None:
        _profiles = parse_profiles(load_source_registry())
        logger.info(f"[Sources] Loaded {len(_profiles)} source profiles: {', '.join(_profiles)}")
    return _profiles


def get_profile(source: str) -> SourceProfile:
    """Get the profile for ``source``; raises ConfigInvalid for unknown sources."""
    profiles = load_profiles()
    if source not in profiles:
        raise ConfigInvalid(
            f"Unknown source '{source}' (known: {', '.join(sorted(profiles))})",
            field="source",
        )
    return profiles[source]
