"""Data models for feedsieve."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator


# =============================================================================
# Enums
# =============================================================================

class MatchMode(str, Enum):
    """Tag rule membership mode."""

    ANY = "any"
    ALL = "all"


class RuleName(str, Enum):
    """Filter rules in evaluation order."""

    YEAR = "year"
    DURATION = "duration"
    GENRE = "genre"
    BLACKLIST = "blacklist"
    TAGS = "tags"


# =============================================================================
# Extraction output
# =============================================================================

@dataclass(frozen=True)
class ItemRecord:
    """
    Typed attributes of one feed item.

    Produced fresh on every extraction pass and discarded once the filter
    decision has been applied. ``None`` means unknown, never zero.
    """

    id: str
    title: str
    author: str = ""
    duration_seconds: Optional[int] = None
    year: Optional[int] = None
    tags: tuple[str, ...] = ()
    source: str = ""
    # Year came from the metadata cache rather than the item's own markup
    year_verified: bool = False

    @property
    def searchable_text(self) -> str:
        return f"{self.title} {self.author}".lower()


@dataclass
class FeedItem:
    """
    One item subtree handed out by a feed host.

    ``key`` is stable for the lifetime of the item on the page and is what
    the host uses to hide or annotate it. ``node`` is a parsed
    snapshot of the item's markup (a BeautifulSoup ``Tag``).
    """

    key: str
    node: Any


# =============================================================================
# Filter configuration
# =============================================================================

def split_terms(value: Any) -> list[str]:
    """Normalize a comma string or a list of terms to lower-case, non-empty terms."""
    if value is None:
        return []
    if isinstance(value, str):
        parts = value.split(",")
    else:
        parts = [str(v) for v in value]
    return [p.strip().lower() for p in parts if p and p.strip()]


class _Rule(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    enabled: bool = False


class YearRule(_Rule):
    """Publish-year window. Unknown years are shown unless ``show_unknown`` is off."""

    min: int = 2010
    max: int = Field(default_factory=lambda: datetime.now().year)
    show_unknown: bool = Field(
        default=True,
        validation_alias=AliasChoices("show_unknown", "showUnknown", "showUnknownYear"),
    )

    @model_validator(mode="after")
    def _check_range(self) -> "YearRule":
        if self.min > self.max:
            raise ValueError(f"year.min ({self.min}) must not exceed year.max ({self.max})")
        return self


class DurationRule(_Rule):
    """Duration window in seconds. Unknown durations are never hidden by this rule."""

    min: int = 0
    max: int = 1800

    @model_validator(mode="after")
    def _check_range(self) -> "DurationRule":
        if self.min > self.max:
            raise ValueError(f"duration.min ({self.min}) must not exceed duration.max ({self.max})")
        return self


class GenreRule(_Rule):
    """Allow-list: comma-separated terms matched against title and author."""

    value: str = ""

    @field_validator("value", mode="before")
    @classmethod
    def _join_list(cls, v: Any) -> Any:
        if isinstance(v, (list, tuple)):
            return ", ".join(str(x) for x in v)
        return "" if v is None else v

    @property
    def terms(self) -> list[str]:
        return split_terms(self.value)


class BlacklistRule(_Rule):
    """Block-list: comma-separated terms matched against title and author."""

    keywords: str = ""

    @field_validator("keywords", mode="before")
    @classmethod
    def _join_list(cls, v: Any) -> Any:
        if isinstance(v, (list, tuple)):
            return ", ".join(str(x) for x in v)
        return "" if v is None else v

    @property
    def terms(self) -> list[str]:
        return split_terms(self.keywords)


class TagRule(_Rule):
    """Required tags, matched in ``any`` or ``all`` mode."""

    values: list[str] = Field(default_factory=list)
    mode: MatchMode = Field(
        default=MatchMode.ANY,
        validation_alias=AliasChoices("mode", "matchMode"),
    )

    @field_validator("values", mode="before")
    @classmethod
    def _normalize(cls, v: Any) -> list[str]:
        return [t.lstrip("#") for t in split_terms(v) if t.lstrip("#")]


class FilterRules(BaseModel):
    model_config = ConfigDict(extra="ignore")

    year: YearRule = Field(default_factory=YearRule)
    duration: DurationRule = Field(default_factory=DurationRule)
    genre: GenreRule = Field(default_factory=GenreRule)
    blacklist: BlacklistRule = Field(default_factory=BlacklistRule)
    tags: TagRule = Field(default_factory=TagRule)


class DisplayOptions(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    show_verified_year: bool = Field(
        default=True,
        validation_alias=AliasChoices("show_verified_year", "showVerifiedYear"),
    )


class FilterConfig(BaseModel):
    """Per-context filter configuration."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    enabled: bool = True
    rules: FilterRules = Field(
        default_factory=FilterRules,
        validation_alias=AliasChoices("rules", "filters"),
    )
    options: DisplayOptions = Field(default_factory=DisplayOptions)

    def has_active_rules(self) -> bool:
        """True when filtering is on and at least one rule is enabled."""
        if not self.enabled:
            return False
        return any(
            getattr(self.rules, name.value).enabled for name in RuleName
        )


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """
    Merge ``override`` onto ``base`` field by field.

    Nested mappings merge recursively; any other override value replaces the
    base value. Neither input is modified.
    """
    merged: dict[str, Any] = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


_RENAMES: dict[tuple[str, ...], dict[str, str]] = {
    (): {"filters": "rules"},
    ("rules",): {"hashtags": "tags"},
    ("rules", "year"): {"showUnknownYear": "show_unknown", "showUnknown": "show_unknown"},
    ("rules", "tags"): {"tags": "values", "matchMode": "mode"},
    ("options",): {"showVerifiedYear": "show_verified_year"},
}


def _canonical_keys(data: Mapping[str, Any], path: tuple[str, ...] = ()) -> dict[str, Any]:
    """Rename camel-case keys written by other clients before merging."""
    renames = _RENAMES.get(path, {})
    out: dict[str, Any] = {}
    for key, value in data.items():
        name = renames.get(key, key)
        # the canonical key wins when both spellings are present
        if name != key and name in data:
            continue
        if isinstance(value, Mapping):
            value = _canonical_keys(value, path + (name,))
        out[name] = value
    return out


def merge_config(
    stored: Optional[Mapping[str, Any]],
    default: Optional[FilterConfig] = None,
) -> FilterConfig:
    """Overlay a stored snapshot on the default configuration."""
    base = (default or FilterConfig()).model_dump(mode="json")
    if not stored:
        return FilterConfig.model_validate(base)
    return FilterConfig.model_validate(deep_merge(base, _canonical_keys(stored)))


# =============================================================================
# Metadata cache
# =============================================================================

class CacheEntry(BaseModel):
    """A resolved publish year and when it was fetched."""

    model_config = ConfigDict(populate_by_name=True)

    year: int
    fetched_at_ms: int = Field(
        validation_alias=AliasChoices("fetched_at_ms", "fetchedAt", "fetchedAtEpochMs"),
    )

    def is_fresh(self, now_ms: int, ttl_ms: int) -> bool:
        return now_ms - self.fetched_at_ms <= ttl_ms


# =============================================================================
# Global preferences
# =============================================================================

DEFAULT_PLATFORMS: dict[str, bool] = {
    "soundcloud": True,
    "youtube": True,
    "youtube_music": False,
}


class GlobalSettings(BaseModel):
    """Process-wide per-source toggles and display options."""

    model_config = ConfigDict(extra="ignore")

    platforms: dict[str, bool] = Field(default_factory=lambda: dict(DEFAULT_PLATFORMS))
    options: DisplayOptions = Field(default_factory=DisplayOptions)

    def is_source_enabled(self, source: str) -> bool:
        return self.platforms.get(source, DEFAULT_PLATFORMS.get(source, True))
