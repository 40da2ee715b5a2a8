"""Configuration management for feedsieve."""

from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class HttpSettings(BaseModel):
    """Outbound HTTP settings for metadata resolution."""

    timeout_s: float = 10.0
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/126.0 Safari/537.36"
    )
    scrape_url_template: str = "https://www.youtube.com/watch?v={item_id}"
    api_endpoint: str = "https://www.googleapis.com/youtube/v3/videos"


class CacheSettings(BaseModel):
    """Metadata resolution cache settings."""

    ttl_days: int = 7


class PipelineSettings(BaseModel):
    """Incremental processing controller settings."""

    rescan_interval_s: float = 2.0
    wait_for_items_s: float = 15.0
    hide_mode: Literal["style", "remove"] = "style"


class ScrollSettings(BaseModel):
    """Convergence scroll driver settings."""

    step_px: int = 1000
    interval_s: float = 0.2
    # Consecutive no-progress ticks before the feed is considered exhausted;
    # sized to ride out a slow page load.
    stable_ticks: int = 15
    max_ticks: int = 500


class BrowserSettings(BaseModel):
    """Browser automation settings (uses nested delimiter SIEVE_BROWSER__)."""

    headless: bool = True
    timeout_ms: int = 30000
    viewport_width: int = 1920
    viewport_height: int = 1080


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="SIEVE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",  # SIEVE_SCROLL__MAX_TICKS=100
    )

    log_level: str = "INFO"
    log_dir: Path = Path("logs/feedsieve")
    storage_path: Path = Path("sieve_data/storage.json")

    http: HttpSettings = Field(default_factory=HttpSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    scroll: ScrollSettings = Field(default_factory=ScrollSettings)
    browser: BrowserSettings = Field(default_factory=BrowserSettings)

    @property
    def sources_file(self) -> Path:
        """Get the per-source strategy table."""
        return Path(__file__).resolve().parent.parent / "extraction" / "sources.yaml"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def load_source_registry(path: Path | None = None) -> dict[str, Any]:
    """Load the per-source strategy tables from YAML."""
    registry_path = path or get_settings().sources_file

    with open(registry_path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}
