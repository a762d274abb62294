"""
Environment-based configuration using pydantic-settings.
Secrets (Discogs token, Sanity token) come from environment variables only.
"""
from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_MB = 1024 * 1024


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ── Core ────────────────────────────────────────────────────────────────
    ENV: str = "production"
    LOG_LEVEL: str = "INFO"

    # ── Cache ───────────────────────────────────────────────────────────────
    CACHE_GLOBAL_MAX_MEMORY_MB: float = 50
    CACHE_SWEEP_INTERVAL_SECONDS: float = 120

    CACHE_PRODUCTS_TTL_SECONDS: float = 600
    CACHE_PRODUCTS_MAX_ENTRIES: int = 100
    CACHE_PRODUCTS_MAX_MEMORY_MB: float = 20

    CACHE_RELATED_TTL_SECONDS: float = 300
    CACHE_RELATED_MAX_ENTRIES: int = 200
    CACHE_RELATED_MAX_MEMORY_MB: float = 15

    CACHE_IMAGES_TTL_SECONDS: float = 1800
    CACHE_IMAGES_MAX_ENTRIES: int = 500
    CACHE_IMAGES_MAX_MEMORY_MB: float = 10

    CACHE_PROMISES_TTL_SECONDS: float = 120
    CACHE_PROMISES_MAX_ENTRIES: int = 50
    CACHE_PROMISES_MAX_MEMORY_MB: float = 5

    # ── Playback ────────────────────────────────────────────────────────────
    PLAYBACK_GRACE_PERIOD_SECONDS: float = 5.0
    PLAYBACK_POLL_INTERVAL_SECONDS: float = 0.25
    PLAYBACK_STOP_FADE_SECONDS: float = 0.4

    # ── Enrichment ──────────────────────────────────────────────────────────
    ENRICHMENT_CACHE_TTL_SECONDS: float = 86400
    ENRICHMENT_CACHE_MAX_ENTRIES: int = 500
    ENRICHMENT_CACHE_MAX_MEMORY_MB: float = 10
    ENRICHMENT_GUARD_MAX_MEMORY_MB: float = 1
    ENRICH_TITLES: bool = True
    ENRICH_ARTISTS: bool = True
    ENRICH_REQUIRE_RELEASE_ID: bool = True
    ENRICH_SKIP_IF_ALREADY_ENHANCED: bool = True

    # ── Discogs ─────────────────────────────────────────────────────────────
    DISCOGS_API_BASE: str = "https://api.discogs.com"
    DISCOGS_TOKEN: Optional[str] = None
    DISCOGS_USER_AGENT: str = "TheMixtapeClub/1.0 +https://themixtapeclub.com"

    # ── Tracklist persistence endpoint (optional) ───────────────────────────
    TRACKLIST_UPDATE_URL: Optional[str] = None

    # ── Sanity content store (optional) ─────────────────────────────────────
    SANITY_PROJECT_ID: Optional[str] = None
    SANITY_DATASET: str = "production"
    SANITY_API_VERSION: str = "2023-05-03"
    SANITY_API_TOKEN: Optional[str] = None

    # ── HTTP client ──────────────────────────────────────────────────────────
    HTTP_TIMEOUT_SECONDS: int = 30
    HTTP_MAX_REDIRECTS: int = 3
    HTTP_RETRY_ATTEMPTS: int = 3
    HTTP_RETRY_BACKOFF: float = 1.5

    @field_validator("DISCOGS_API_BASE", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return str(v).rstrip("/")

    @property
    def cache_global_max_memory_bytes(self) -> int:
        return int(self.CACHE_GLOBAL_MAX_MEMORY_MB * _MB)

    @property
    def sanity_enabled(self) -> bool:
        return bool(self.SANITY_PROJECT_ID and self.SANITY_API_TOKEN)

    def mb(self, value: float) -> int:
        """Megabytes → bytes."""
        return int(value * _MB)


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
