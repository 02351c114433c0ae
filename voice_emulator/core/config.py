"""
Centralised configuration via Pydantic Settings.

Reads from .env in dev and from the process environment in production.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Application ─────────────────────────────────────────
    app_env: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:3000"]
    app_base_url: str = "http://localhost:8000"

    # ── Security ────────────────────────────────────────────
    api_key: str = "change-me"
    start_rate_limit: str = "10/minute"

    # ── Discovery: Perplexity ───────────────────────────────
    perplexity_api_key: str = ""
    perplexity_model: str = "sonar-pro"
    discovery_timeout_seconds: float = 60.0

    # ── Collectors: Apify (Twitter/X, LinkedIn) ─────────────
    apify_api_key: str = ""
    apify_twitter_actor: str = "kaitoeasyapi~twitter-x-data-tweet-scraper-pay-per-result-cheapest"
    apify_linkedin_actor: str = "apimaestro~linkedin-profile-posts"
    apify_poll_interval_seconds: float = 3.0
    max_tweets: int = 50
    max_linkedin_posts: int = 25

    # ── Collectors: Firecrawl (newsletter, blog) ────────────
    firecrawl_api_key: str = ""
    max_blog_posts: int = 5
    blog_content_chars: int = 5000

    # ── Collector timeouts ──────────────────────────────────
    collector_timeout_seconds: float = 300.0
    collector_timeouts: dict[str, float] = Field(
        default_factory=dict,
        description="Per-source overrides, e.g. {'twitter': 1300}",
    )

    # ── Voice synthesis (optional analysis stage) ───────────
    google_api_key: str = ""
    model_synthesizer: str = "gemini-2.5-flash"
    voice_synthesis_enabled: bool = False
    synthesis_sample_size: int = 30

    # ── Job store housekeeping ──────────────────────────────
    job_retention_seconds: int = 3600
    sweep_interval_seconds: int = 300

    # ── Document export ─────────────────────────────────────
    documents_dir: str = "./output/documents"

    @field_validator("app_base_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def synthesis_enabled(self) -> bool:
        return self.voice_synthesis_enabled and bool(self.google_api_key)

    def collector_timeout(self, source: str) -> float:
        return self.collector_timeouts.get(source, self.collector_timeout_seconds)


@lru_cache
def get_settings() -> Settings:
    return Settings()
