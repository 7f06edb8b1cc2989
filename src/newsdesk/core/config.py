from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    newsdesk_env: Literal["dev", "prod", "test"] = "dev"
    database_url: str = "sqlite:///newsdesk.db"
    log_level: str = "INFO"
    user_agent: str = "newsdesk/0.1"

    news_source_timeout_seconds: float = Field(default=30.0, gt=0, le=300)
    news_category_concurrency: int = Field(default=3, ge=1, le=32)
    news_max_age_days: int = Field(default=7, ge=1, le=90)
    news_cache_ttl_seconds: int = Field(default=300, ge=1, le=86400)

    edge_enabled: bool = True
    edge_base_url: str = "https://edge.newsdesk.local"
    edge_timeout_seconds: float = Field(default=12.0, gt=0, le=120)

    search_api_url: str = "https://api.gdeltproject.org/api/v2/doc/doc"
    search_max_records: int = Field(default=50, ge=1, le=250)
    search_timespan: str = "7d"

    checkpoint_path: str = "./data/news_checkpoints.json"
    sources_path: str | None = None

    feed_health_max_failures: int = Field(default=5, ge=1, le=100)
    feed_health_retry_after_seconds: int = Field(default=3600, ge=0, le=86400)
    breaker_failure_threshold: int = Field(default=2, ge=1, le=100)
    breaker_reset_seconds: int = Field(default=300, ge=1, le=86400)

    @model_validator(mode="after")
    def _edge_faster_than_direct(self) -> Settings:
        if self.edge_timeout_seconds >= self.news_source_timeout_seconds:
            raise ValueError("edge_timeout_seconds must be shorter than news_source_timeout_seconds")
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
