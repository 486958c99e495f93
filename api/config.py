"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Score buckets shared by aggregation and filtering
BUCKET_GOOD_MIN = 80
BUCKET_NEEDS_WORK_MIN = 60


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: Literal["development", "production", "test"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    # Audit backend (scoring service, sitemap, keyword lookup, task store)
    audit_service_url: str = "http://localhost:3000/api"
    audit_request_timeout: float = 120.0  # Remote multi-audit maxDuration
    audit_user_agent: str = "SEAUTO-AuditBot/1.0"

    # Batch scheduler
    audit_chunk_size: int = Field(default=3, ge=1, le=10)
    audit_use_multi_endpoint: bool = True
    audit_types: list[str] = Field(
        default_factory=lambda: ["seo", "content", "aeo", "schema", "compliance", "speed"]
    )

    # Aggregation
    run_gap_minutes: float = 5.0

    # Target resolution
    group_keyword_limit: int = 20
    keyword_lookback_days: int = 90

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.env == "production"

    @property
    def is_test(self) -> bool:
        """Check if running in test mode."""
        return self.env == "test"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
