"""
Application configuration.

Loads settings from environment variables with sensible defaults.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # ==========================================================================
    # Environment
    # ==========================================================================

    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # ==========================================================================
    # Backend API
    # ==========================================================================

    api_base_url: str = "http://localhost:8096/api/v1"
    api_timeout_seconds: float = 30.0

    # Idempotent GETs only; POSTs are never retried
    fetch_retry_attempts: int = 3
    fetch_retry_max_wait_seconds: float = 10.0

    # ==========================================================================
    # Account binding
    # ==========================================================================

    default_platform: str = "bilibili"
    binding_poll_interval_seconds: float = 2.0
    binding_default_expires_in: int = 300
    binding_success_close_delay_seconds: float = 1.5

    # ==========================================================================
    # Local state
    # ==========================================================================

    state_dir: str = "./data/state"

    # ==========================================================================
    # Local API Server
    # ==========================================================================

    api_host: str = "127.0.0.1"
    api_port: int = 8010
    cors_origins: str = "http://localhost:3000"

    # ==========================================================================
    # Optional Services
    # ==========================================================================

    sentry_dsn: str = ""

    # ==========================================================================
    # Helpers
    # ==========================================================================

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def state_path(self) -> Path:
        return Path(self.state_dir)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
