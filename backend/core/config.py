"""
Application configuration using Pydantic Settings.
"""
from functools import lru_cache
from typing import List
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "Parimutuel Pricing Engine"
    debug: bool = False
    environment: str = "development"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 4

    # Upstream APIs
    pool_api_base: str = "http://localhost:3001/api"
    indexer_api_base: str = "http://localhost:3002/api"
    http_timeout_seconds: float = 10.0  # Transport timeout; the core imposes none

    # Pool sync
    pool_poll_interval_seconds: float = 15.0
    fallback_yes_price: int = Field(default=50, ge=0, le=100)  # Used until a market's first snapshot arrives
    pool_cache_max_markets: int = 1000  # Unobserved markets kept in memory
    ledger_cache_max_users: int = 1000
    currency_symbol: str = "ALEO"

    # Access gating
    admin_addresses: List[str] = []

    # CORS
    cors_origins: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
