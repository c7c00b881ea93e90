"""
Configuration settings for the rate refresh service.

Uses Pydantic Settings to load environment variables for database connections,
logging, the refresh cron job and the upstream rates API.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("currency_rates", alias="DB_NAME")
    db_pool_min_size: int = Field(1, ge=1, alias="DB_POOL_MIN_SIZE")
    db_pool_max_size: int = Field(10, ge=1, alias="DB_POOL_MAX_SIZE")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    json_logs: bool = Field(False, alias="JSON_LOGS")
    store_backend: Literal["postgres", "memory"] = Field("postgres", alias="STORE_BACKEND")

    # Cron job
    rates_update_interval_seconds: int = Field(
        10, ge=1, le=60_000, alias="RATES_UPDATE_INTERVAL_SECONDS"
    )
    rates_update_batch_size: int = Field(10, ge=1, le=100, alias="RATES_UPDATE_BATCH_SIZE")
    max_overlapping_cycles: int = Field(2, ge=1, alias="MAX_OVERLAPPING_CYCLES")
    stale_processing_timeout_seconds: Optional[int] = Field(
        None, ge=1, alias="STALE_PROCESSING_TIMEOUT_SECONDS"
    )

    # Rates API
    rates_api_type: Literal["frankfurter", "mock"] = Field("mock", alias="RATES_API_TYPE")
    frankfurter_api_url: str = Field("https://api.frankfurter.dev", alias="FRANKFURTER_API_URL")
    http_timeout_seconds: float = Field(10.0, gt=0, alias="HTTP_TIMEOUT_SECONDS")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


def build_dsn(settings: Optional[Settings] = None) -> str:
    """Compose a Postgres DSN string from settings."""
    settings = settings or get_settings()
    return (
        f"postgresql://{settings.db_user}:{settings.db_password}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )


__all__ = ["Settings", "build_dsn", "get_settings"]
