"""
Configuration settings for sqldojo.

Uses Pydantic Settings to load environment variables for logging, the engine
instance pool, the embedded engine, and result comparison.
"""
from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    json_logs: bool = Field(False, alias="JSON_LOGS")

    # Instance pool
    pool_max_per_schema: int = Field(2, ge=0, alias="POOL_MAX_PER_SCHEMA")
    pool_max_total: int = Field(10, ge=1, alias="POOL_MAX_TOTAL")

    # Embedded engine
    statement_timeout_ms: int = Field(10_000, ge=0, alias="STATEMENT_TIMEOUT_MS")
    engine_threads: int = Field(1, ge=1, alias="ENGINE_THREADS")
    engine_memory_limit: str = Field("256MB", alias="ENGINE_MEMORY_LIMIT")

    # Result comparison
    numeric_precision: int = Field(4, ge=0, alias="NUMERIC_PRECISION")
    require_matching_fields: bool = Field(False, alias="REQUIRE_MATCHING_FIELDS")

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


__all__ = ["Settings", "get_settings"]
