"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="AUTOMATION_",
    )

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000
    reload: bool = False
    log_level: Literal["debug", "info", "warning", "error"] = "info"

    # Application settings
    app_name: str = "Automation Engine"
    app_version: str = "0.1.0"
    debug: bool = False

    # CORS settings
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    # Persistence
    database_url: str = "sqlite+aiosqlite:///./automation.db"
    seed_registries: bool = True

    # Execution settings
    max_concurrent_runs: int = 10
    run_timeout_seconds: float = 0
    default_delay_ms: int = 1000
    max_delay_ms: int = 300_000
    step_ordering: Literal["name", "graph"] = "name"
    default_run_max_retries: int = 3
    max_failure_records: int = 100

    # Messaging
    consume_messages: bool = True
    cdc_topic_prefix: str = "dbserver1"
    cdc_schema: str = "public"
    cdc_trigger_key_template: str = "{table}_table_change"
    webhook_topic: str = "workflow.webhooks"
    webhook_trigger_header: str = "x-webhook-trigger"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Loaded once at startup
settings = get_settings()
