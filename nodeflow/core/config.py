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
        env_prefix="NODEFLOW_",
    )

    # Server settings
    host: str = "0.0.0.0"
    port: int = 5678
    reload: bool = False
    log_level: Literal["debug", "info", "warning", "error"] = "info"

    # Application settings
    app_name: str = "nodeflow"
    app_version: str = "0.1.0"
    debug: bool = False

    # CORS settings
    cors_origins: list[str] = ["*"]

    # Persistence
    database_url: str | None = None
    max_execution_records: int = 1000
    save_execution_progress: bool = False

    # Execution settings
    executions_process: Literal["main", "own"] = "own"
    executions_timeout: int = -1  # seconds, -1 disables
    executions_max_timeout: int = 3600
    graceful_shutdown_timeout: int = 30
    max_node_executions: int = 10000
    nodes_exclude: list[str] = []

    # Wait / resume
    wait_poll_interval: float = 60.0
    wait_lookahead: float = 70.0
    in_process_wait_threshold: float = 65.0

    # Binary data
    binary_data_mode: Literal["default", "memory", "filesystem"] = "default"
    binary_data_modes: list[str] = ["default", "memory", "filesystem"]
    binary_data_storage_path: str = "./binary-data"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
