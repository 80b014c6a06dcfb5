"""Configuration loading for the carrierlab testing engine.

This module provides centralized configuration management:
- Load settings from environment variables and .env files
- Validate configuration using pydantic
- Provide typed access to all settings
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment.

    Uses pydantic-settings for environment variable handling with
    .env file support via python-dotenv.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Engine admission and cadence
    max_concurrent_tests: int = Field(
        default=10,
        description="Maximum number of tests running at once",
    )
    max_queue_size: int = Field(
        default=100,
        description="Maximum number of tests waiting for a running slot",
    )
    dispatch_interval_seconds: float = Field(
        default=1.0,
        description="How often queued tests are promoted",
    )
    shutdown_timeout_seconds: float = Field(
        default=10.0,
        description="How long shutdown waits for test loops to unwind",
    )

    # Performance monitoring
    monitor_interval_seconds: float = Field(
        default=30.0,
        description="Interval between performance checks",
    )
    load_warning_ratio: float = Field(
        default=0.9,
        description="Warn when running tests exceed this fraction of the cap",
    )
    queue_warning_threshold: int = Field(
        default=50,
        description="Warn when more tests than this are queued",
    )
    memory_warning_mb: float = Field(
        default=500.0,
        description="Warn when process memory exceeds this many megabytes",
    )

    # Result store configuration
    store_sqlite_path: str = Field(
        default="./data/carrierlab.db",
        description="SQLite database file path",
    )
    result_retention_days: int = Field(
        default=30,
        description="Days of results kept by the maintenance cleanup",
    )
    maintenance_interval_seconds: float = Field(
        default=3600.0,
        description="Interval between maintenance (cleanup) runs",
    )

    # Probes
    probe_timeout_seconds: float = Field(
        default=10.0,
        description="Per-request timeout for HTTP probes",
    )
    simulated_probe_seed: int | None = Field(
        default=None,
        description="Seed for the simulated radio probes (None = random)",
    )

    # Live event fan-out
    broadcast_queue_size: int = Field(
        default=1000,
        description="Per-subscriber event buffer; events beyond it are dropped",
    )

    # Logging configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Log level",
    )
    log_format: Literal["json", "text"] = Field(
        default="text",
        description="Log format",
    )

    # Run mode
    run_mode: Literal["server", "cli"] = Field(
        default="server",
        description="Run mode",
    )

    # HTTP API configuration
    http_host: str = Field(
        default="0.0.0.0",
        description="Host to listen on for the HTTP API",
    )
    http_port: int = Field(
        default=8080,
        description="Port to listen on for the HTTP API",
    )
    http_api_key: str = Field(
        default="",
        description="API key for HTTP authentication (required for production)",
    )
    http_require_auth: bool = Field(
        default=False,
        description="Require API key authentication for HTTP endpoints",
    )

    # Development
    debug: bool = Field(
        default=False,
        description="Enable debug mode with verbose logging",
    )

    @field_validator("max_concurrent_tests")
    @classmethod
    def validate_max_concurrent(cls, v: int) -> int:
        """Ensure at least one test can run."""
        if v < 1:
            raise ValueError("max_concurrent_tests must be at least 1")
        return v

    @field_validator("max_queue_size", "queue_warning_threshold")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("value must be non-negative")
        return v

    @field_validator(
        "dispatch_interval_seconds",
        "monitor_interval_seconds",
        "maintenance_interval_seconds",
        "probe_timeout_seconds",
        "shutdown_timeout_seconds",
    )
    @classmethod
    def validate_positive_seconds(cls, v: float) -> float:
        """Ensure intervals and timeouts are positive."""
        if v <= 0:
            raise ValueError("interval must be positive")
        return v

    @field_validator("load_warning_ratio")
    @classmethod
    def validate_load_ratio(cls, v: float) -> float:
        if not 0 < v <= 1:
            raise ValueError("load_warning_ratio must be in (0, 1]")
        return v

    @field_validator("result_retention_days", "broadcast_queue_size")
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        if v < 1:
            raise ValueError("value must be at least 1")
        return v

    @field_validator("http_port")
    @classmethod
    def validate_http_port(cls, v: int) -> int:
        """Ensure HTTP port is in valid range."""
        if v <= 0 or v > 65535:
            raise ValueError("http_port must be between 1 and 65535")
        return v


def load_settings(env_file: str | None = None) -> Settings:
    """Load application settings from environment.

    Args:
        env_file: Optional path to .env file. If not provided,
                 uses the default .env in the current directory.

    Returns:
        Validated Settings instance.

    Raises:
        ValidationError: If settings validation fails.
    """
    if env_file:
        return Settings(_env_file=env_file)  # type: ignore[call-arg]
    return Settings()


__all__ = ["Settings", "load_settings"]
