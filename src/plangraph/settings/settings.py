"""Application settings configuration."""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PLANGRAPH_",
        extra="ignore"
    )

    # Scheduler configuration
    max_concurrency: Optional[int] = None  # None runs a whole wavefront at once
    dispatch_timeout_seconds: Optional[float] = None  # None waits for the executor

    # Run identifiers
    run_id_prefix: str = "run"

    # Logging configuration
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file: Optional[str] = None  # Path to log file (None disables file logging)
    log_file_level: str = "DEBUG"  # Log level for file output
    log_show_path: bool = True  # Show file path in console logs
    log_show_time: bool = True  # Show timestamp in console logs
    log_rich_tracebacks: bool = True  # Enable rich tracebacks with syntax highlighting
    log_file_rotation: str = "10 MB"  # Log file rotation size
    log_file_retention: str = "7 days"  # Log file retention period
    log_file_compression: str = "zip"  # Log file compression format
