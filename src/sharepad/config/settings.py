"""Application settings loaded from environment variables."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings.

    All settings can be overridden via environment variables.
    Example: SHAREPAD_DATA_DIR=/srv/sharepad
    """

    model_config = SettingsConfigDict(
        env_prefix="SHAREPAD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage
    data_dir: Path = Field(
        default=Path("data"),
        description="Root directory for uploads, texts and temp chunks",
    )
    default_environment: str = Field(
        default="default",
        description="Environment that is never garbage-collected",
    )

    # HTTP service
    host: str = Field(default="0.0.0.0", description="Bind address")  # noqa: S104
    port: int = Field(default=8088, description="Bind port")

    # Observability
    log_level: str = Field(
        default="INFO",
        description="Logging level: DEBUG, INFO, WARNING, ERROR",
    )
    log_json: bool = Field(
        default=True,
        description="Output logs as JSON (True for production)",
    )
    service_name: str = Field(
        default="sharepad",
        description="Service name for logs",
    )

    # Chunked uploads
    chunk_size_bytes: int = Field(
        default=45 * 1024 * 1024,
        description="Files above this size are sent in chunks of this size",
    )
    session_expiry_seconds: int = Field(
        default=30 * 60,
        description="Upload sessions older than this are reaped",
    )
    session_stale_seconds: int = Field(
        default=2 * 60,
        description="Upload sessions idle for longer than this are reaped",
    )

    # Maintenance
    reaper_interval_seconds: float = Field(
        default=10,
        description="Interval between upload session sweeps",
    )
    environment_sweep_interval_seconds: float = Field(
        default=5 * 60,
        description="Interval between empty-environment sweeps",
    )
    cleanup_delay_seconds: float = Field(
        default=1.0,
        description="Delay before checking an environment after a mutation",
    )

    @property
    def uploads_dir(self) -> Path:
        """Root of per-environment upload directories."""
        return self.data_dir / "uploads"

    @property
    def texts_dir(self) -> Path:
        """Directory holding one text file per environment."""
        return self.data_dir / "texts"

    @property
    def temp_dir(self) -> Path:
        """Directory for buffered upload chunks."""
        return self.data_dir / "temp"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
