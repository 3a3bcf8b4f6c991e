"""Configuration settings for Lifeline.

Storage layout under ``storage_dir``:
- events.db: imported canonical events
- logs/: JSONL run logs
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="LIFELINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage directory (default: .lifeline in current directory)
    storage_dir: Path = Field(default=Path(".lifeline"))

    # Run logs; defaults to <storage_dir>/logs
    log_dir: Path | None = None

    @property
    def events_db_path(self) -> Path:
        """Path to the event store database."""
        return self.storage_dir / "events.db"

    @property
    def events_db_url(self) -> str:
        """SQLAlchemy URL for the event store."""
        return f"sqlite:///{self.events_db_path}"

    @property
    def resolved_log_dir(self) -> Path:
        return self.log_dir if self.log_dir is not None else self.storage_dir / "logs"

    def ensure_storage_dir(self) -> None:
        """Create storage directory if it doesn't exist."""
        self.storage_dir.mkdir(parents=True, exist_ok=True)


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get cached settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings cache (useful for testing)."""
    global _settings
    _settings = None

