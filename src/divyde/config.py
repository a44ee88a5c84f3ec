"""Configuration management for Divyde."""

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError

_DATA_DIR = Path.home() / ".divyde"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Which persistence backend to use
    storage_backend: Literal["sqlite", "local", "api"] = "sqlite"

    # Ownership scope for the local backends
    owner_id: str = "local"

    # SQLite backend
    database_path: Path = _DATA_DIR / "divyde.db"

    # Local key-value backend (JSON document)
    local_store_path: Path = _DATA_DIR / "local.json"

    # HTTP API backend
    api_base_url: str | None = None
    api_session_token: str | None = None  # sent as the divyde_session cookie
    api_timeout: float = 30.0

    # Display
    currency_symbol: str = "$"

    def __init__(self, **kwargs):
        """Initialize settings and create data directories if needed."""
        super().__init__(**kwargs)
        if self.storage_backend == "sqlite":
            self.database_path.parent.mkdir(parents=True, exist_ok=True)
        elif self.storage_backend == "local":
            self.local_store_path.parent.mkdir(parents=True, exist_ok=True)


def load_settings() -> Settings:
    """Load application settings from environment variables."""
    try:
        return Settings()
    except Exception as e:
        raise ConfigurationError(
            f"Failed to load settings. Check your environment and .env file.\n"
            f"Error: {e}"
        ) from e
