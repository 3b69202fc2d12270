"""Configuration for sysmonitor, loaded from environment variables and .env."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from sysmonitor.models import DisplayMode

DEFAULT_LOG_FILE = Path.home() / ".sysmonitor" / "sysmonitor.log"


class Settings(BaseSettings):
    """Runtime settings. Every field can be overridden with SYSMONITOR_<NAME>."""

    model_config = SettingsConfigDict(
        env_prefix="SYSMONITOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Sampling
    poll_rate: float = Field(default=1.0, ge=0.1)
    history_size: int = Field(default=60, ge=1)
    disk_path: str = "/"
    network_interfaces: list[str] = []  # empty = pick physical interfaces

    # Display
    display_mode: DisplayMode = DisplayMode.TEXT
    show_per_core: bool = False

    # Logging
    log_level: str = "INFO"
    log_file: str | None = None


def get_settings() -> Settings:
    """Load a fresh Settings instance."""
    return Settings()
