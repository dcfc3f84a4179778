"""Application configuration using Pydantic Settings."""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

APP_VERSION = "0.1.0"

# Keys in settings.json that hold nested tunables rather than Settings fields
NESTED_SECTIONS = ("matching", "sync")


def _default_data_dir() -> Path:
    """Resolve the default data directory.

    MANGASYNC_DATA_DIR wins when it points at an existing directory (tests),
    then /config (container), then backend/data next to the package.
    """
    data_dir_env = os.environ.get("MANGASYNC_DATA_DIR", "")
    if data_dir_env and Path(data_dir_env).exists():
        return Path(data_dir_env)
    if Path("/config").exists():
        return Path("/config")
    # __file__ is backend/mangasync/core/config.py, so go up to backend/ and add data
    return (Path(__file__).parent.parent.parent / "data").resolve()


def json_config_settings_source(
    settings: BaseSettings | None = None,
) -> dict[str, Any]:  # noqa: ANN001
    """Load settings from settings.json file.

    This source has lowest priority - env vars will override JSON values.
    The nested "matching" and "sync" sections are skipped here; they are read
    by the matching and sync config loaders.

    Returns:
        Dictionary with setting keys (lowercase) and values from JSON file.
    """
    settings_file = _default_data_dir() / "config" / "settings.json"
    if not settings_file.exists():
        return {}

    try:
        with settings_file.open("r") as f:
            data = json.load(f)
    except (OSError, ValueError):
        return {}

    if not isinstance(data, dict):
        return {}

    return {k.lower(): v for k, v in data.items() if k not in NESTED_SECTIONS}


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from:
    1. JSON file (settings.json in config directory) - lowest priority
    2. .env file
    3. Environment variables - highest priority (override JSON/.env)

    All settings are prefixed with MANGASYNC_ (e.g., MANGASYNC_ENV=production).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="MANGASYNC_",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customize settings sources - JSON file first, then env vars.

        Priority (lowest to highest):
        1. JSON file (settings.json)
        2. .env file
        3. Environment variables
        4. Init settings (values passed to Settings()) - highest priority
        """
        return (  # type: ignore[return-value]
            json_config_settings_source,
            dotenv_settings,
            env_settings,
            init_settings,
        )

    # Application
    env: Literal["development", "production", "testing"] = Field(
        default="development",
        description="Application environment (development, production, testing)",
    )

    # Server
    host: str = Field(
        default="0.0.0.0",
        description="Host address to bind the HTTP server to",
    )
    port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="HTTP server port",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    file_logging: bool = Field(
        default=False,
        description="Write JSON logs to files under logs_dir instead of stdout",
    )

    # Target catalog (AniList)
    anilist_api_url: str = Field(
        default="https://graphql.anilist.co",
        description="AniList GraphQL endpoint",
    )
    anilist_token: str | None = Field(
        default=None,
        description="AniList OAuth access token used for list updates",
    )
    anilist_rate_limit: int = Field(
        default=28,
        ge=1,
        description="Maximum AniList requests per rate limit period",
    )
    anilist_rate_limit_period: int = Field(
        default=60,
        ge=1,
        description="AniList rate limit window in seconds",
    )

    data_dir: Path = Field(
        default_factory=_default_data_dir,
        description="Base directory for all application data (config, cache, logs)",
    )

    @property
    def config_dir(self) -> Path:
        """Directory for configuration files (settings.json, sync_stats.json)."""
        return self.data_dir / "config"

    @property
    def cache_dir(self) -> Path:
        """Directory for cache files."""
        return self.data_dir / "cache"

    @property
    def logs_dir(self) -> Path:
        """Directory for log files (if file logging is enabled)."""
        return self.data_dir / "logs"

    @property
    def settings_file(self) -> Path:
        """Path to settings.json."""
        return self.config_dir / "settings.json"

    @property
    def sync_stats_file(self) -> Path:
        """Path to the persisted sync statistics."""
        return self.config_dir / "sync_stats.json"

    @property
    def is_debug(self) -> bool:
        """Check if running in debug/development mode."""
        return self.env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.env == "production"

    @property
    def is_testing(self) -> bool:
        """Check if running in testing mode."""
        return self.env == "testing"

    def model_post_init(self, __context: object) -> None:
        """Post-initialization: create data directories if they don't exist."""
        self.data_dir = self.data_dir.resolve()

        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.logs_dir.mkdir(parents=True, exist_ok=True)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the cached settings instance.

    The cache is cleared when reload_settings() is called.
    """
    return Settings()


def reload_settings() -> Settings:
    """Reload settings from all sources (JSON, .env, env vars).

    Returns:
        New Settings instance
    """
    get_settings.cache_clear()
    return get_settings()


def load_settings_section(name: str) -> dict[str, Any] | None:
    """Read one nested section ("matching", "sync") from settings.json.

    Args:
        name: Section key

    Returns:
        The section dict, or None when the file or section is missing

    Raises:
        ValueError: If the file exists but is not valid JSON
    """
    settings_file = get_settings().settings_file
    if not settings_file.exists():
        return None

    with settings_file.open("r") as f:
        data = json.load(f)

    section = data.get(name) if isinstance(data, dict) else None
    return section if isinstance(section, dict) else None
