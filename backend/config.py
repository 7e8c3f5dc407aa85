from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
import json
import os
import logging
from pathlib import Path

# Set up logging
logger = logging.getLogger(__name__)

# Config file location
CONFIG_DIR = Path(os.environ.get("CONFIG_DIR", "/config"))
CONFIG_FILE = CONFIG_DIR / "settings.json"

# Refresh defaults
DEFAULT_EPG_REFRESH_HOURS = 6
DEFAULT_VOD_REFRESH_HOURS = 24
# Max sources synced at the same time
SYNC_CONCURRENCY = 5

CHANNEL_SORT_ORDERS = ("alphabetical", "number")


class RefreshPolicy(BaseModel):
    """Refresh thresholds for one sync session. Frozen once built."""
    model_config = ConfigDict(frozen=True)

    epg_refresh_hours: float = Field(default=DEFAULT_EPG_REFRESH_HOURS, ge=0)
    vod_refresh_hours: float = Field(default=DEFAULT_VOD_REFRESH_HOURS, ge=0)
    concurrency_limit: int = SYNC_CONCURRENCY

    @field_validator("concurrency_limit")
    @classmethod
    def _fixed_concurrency(cls, value: int) -> int:
        if value != SYNC_CONCURRENCY:
            raise ValueError(f"concurrency_limit is fixed at {SYNC_CONCURRENCY}")
        return value


class AppSettings(BaseModel):
    """User settings as stored by the desktop UI.

    Keys are accepted in the UI's camelCase form (``epgRefreshHours``) or by
    field name. Unknown keys are kept so the blob round-trips untouched.
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    # Refresh intervals in hours. 0 = manual refresh only
    epg_refresh_hours: float = Field(default=DEFAULT_EPG_REFRESH_HOURS, ge=0, alias="epgRefreshHours")
    vod_refresh_hours: float = Field(default=DEFAULT_VOD_REFRESH_HOURS, ge=0, alias="vodRefreshHours")
    # Pass-through preferences, handed to the UI untouched
    channel_sort_order: Optional[str] = Field(default=None, alias="channelSortOrder")
    shortcuts: Optional[dict[str, str]] = None
    theme: Optional[str] = None
    show_sidebar: Optional[bool] = Field(default=None, alias="showSidebar")
    channel_font_size: Optional[int] = Field(default=None, alias="channelFontSize")
    category_font_size: Optional[int] = Field(default=None, alias="categoryFontSize")

    @field_validator("epg_refresh_hours", "vod_refresh_hours", mode="before")
    @classmethod
    def _none_means_default(cls, value, info):
        if value is None:
            if info.field_name == "epg_refresh_hours":
                return DEFAULT_EPG_REFRESH_HOURS
            return DEFAULT_VOD_REFRESH_HOURS
        return value

    @field_validator(
        "channel_sort_order", "shortcuts", "theme", "show_sidebar",
        "channel_font_size", "category_font_size",
        mode="wrap",
    )
    @classmethod
    def _lenient_preference(cls, value, handler, info):
        # Preferences belong to the UI; a bad one is dropped, never fatal
        try:
            value = handler(value)
        except ValidationError as e:
            logger.warning("Ignoring invalid %s setting %r: %s", info.field_name, value, e.errors()[0]["msg"])
            return None
        if info.field_name == "channel_sort_order" and value not in (None, *CHANNEL_SORT_ORDERS):
            logger.warning("Ignoring unknown channel sort order %r", value)
            return None
        return value

    def refresh_policy(self) -> RefreshPolicy:
        return RefreshPolicy(
            epg_refresh_hours=self.epg_refresh_hours,
            vod_refresh_hours=self.vod_refresh_hours,
        )


class Settings(BaseSettings):
    """App settings from environment (for container config)."""
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    log_level: str = "INFO"
    # Total and connect timeouts for stream probe requests, in seconds
    probe_timeout: float = 10.0
    probe_connect_timeout: float = 5.0


# In-memory cache of settings
_cached_settings: AppSettings | None = None


def load_app_settings() -> AppSettings:
    """Load settings from file or return defaults."""
    global _cached_settings

    if _cached_settings is not None:
        return _cached_settings

    logger.info("Loading settings from %s (exists: %s)", CONFIG_FILE, CONFIG_FILE.exists())

    if CONFIG_FILE.exists():
        try:
            data = json.loads(CONFIG_FILE.read_text())
            _cached_settings = AppSettings.model_validate(data)
            logger.info("Loaded settings successfully")
            return _cached_settings
        except Exception as e:
            logger.error("Failed to load settings from %s: %s", CONFIG_FILE, e)

    logger.info("Using default settings (no config file found or failed to parse)")
    _cached_settings = AppSettings()
    return _cached_settings


def clear_settings_cache() -> None:
    """Clear the cached settings (forces reload)."""
    global _cached_settings
    _cached_settings = None
    logger.info("Settings cache cleared")


def get_env_settings() -> Settings:
    """Read process-level settings from the environment."""
    return Settings()


def set_log_level(level: str) -> None:
    """Set the logging level for all loggers dynamically."""
    level_upper = level.upper()

    # Validate log level
    valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if level_upper not in valid_levels:
        logger.warning("Invalid log level '%s', using INFO", level)
        level_upper = "INFO"

    numeric_level = getattr(logging, level_upper)
    logging.getLogger().setLevel(numeric_level)

    for logger_name in logging.root.manager.loggerDict:
        logging.getLogger(logger_name).setLevel(numeric_level)

    logger.info("Log level set to %s", level_upper)
