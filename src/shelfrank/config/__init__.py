"""Configuration models and loading."""

from shelfrank.config.exceptions import ConfigError, ConfigNotFoundError, ConfigValidationError
from shelfrank.config.settings import (
    DatabaseSettings,
    LogSettings,
    RatingSettings,
    RemoteSettings,
    ShelfRankConfig,
    SyncSettings,
    load_config,
)

__all__ = [
    "ConfigError",
    "ConfigNotFoundError",
    "ConfigValidationError",
    "DatabaseSettings",
    "LogSettings",
    "RatingSettings",
    "RemoteSettings",
    "ShelfRankConfig",
    "SyncSettings",
    "load_config",
]
