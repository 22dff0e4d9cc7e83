"""Configuration for shelfrank.

Settings are read from ``.shelfrank/shelfrank.toml`` and may be overridden by
environment variables of the form ``SHELFRANK_SECTION__KEY``
(e.g. ``SHELFRANK_SYNC__MAX_RETRIES=5``).

Priority (highest to lowest):
1. Environment variables
2. Config file
3. Defaults
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shelfrank.config.exceptions import ConfigNotFoundError, ConfigValidationError
from shelfrank.ranking.elo import (
    DEFAULT_RATING,
    K_FACTOR,
    MAX_SANE_RATING,
    MIN_SANE_RATING,
    SCALE,
)

logger = logging.getLogger(__name__)

CONFIG_DIR = ".shelfrank"
CONFIG_FILENAME = "shelfrank.toml"
ENV_PREFIX = "SHELFRANK_"

DEFAULT_DATABASE_PATH = ".shelfrank/shelfrank.duckdb"
DEFAULT_SHEETS_BASE_URL = "https://sheets.googleapis.com/v4"


class RatingSettings(BaseModel):
    """Elo constants used by the replay."""

    default_rating: float = Field(
        default=DEFAULT_RATING,
        description="Rating assigned to an item the first time it takes part in a comparison",
    )
    k_factor: float = Field(
        default=K_FACTOR,
        gt=0,
        description="Maximum rating movement caused by a single comparison",
    )
    scale: float = Field(
        default=SCALE,
        gt=0,
        description="Logistic scale of the expected-score curve",
    )
    min_sane_rating: float = Field(
        default=MIN_SANE_RATING,
        description="Lower bound used by integrity checks (never clamps ratings)",
    )
    max_sane_rating: float = Field(
        default=MAX_SANE_RATING,
        description="Upper bound used by integrity checks (never clamps ratings)",
    )

    @model_validator(mode="after")
    def validate_bounds(self) -> RatingSettings:
        """Ensure the sanity range is not inverted."""
        if self.min_sane_rating >= self.max_sane_rating:
            msg = (
                f"rating.min_sane_rating ({self.min_sane_rating}) must be lower than "
                f"rating.max_sane_rating ({self.max_sane_rating})"
            )
            raise ValueError(msg)
        return self


class SyncSettings(BaseModel):
    """Write-back queue behaviour."""

    max_retries: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Failed attempts after which a queued operation is reported as permanently failed",
    )
    backoff_initial: float = Field(
        default=1.0,
        ge=0.0,
        description="Delay in seconds before the first retry of a failed operation",
    )
    backoff_max: float = Field(
        default=30.0,
        ge=0.0,
        description="Upper bound in seconds for the exponential part of the backoff",
    )
    backoff_jitter: float = Field(
        default=1.0,
        ge=0.0,
        description="Maximum random jitter in seconds added to every backoff delay",
    )
    queue_slot: str = Field(
        default="sync_queue",
        description="Key of the persisted slot the queue is serialized into",
    )


class DatabaseSettings(BaseModel):
    """Local DuckDB storage."""

    path: str = Field(
        default=DEFAULT_DATABASE_PATH,
        description="DuckDB file path, relative to the working directory, or ':memory:'",
    )


class RemoteSettings(BaseModel):
    """Remote spreadsheet store."""

    spreadsheet_id: str | None = Field(
        default=None,
        description="Identifier of the spreadsheet holding the collection",
    )
    sheet_name: str = Field(
        default="Sheet1",
        description="Sheet (tab) the collection rows live in",
    )
    base_url: str = Field(
        default=DEFAULT_SHEETS_BASE_URL,
        description="Base URL of the Sheets values API",
    )
    timeout: float = Field(
        default=30.0,
        gt=0,
        description="Per-request timeout in seconds",
    )
    access_token_env: str = Field(
        default="SHELFRANK_ACCESS_TOKEN",
        description="Environment variable holding the OAuth bearer token",
    )

    def access_token(self) -> str | None:
        """Return the bearer token from the environment, if set."""
        return os.getenv(self.access_token_env) or None


class LogSettings(BaseModel):
    """Console logging."""

    level: str = Field(
        default="INFO",
        description="Level of the shelfrank loggers; SHELFRANK_LOG_LEVEL takes precedence",
    )
    library_level: str = Field(
        default="WARNING",
        description="Level applied to the chatty third-party loggers listed in quiet_loggers",
    )
    quiet_loggers: list[str] = Field(
        default_factory=lambda: ["httpx", "httpcore"],
        description="Third-party loggers that log every request at INFO",
    )


class ShelfRankConfig(BaseSettings):
    """Root configuration for shelfrank."""

    rating: RatingSettings = Field(default_factory=RatingSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    remote: RemoteSettings = Field(default_factory=RemoteSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    model_config = SettingsConfigDict(
        extra="forbid",
        validate_assignment=True,
        env_prefix=ENV_PREFIX,
        env_nested_delimiter="__",
    )


def find_config(start: Path) -> Path | None:
    """Search ``start`` and its parents for ``.shelfrank/shelfrank.toml``."""
    current = start.resolve()
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_DIR / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def _collect_env_override_paths() -> set[tuple[str, ...]]:
    """Return config paths that are overridden by SHELFRANK_* variables."""
    paths: set[tuple[str, ...]] = set()
    for key in os.environ:
        if not key.startswith(ENV_PREFIX):
            continue
        remainder = key[len(ENV_PREFIX) :]
        if not remainder:
            continue
        paths.add(tuple(part.lower() for part in remainder.split("__")))
    return paths


def _merge_config(
    base: dict[str, Any],
    override: dict[str, Any],
    env_override_paths: set[tuple[str, ...]],
    current_path: tuple[str, ...] = (),
) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        path = (*current_path, str(key).lower())
        if path in env_override_paths:
            continue
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge_config(merged[key], value, env_override_paths, path)
        else:
            merged[key] = value
    return merged


def load_config(path: Path | None = None, *, search_from: Path | None = None) -> ShelfRankConfig:
    """Load configuration from a TOML file, environment variables and defaults.

    Args:
        path: Explicit config file. Must exist when given.
        search_from: Directory to search upwards from when ``path`` is None.
            Defaults to the current working directory.

    Raises:
        ConfigNotFoundError: If ``path`` was given but does not exist.
        ConfigValidationError: If the file content is invalid.

    """
    if path is not None and not path.is_file():
        raise ConfigNotFoundError(path)

    config_path = path or find_config(search_from or Path.cwd())
    if config_path is None:
        logger.debug("No %s found, using defaults and environment", CONFIG_FILENAME)
        return ShelfRankConfig()

    logger.info("Loading config from %s", config_path)
    try:
        file_data = tomllib.loads(config_path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigValidationError(config_path, [{"loc": (), "msg": str(exc)}]) from exc

    try:
        base_dict = ShelfRankConfig().model_dump(mode="json")
        merged = _merge_config(base_dict, file_data, _collect_env_override_paths())
        return ShelfRankConfig.model_validate(merged)
    except ValidationError as exc:
        for error in exc.errors():
            loc = " -> ".join(str(part) for part in error["loc"])
            logger.error("  %s: %s", loc, error["msg"])
        raise ConfigValidationError(config_path, exc.errors()) from exc
