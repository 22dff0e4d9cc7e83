"""Custom exceptions for configuration handling."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Any

from shelfrank.exceptions import ShelfRankError


class ConfigError(ShelfRankError):
    """Base exception for all configuration-related errors."""


class ConfigNotFoundError(ConfigError):
    """Raised when an explicitly requested configuration file does not exist."""

    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"Configuration file not found: {path}")


class ConfigValidationError(ConfigError):
    """Raised when the configuration file fails validation."""

    def __init__(self, path: Path, errors: Sequence[dict[str, Any]] | None = None) -> None:
        self.path = path
        self.errors = list(errors or [])
        super().__init__(f"Configuration in {path} failed validation with {len(self.errors)} error(s).")
