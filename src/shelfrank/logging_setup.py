"""Centralized logging configuration for shelfrank."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Final, cast

from rich.console import Console
from rich.logging import RichHandler

if TYPE_CHECKING:
    from shelfrank.config.settings import LogSettings

__all__ = ["configure_logging", "console"]

_LOG_LEVEL_ENV: Final[str] = "SHELFRANK_LOG_LEVEL"
_DEFAULT_LEVEL_NAME: Final[str] = "INFO"
_DEFAULT_QUIET_LOGGERS: Final[tuple[str, ...]] = ("httpx", "httpcore")

console = Console()

if TYPE_CHECKING:

    class _ManagedRichHandler(RichHandler):
        _shelfrank_managed: bool
else:
    _ManagedRichHandler = RichHandler


def _level(name: str | None, fallback: int = logging.INFO) -> int:
    if not name:
        return fallback
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else fallback


def _managed_handler(root_logger: logging.Logger) -> _ManagedRichHandler | None:
    for handler in root_logger.handlers:
        if isinstance(handler, RichHandler) and getattr(handler, "_shelfrank_managed", False):
            return cast(_ManagedRichHandler, handler)
    return None


def configure_logging(settings: LogSettings | None = None, level_name: str | None = None) -> None:
    """Install the Rich console handler and set the shelfrank log levels.

    The level is taken from ``level_name``, then ``SHELFRANK_LOG_LEVEL``, then
    ``settings.level``. HTTP client loggers are held at ``settings.library_level``
    so a sync pass does not print one line per request. Calling this again only
    adjusts the levels.
    """
    root_logger = logging.getLogger()
    configured = settings.level if settings else _DEFAULT_LEVEL_NAME
    level = _level(level_name or os.getenv(_LOG_LEVEL_ENV) or configured)

    if _managed_handler(root_logger) is None:
        root_logger.handlers.clear()
        handler = _ManagedRichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            markup=False,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        handler._shelfrank_managed = True
        root_logger.addHandler(handler)

    root_logger.setLevel(level)
    library_level = _level(settings.library_level if settings else None, logging.WARNING)
    for name in settings.quiet_loggers if settings else _DEFAULT_QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(library_level, level))
    logging.captureWarnings(True)
