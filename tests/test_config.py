"""Tests for configuration loading."""

import logging

import pytest

from shelfrank.config import (
    ConfigNotFoundError,
    ConfigValidationError,
    RatingSettings,
    ShelfRankConfig,
    load_config,
)
from shelfrank.logging_setup import configure_logging


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in (
        "SHELFRANK_SYNC__MAX_RETRIES",
        "SHELFRANK_RATING__K_FACTOR",
        "SHELFRANK_DATABASE__PATH",
        "SHELFRANK_LOG_LEVEL",
    ):
        monkeypatch.delenv(key, raising=False)


def _write_config(root, text):
    config_dir = root / ".shelfrank"
    config_dir.mkdir(parents=True, exist_ok=True)
    path = config_dir / "shelfrank.toml"
    path.write_text(text, encoding="utf-8")
    return path


class TestDefaults:
    def test_defaults_without_file(self, tmp_path):
        config = load_config(search_from=tmp_path)

        assert config.rating.default_rating == 1500.0
        assert config.rating.k_factor == 32
        assert config.sync.max_retries == 3
        assert config.sync.queue_slot == "sync_queue"
        assert config.database.path == ".shelfrank/shelfrank.duckdb"
        assert config.remote.sheet_name == "Sheet1"

    def test_inverted_sanity_range_is_rejected(self):
        with pytest.raises(ValueError, match="must be lower"):
            RatingSettings(min_sane_rating=100, max_sane_rating=50)


class TestFile:
    def test_reads_file_found_in_parent(self, tmp_path):
        _write_config(tmp_path, '[sync]\nmax_retries = 5\n\n[remote]\nspreadsheet_id = "abc"\n')
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)

        config = load_config(search_from=nested)

        assert config.sync.max_retries == 5
        assert config.remote.spreadsheet_id == "abc"
        assert config.sync.backoff_initial == 1.0

    def test_explicit_missing_path(self, tmp_path):
        with pytest.raises(ConfigNotFoundError):
            load_config(tmp_path / "missing.toml")

    def test_unknown_section_is_invalid(self, tmp_path):
        path = _write_config(tmp_path, "[ratings]\nk_factor = 10\n")
        with pytest.raises(ConfigValidationError) as exc_info:
            load_config(path)
        assert exc_info.value.errors

    def test_invalid_toml(self, tmp_path):
        path = _write_config(tmp_path, "[rating\n")
        with pytest.raises(ConfigValidationError):
            load_config(path)

    def test_out_of_range_value(self, tmp_path):
        path = _write_config(tmp_path, "[sync]\nmax_retries = 0\n")
        with pytest.raises(ConfigValidationError):
            load_config(path)


class TestEnvironment:
    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = _write_config(tmp_path, "[sync]\nmax_retries = 5\n")
        monkeypatch.setenv("SHELFRANK_SYNC__MAX_RETRIES", "7")

        config = load_config(path)

        assert config.sync.max_retries == 7

    def test_env_without_file(self, monkeypatch):
        monkeypatch.setenv("SHELFRANK_RATING__K_FACTOR", "24")
        assert ShelfRankConfig().rating.k_factor == 24


class TestLogging:
    def test_configure_logging_is_idempotent(self, monkeypatch):
        monkeypatch.setenv("SHELFRANK_LOG_LEVEL", "DEBUG")
        root = logging.getLogger()
        saved_handlers = list(root.handlers)
        saved_level = root.level
        try:
            configure_logging()
            configure_logging(level_name="warning")

            managed = [h for h in root.handlers if getattr(h, "_shelfrank_managed", False)]
            assert len(managed) == 1
            assert root.level == logging.WARNING
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)

    def test_log_section_sets_levels_and_quiets_http_loggers(self, tmp_path):
        path = _write_config(tmp_path, '[log]\nlevel = "debug"\nquiet_loggers = ["httpx"]\n')
        config = load_config(path)
        root = logging.getLogger()
        httpx_logger = logging.getLogger("httpx")
        saved_handlers = list(root.handlers)
        saved_levels = (root.level, httpx_logger.level)
        try:
            configure_logging(config.log)

            assert root.level == logging.DEBUG
            assert httpx_logger.level == logging.WARNING
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_levels[0])
            httpx_logger.setLevel(saved_levels[1])
