"""Tests for configuration and logging setup."""

import pytest
from pydantic import ValidationError

from cercagen.config import Config, get_config, reset_config, setup_logging


class TestConfig:
    """Test Config validation."""

    def test_defaults(self) -> None:
        """Test values that have no environment override."""
        config = Config()
        assert config.default_separator == ","
        assert config.similar_templates_limit == 10
        assert config.search_result_limit == 50
        assert config.import_error_ttl_seconds == 3600

    def test_environment_override(self, tmp_path) -> None:
        """Test the CERCAGEN_ prefix is read from the environment."""
        assert get_config().database_path == str(tmp_path / "cli.db")

    def test_tab_separator_escape(self) -> None:
        """Test a literal backslash-t means tab."""
        assert Config(default_separator="\\t").default_separator == "\t"

    def test_invalid_separator(self) -> None:
        """Test separators outside the allowed set are rejected."""
        with pytest.raises(ValidationError):
            Config(default_separator=":")

    def test_log_level_upper_cased(self) -> None:
        """Test log levels are normalized."""
        assert Config(log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level(self) -> None:
        """Test unknown log levels are rejected."""
        with pytest.raises(ValidationError):
            Config(log_level="LOUD")

    def test_limits(self) -> None:
        """Test range checks on numeric settings."""
        with pytest.raises(ValidationError):
            Config(max_upload_bytes=10)
        with pytest.raises(ValidationError):
            Config(similar_templates_limit=21)


class TestGetConfig:
    """Test the cached configuration."""

    def test_cached(self) -> None:
        """Test the same instance is returned until reset."""
        first = get_config()
        assert get_config() is first
        reset_config()
        assert get_config() is not first

    def test_reads_environment_after_reset(self, monkeypatch) -> None:
        """Test a reset picks up new environment values."""
        monkeypatch.setenv("CERCAGEN_SEARCH_RESULT_LIMIT", "25")
        reset_config()
        assert get_config().search_result_limit == 25


class TestSetupLogging:
    """Test the file sink."""

    def test_creates_log_directory(self, tmp_path) -> None:
        """Test the log file path comes from config and its folder is created."""
        path = setup_logging()
        assert path == tmp_path / "logs" / "cercagen.log"
        assert path.parent.is_dir()

    def test_twice_replaces_sink(self, tmp_path) -> None:
        """Test repeated setup does not fail."""
        setup_logging()
        path = setup_logging(Config(log_file=str(tmp_path / "other" / "x.log")))
        assert path.parent.is_dir()
