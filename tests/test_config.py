"""
Unit tests for Config class.

Tests configuration management, environment variable handling,
and validation for the execution engine settings.
"""

import os
import pytest
from unittest.mock import patch
from pathlib import Path

from pathfinder.core.config import Config
from pathfinder.core.exceptions import ValidationError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "CI",
        "PATHFINDER_HEADLESS",
        "PATHFINDER_LOG_LEVEL",
        "PATHFINDER_LOG_FORMAT",
        "PATHFINDER_CONCURRENCY",
        "PATHFINDER_MAX_RETRIES",
        "PATHFINDER_SCENARIO_DEADLINE_MS",
        "PATHFINDER_HOME",
        "PATHFINDER_SUITES_DIR",
    ):
        monkeypatch.delenv(name, raising=False)


class TestConfig:
    """Test cases for Config class."""

    def test_default_config_creation(self):
        """Test creating config with default values."""
        config = Config()

        assert config.ci_mode is False
        assert config.headless_mode is None
        assert config.log_level == "INFO"
        assert config.log_format == "text"
        assert config.concurrency_limit == 3
        assert config.max_retries == 3
        assert config.backoff_base == 2.0
        assert config.scenario_deadline_ms is None

    @patch.dict(os.environ, {"CI": "true"})
    def test_ci_mode_detection(self):
        """Test CI mode detection from environment variable."""
        config = Config()

        assert config.ci_mode is True
        assert config.log_format == "json"
        assert config.is_headless is True

    @patch.dict(os.environ, {"CI": "false"})
    def test_ci_mode_false(self):
        """Test CI mode when explicitly set to false."""
        config = Config()

        assert config.ci_mode is False

    @patch.dict(os.environ, {"PATHFINDER_HEADLESS": "false"})
    def test_headless_mode_override(self):
        """Test headless mode override via environment variable."""
        config = Config()

        assert config.headless_mode is False
        assert config.is_headless is False

    def test_headless_by_default(self):
        """Test browsers run headless unless turned off."""
        assert Config().is_headless is True

    @patch.dict(
        os.environ,
        {
            "PATHFINDER_LOG_LEVEL": "debug",
            "PATHFINDER_CONCURRENCY": "5",
            "PATHFINDER_MAX_RETRIES": "2",
            "PATHFINDER_SCENARIO_DEADLINE_MS": "60000",
        },
    )
    def test_environment_variable_override(self):
        """Test all environment variable overrides."""
        config = Config()

        assert config.log_level == "DEBUG"
        assert config.debug_enabled is True
        assert config.concurrency_limit == 5
        assert config.max_retries == 2
        assert config.scenario_deadline_ms == 60000

    @patch.dict(os.environ, {"PATHFINDER_CONCURRENCY": "many", "PATHFINDER_LOG_LEVEL": "warn"})
    def test_malformed_values_are_ignored(self):
        """Test unparseable numbers keep defaults and WARN maps to WARNING."""
        config = Config()

        assert config.concurrency_limit == 3
        assert config.log_level == "WARNING"

    @patch.dict(os.environ, {"PATHFINDER_SCENARIO_DEADLINE_MS": "0"})
    def test_zero_deadline_disables_it(self):
        """Test a non-positive deadline means no deadline."""
        assert Config().scenario_deadline_ms is None

    def test_from_env_class_method(self, tmp_path):
        """Test creating config from environment using class method."""
        with patch.dict(
            os.environ,
            {"CI": "true", "PATHFINDER_LOG_LEVEL": "ERROR", "PATHFINDER_HOME": str(tmp_path)},
        ):
            config = Config.from_env()

            assert config.ci_mode is True
            assert config.log_level == "ERROR"
            assert config.results_dir == tmp_path / "results"
            assert config.suites_dir == tmp_path / "suites"

    def test_validate_valid_config(self):
        """Test validation of valid configuration."""
        Config().validate()

    def test_validate_collects_violations(self):
        """Test validation reports every invalid setting."""
        config = Config()
        config.concurrency_limit = 0
        config.max_retries = 0
        config.backoff_base = -1
        config.log_format = "xml"

        with pytest.raises(ValidationError, match="Configuration validation failed") as exc_info:
            config.validate()

        assert exc_info.value.validation_type == "config"
        assert len(exc_info.value.violations) == 4

    def test_ensure_directories(self, tmp_path):
        """Test output directories are created."""
        config = Config(
            artifacts_dir=tmp_path / "a",
            results_dir=tmp_path / "r",
            reports_dir=tmp_path / "p",
            logs_dir=tmp_path / "l",
        )

        config.ensure_directories()

        assert all((tmp_path / name).is_dir() for name in ("a", "r", "p", "l"))

    def test_to_dict(self):
        """Test configuration converts to a loggable dictionary."""
        config = Config(project_root=Path("/srv/app"))

        data = config.to_dict()

        assert data["project_root"] == "/srv/app"
        assert data["headless_mode"] is True
        assert data["concurrency_limit"] == 3
