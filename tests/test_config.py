"""
Tests for the configuration module.

This test module validates:
- Default values
- Pydantic validation of endpoints, intervals, ports and log levels
- Loading from YAML files, environment variables and CLI arguments
- Precedence (defaults < YAML < env vars < CLI args)
"""

from __future__ import annotations

from pathlib import Path
from typing import Any
from unittest import mock

import pytest
import yaml
from pydantic import ValidationError

from eva_dashboard.config import (
    DEFAULT_ENDPOINTS,
    AppConfig,
    LoggingConfig,
    SamplingConfig,
    ServerConfig,
    StorageConfig,
    _deep_merge,
    _load_env_config,
    _parse_cli_args,
    _parse_env_value,
    load_config,
)

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """Write a sample YAML configuration."""
    data: dict[str, Any] = {
        "server": {"port": 3333},
        "storage": {"data_dir": "/var/lib/eva-dashboard"},
        "sampling": {
            "endpoints": ["http://node1.test:8546", "https://node2.test"],
            "interval_seconds": 60,
            "rounds_per_day": 1440,
        },
        "logging": {"level": "debug"},
    }
    path = tmp_path / "config.yml"
    path.write_text(yaml.safe_dump(data))
    return path


@pytest.fixture
def clean_env() -> Any:
    """Run with no EVA_DASHBOARD_* variables set."""
    with mock.patch.dict("os.environ", {}, clear=True):
        yield


# =============================================================================
# Tests for Default Configuration
# =============================================================================


class TestDefaultConfiguration:
    """Tests for default configuration values."""

    def test_app_config_defaults(self) -> None:
        """Test that AppConfig has the daemon's defaults."""
        config = AppConfig()

        assert config.server.host == "0.0.0.0"
        assert config.server.port == 8547
        assert config.server.listen == "0.0.0.0:8547"
        assert config.storage.db_path == Path("./dashboard.db")
        assert config.sampling.endpoints == DEFAULT_ENDPOINTS
        assert config.sampling.method == "eth_lastSubmitCount"
        assert config.sampling.interval_seconds == 600
        assert config.sampling.rounds_per_day == 144
        assert config.sampling.concurrent is False
        assert config.logging.level == "info"

    def test_default_endpoints_not_shared(self) -> None:
        """Test that each config gets its own endpoint list."""
        a = SamplingConfig()
        a.endpoints.append("http://extra.test")

        assert SamplingConfig().endpoints == DEFAULT_ENDPOINTS

    def test_db_path_joins_data_dir(self) -> None:
        """Test db_path is built from data_dir and db_name."""
        storage = StorageConfig(data_dir="/data", db_name="x.db")

        assert storage.db_path == Path("/data/x.db")


# =============================================================================
# Tests for Validation
# =============================================================================


class TestValidation:
    """Tests for configuration validation."""

    def test_endpoints_must_not_be_empty(self) -> None:
        """Test that an empty endpoint list is rejected."""
        with pytest.raises(ValidationError, match="At least one endpoint"):
            SamplingConfig(endpoints=[])

    @pytest.mark.parametrize(
        "endpoint",
        ["ws://seed4.evanesco.org:7778", "seed1.evanesco.org:8546", "http://"],
    )
    def test_endpoint_scheme_validated(self, endpoint: str) -> None:
        """Test that non-http endpoints are rejected."""
        with pytest.raises(ValidationError, match="Invalid endpoint"):
            SamplingConfig(endpoints=[endpoint])

    def test_endpoints_from_comma_string(self) -> None:
        """Test that a comma-separated string is split."""
        config = SamplingConfig(endpoints="http://a.test:1, http://b.test:2")

        assert config.endpoints == ["http://a.test:1", "http://b.test:2"]

    @pytest.mark.parametrize("interval", [0, -1, 86401])
    def test_interval_bounds(self, interval: int) -> None:
        """Test interval_seconds bounds."""
        with pytest.raises(ValidationError):
            SamplingConfig(interval_seconds=interval)

    def test_rounds_per_day_positive(self) -> None:
        """Test that rounds_per_day must be at least 1."""
        with pytest.raises(ValidationError):
            SamplingConfig(rounds_per_day=0)

    @pytest.mark.parametrize("port", [0, 70000])
    def test_port_bounds(self, port: int) -> None:
        """Test port bounds."""
        with pytest.raises(ValidationError):
            ServerConfig(port=port)

    def test_log_level_normalized(self) -> None:
        """Test that 'WARN' is normalized to 'warning'."""
        assert LoggingConfig(level="WARN").level == "warning"

    def test_invalid_log_level(self) -> None:
        """Test that an unknown log level is rejected."""
        with pytest.raises(ValidationError, match="Invalid log level"):
            LoggingConfig(level="verbose")


# =============================================================================
# Tests for Helpers
# =============================================================================


class TestHelpers:
    """Tests for loading helpers."""

    def test_deep_merge(self) -> None:
        """Test nested dictionaries are merged, not replaced."""
        base = {"server": {"host": "a", "port": 1}, "x": 1}
        override = {"server": {"port": 2}}

        assert _deep_merge(base, override) == {"server": {"host": "a", "port": 2}, "x": 1}
        assert base["server"]["port"] == 1

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("3333", 3333),
            ("1", 1),
            ("0.5", 0.5),
            ("true", True),
            ("off", False),
            ("eth_lastSubmitCount", "eth_lastSubmitCount"),
            ("http://a.test:1,http://b.test:2", ["http://a.test:1", "http://b.test:2"]),
        ],
    )
    def test_parse_env_value(self, raw: str, expected: Any) -> None:
        """Test environment value parsing."""
        assert _parse_env_value(raw) == expected

    def test_load_env_config_nesting(self) -> None:
        """Test that __ nests keys and other variables are ignored."""
        env = {
            "EVA_DASHBOARD_SERVER__PORT": "3333",
            "EVA_DASHBOARD_SAMPLING__CONCURRENT": "yes",
            "OTHER_VAR": "x",
        }
        with mock.patch.dict("os.environ", env, clear=True):
            result = _load_env_config()

        assert result == {"server": {"port": 3333}, "sampling": {"concurrent": True}}

    def test_parse_cli_args(self) -> None:
        """Test CLI flags map onto config sections."""
        result = _parse_cli_args(["--data", "/srv/eva", "--port", "3333", "--debug"])

        assert result == {
            "storage": {"data_dir": "/srv/eva"},
            "server": {"port": 3333},
            "logging": {"level": "debug"},
        }

    def test_parse_cli_args_empty(self) -> None:
        """Test that no flags produce no overrides."""
        assert _parse_cli_args([]) == {}


# =============================================================================
# Tests for load_config
# =============================================================================


class TestLoadConfig:
    """Tests for layered configuration loading."""

    def test_defaults_only(self, clean_env: None) -> None:
        """Test loading without any source."""
        with mock.patch("eva_dashboard.config.DEFAULT_CONFIG_PATH", Path("/nonexistent.yml")):
            config = load_config(cli_args=[])

        assert config == AppConfig()

    def test_yaml_file(self, clean_env: None, config_file: Path) -> None:
        """Test loading from a YAML file."""
        config = load_config(config_path=config_file, cli_args=[])

        assert config.server.port == 3333
        assert config.storage.db_path == Path("/var/lib/eva-dashboard/dashboard.db")
        assert config.sampling.endpoints == ["http://node1.test:8546", "https://node2.test"]
        assert config.sampling.rounds_per_day == 1440
        assert config.logging.level == "debug"

    def test_config_path_from_cli(self, clean_env: None, config_file: Path) -> None:
        """Test that --config selects the YAML file."""
        config = load_config(cli_args=["--config", str(config_file)])

        assert config.server.port == 3333

    def test_missing_config_file(self, clean_env: None, tmp_path: Path) -> None:
        """Test that a missing explicit file raises."""
        with pytest.raises(FileNotFoundError):
            load_config(config_path=tmp_path / "missing.yml", cli_args=[])

    def test_env_overrides_yaml(self, config_file: Path) -> None:
        """Test that environment variables override YAML."""
        env = {"EVA_DASHBOARD_SERVER__PORT": "4444"}
        with mock.patch.dict("os.environ", env, clear=True):
            config = load_config(config_path=config_file, cli_args=[])

        assert config.server.port == 4444

    def test_cli_overrides_env(self, config_file: Path) -> None:
        """Test that CLI arguments override environment variables."""
        env = {"EVA_DASHBOARD_SERVER__PORT": "4444"}
        with mock.patch.dict("os.environ", env, clear=True):
            config = load_config(config_path=config_file, cli_args=["--port", "5555"])

        assert config.server.port == 5555

    def test_single_endpoint_from_env(self) -> None:
        """Test that one endpoint in the environment becomes a list."""
        env = {"EVA_DASHBOARD_SAMPLING__ENDPOINTS": "http://only.test:8546"}
        with mock.patch.dict("os.environ", env, clear=True):
            config = load_config(config_path=None, cli_args=[])

        assert config.sampling.endpoints == ["http://only.test:8546"]
