"""
Configuration management for the EVA dashboard.

Configuration is loaded from multiple sources with layered precedence:
1. Built-in defaults (Pydantic model defaults)
2. YAML config file (/etc/eva-dashboard/config.yml or --config path)
3. Environment variables (EVA_DASHBOARD_* prefix, __ for nesting)
4. Command-line arguments (highest precedence)
"""

from __future__ import annotations

import argparse
import os
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, Field, field_validator

DEFAULT_CONFIG_PATH = Path("/etc/eva-dashboard/config.yml")
DEFAULT_ENV_PREFIX = "EVA_DASHBOARD_"

DEFAULT_ENDPOINTS = [
    "http://seed1.evanesco.org:8546",
    "http://seed2.evanesco.org:8546",
    "http://seed3.evanesco.org:8546",
    "http://seed5.evanesco.org:8546",
]

DEFAULT_COUNTER_METHOD = "eth_lastSubmitCount"

# 24h / 10min
DEFAULT_INTERVAL_SECONDS = 600
DEFAULT_ROUNDS_PER_DAY = 144

SUPPORTED_SCHEMES = ("http", "https")

# =============================================================================
# Server Configuration
# =============================================================================


class ServerConfig(BaseModel):
    """HTTP read surface settings.

    Attributes:
        host: Interface the HTTP server binds to.
        port: TCP port of the HTTP server.
    """

    host: str = Field(
        default="0.0.0.0",
        description="Interface the HTTP server binds to",
    )
    port: int = Field(
        default=8547,
        description="TCP port of the HTTP server",
        ge=1,
        le=65535,
    )

    @property
    def listen(self) -> str:
        """Return the ``host:port`` listen address."""
        return f"{self.host}:{self.port}"


# =============================================================================
# Storage Configuration
# =============================================================================


class StorageConfig(BaseModel):
    """Daily average store settings.

    Attributes:
        data_dir: Directory holding the database file.
        db_name: Database file name inside data_dir.
    """

    data_dir: str = Field(
        default=".",
        description="Directory holding the dashboard database",
    )
    db_name: str = Field(
        default="dashboard.db",
        description="Database file name",
    )

    @property
    def db_path(self) -> Path:
        """Return the full path of the database file."""
        return Path(self.data_dir) / self.db_name


# =============================================================================
# Sampling Configuration
# =============================================================================


class SamplingConfig(BaseModel):
    """Endpoint polling and day cycle settings.

    Attributes:
        endpoints: JSON-RPC endpoint URLs queried every round.
        method: JSON-RPC method returning the counter.
        interval_seconds: Wait between two rounds.
        rounds_per_day: Rounds in one day cycle.
        call_timeout_seconds: Timeout of a single endpoint call.
        concurrent: Query the endpoints of a round concurrently.
    """

    endpoints: list[str] = Field(
        default_factory=lambda: DEFAULT_ENDPOINTS.copy(),
        description="JSON-RPC endpoint URLs queried every round",
    )
    method: str = Field(
        default=DEFAULT_COUNTER_METHOD,
        description="JSON-RPC method returning the counter",
    )
    interval_seconds: float = Field(
        default=DEFAULT_INTERVAL_SECONDS,
        description="Seconds to wait between two rounds",
        gt=0,
        le=86400,
    )
    rounds_per_day: int = Field(
        default=DEFAULT_ROUNDS_PER_DAY,
        description="Number of rounds in one day cycle",
        ge=1,
    )
    call_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout of a single endpoint call in seconds",
        gt=0,
    )
    concurrent: bool = Field(
        default=False,
        description="Query the endpoints of a round concurrently",
    )

    @field_validator("endpoints", mode="before")
    @classmethod
    def split_endpoints(cls, v: Any) -> Any:
        """Accept a comma-separated string as well as a list."""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("endpoints")
    @classmethod
    def validate_endpoints(cls, v: list[str]) -> list[str]:
        """Require at least one http(s) endpoint."""
        if not v:
            raise ValueError("At least one endpoint must be configured")
        for endpoint in v:
            parsed = urlparse(endpoint)
            if parsed.scheme not in SUPPORTED_SCHEMES or not parsed.netloc:
                raise ValueError(
                    f"Invalid endpoint: {endpoint}. "
                    f"Must be an absolute URL with scheme: {', '.join(SUPPORTED_SCHEMES)}"
                )
        return v


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level.
        log_to_stdout: Whether to log to stdout.
        json_format: Emit JSON lines instead of plain text.
    """

    level: str = Field(
        default="info",
        description="Log level: debug, info, warn, error",
    )
    log_to_stdout: bool = Field(
        default=True,
        description="Whether to log to stdout",
    )
    json_format: bool = Field(
        default=True,
        description="Emit JSON lines instead of plain text",
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate and normalize log level."""
        valid_levels = {"debug", "info", "warn", "warning", "error", "critical"}
        v_lower = v.lower()
        if v_lower not in valid_levels:
            raise ValueError(
                f"Invalid log level: {v}. Must be one of: {', '.join(sorted(valid_levels))}"
            )
        if v_lower == "warn":
            return "warning"
        return v_lower


# =============================================================================
# Main Application Configuration
# =============================================================================


class AppConfig(BaseModel):
    """
    Main application configuration model.

    Attributes:
        server: HTTP read surface settings.
        storage: Daily average store settings.
        sampling: Endpoint polling settings.
        logging: Logging configuration.
    """

    server: ServerConfig = Field(
        default_factory=ServerConfig,
        description="HTTP read surface settings",
    )
    storage: StorageConfig = Field(
        default_factory=StorageConfig,
        description="Daily average store settings",
    )
    sampling: SamplingConfig = Field(
        default_factory=SamplingConfig,
        description="Endpoint polling settings",
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration",
    )


# =============================================================================
# Configuration Loading Functions
# =============================================================================


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two dictionaries.

    Args:
        base: The base dictionary.
        override: The dictionary with values to override.

    Returns:
        A new dictionary with merged values.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _load_yaml_config(config_path: Path) -> dict[str, Any]:
    """
    Load configuration from a YAML file.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        yaml.YAMLError: If the YAML is invalid.
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path) as f:
        return yaml.safe_load(f) or {}


def _parse_env_value(value: str) -> Any:
    """
    Parse an environment variable value to a Python type.

    Integers win over booleans so ``PORT=1`` stays a number; ``true``,
    ``yes``, ``on`` and their negations become booleans. Values with commas
    become lists.
    """
    try:
        return int(value)
    except ValueError:
        pass

    try:
        return float(value)
    except ValueError:
        pass

    if value.lower() in ("true", "yes", "on"):
        return True
    if value.lower() in ("false", "no", "off"):
        return False

    if "," in value:
        return [_parse_env_value(item.strip()) for item in value.split(",")]

    return value


def _load_env_config(prefix: str = DEFAULT_ENV_PREFIX) -> dict[str, Any]:
    """
    Load configuration from environment variables.

    Example: ``EVA_DASHBOARD_SERVER__PORT=3333`` sets ``server.port``.
    """
    result: dict[str, Any] = {}

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        parts = key[len(prefix) :].lower().split("__")

        current = result
        for part in parts[:-1]:
            if part not in current:
                current[part] = {}
            current = current[part]

        current[parts[-1]] = _parse_env_value(value)

    return result


def _parse_cli_args(args: list[str] | None = None) -> dict[str, Any]:
    """
    Parse command-line arguments.

    Args:
        args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Dictionary with parsed arguments in config layout.
    """
    parser = argparse.ArgumentParser(
        prog="eva-dashboard",
        description="EVA submit count dashboard",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--config",
        "-c",
        type=str,
        help="Path to configuration file",
    )

    parser.add_argument(
        "--data",
        type=str,
        help="Directory holding the dashboard database",
    )

    parser.add_argument(
        "--port",
        type=int,
        help="HTTP port of the read surface",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["debug", "info", "warning", "error"],
        help="Override log level",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    parsed = parser.parse_args(args)

    result: dict[str, Any] = {}

    if parsed.config:
        result["_config_path"] = parsed.config

    if parsed.data:
        result["storage"] = {"data_dir": parsed.data}

    if parsed.port is not None:
        result["server"] = {"port": parsed.port}

    if parsed.log_level:
        result["logging"] = {"level": parsed.log_level}

    if parsed.debug:
        result.setdefault("logging", {})["level"] = "debug"

    return result


def load_config(
    config_path: Path | str | None = None,
    env_prefix: str = DEFAULT_ENV_PREFIX,
    cli_args: list[str] | None = None,
) -> AppConfig:
    """
    Load configuration from all sources with layered precedence.

    Args:
        config_path: Path to YAML configuration file. If None, uses the
            --config argument or the default path when it exists.
        env_prefix: Prefix for environment variables.
        cli_args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Fully configured AppConfig instance.

    Raises:
        FileNotFoundError: If specified config file doesn't exist.
        ValidationError: If configuration is invalid.

    Example:
        >>> config = load_config(cli_args=["--port", "3333"])
        >>> config.server.port
        3333
    """
    config_dict: dict[str, Any] = {}

    cli_config = _parse_cli_args(cli_args)

    if config_path is None:
        if "_config_path" in cli_config:
            config_path = Path(cli_config.pop("_config_path"))
        elif DEFAULT_CONFIG_PATH.exists():
            config_path = DEFAULT_CONFIG_PATH
    else:
        cli_config.pop("_config_path", None)
        if isinstance(config_path, str):
            config_path = Path(config_path)

    if config_path is not None:
        config_dict = _deep_merge(config_dict, _load_yaml_config(config_path))

    config_dict = _deep_merge(config_dict, _load_env_config(env_prefix))
    config_dict = _deep_merge(config_dict, cli_config)

    return AppConfig(**config_dict)
