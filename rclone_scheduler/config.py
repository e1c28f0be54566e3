"""
rclone-scheduler configuration management.

Handles loading and validating configuration from various sources:
- Default values
- Configuration files (YAML, TOML or JSON)
- Environment variables

The ``jobs`` list is kept raw here; it is validated into job definitions
by ``rclone_scheduler.scheduler.registry``.
"""

from __future__ import annotations

import json
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from rclone_scheduler.exceptions import ConfigError

# Configuration directory and file constants
DEFAULT_CONFIG_DIR = Path.home() / ".config" / "rclone-scheduler"
DEFAULT_CONFIG_FILE = "config.yaml"
DEFAULT_ENV_PREFIX = "RCLONE_SCHEDULER_"

DEFAULT_API_PORT = 8098


@dataclass
class ApiConfig:
    """Configuration for the HTTP control API."""

    host: str = "0.0.0.0"
    port: int = DEFAULT_API_PORT


@dataclass
class SchedulerConfig:
    """Configuration for the cron scheduler."""

    # IANA zone name; None uses the host's local zone
    timezone: Optional[str] = None
    # Seconds a late tick may still fire; later ticks are dropped
    misfire_grace_time: int = 60


@dataclass
class ExecutorConfig:
    """Configuration for running job processes."""

    rclone_binary: str = "rclone"
    rclone_config: Optional[Path] = None
    # Seconds to wait for in-flight runs on shutdown before killing them
    shutdown_timeout: float = 30.0


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[Path] = None


@dataclass
class AppConfig:
    """Main configuration container for rclone-scheduler."""

    api: ApiConfig = field(default_factory=ApiConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    executor: ExecutorConfig = field(default_factory=ExecutorConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Raw job specs, in configuration order
    jobs: list[dict[str, Any]] = field(default_factory=list)

    # File the configuration was loaded from, if any
    source: Optional[Path] = None


_SECTIONS = ("api", "scheduler", "executor", "logging")
_PATH_KEYS = {("executor", "rclone_config"), ("logging", "file")}


def load_config(
    config_path: Optional[Path] = None,
    env_prefix: str = DEFAULT_ENV_PREFIX,
) -> AppConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file
    3. Default values

    Args:
        config_path: Path to config file (default: ~/.config/rclone-scheduler/config.yaml)
        env_prefix: Prefix for environment variables

    Returns:
        Loaded configuration

    Raises:
        ConfigError: If an explicitly given file is missing, or any file
            cannot be parsed
    """
    config = AppConfig()

    explicit = config_path is not None
    if config_path is None:
        if env_path := os.environ.get(f"{env_prefix}CONFIG"):
            config_path = Path(env_path)
            explicit = True
        else:
            config_path = DEFAULT_CONFIG_DIR / DEFAULT_CONFIG_FILE

    if config_path.exists():
        config = _load_from_file(config_path, config)
    elif explicit:
        raise ConfigError(f"Config file not found: {config_path}")

    return _load_from_env(config, env_prefix)


def _read_file(path: Path) -> Any:
    """Parse a config file according to its suffix."""
    suffix = path.suffix.lower()
    try:
        if suffix == ".toml":
            with open(path, "rb") as f:
                return tomllib.load(f)
        with open(path, "r", encoding="utf-8") as f:
            if suffix == ".json":
                return json.load(f)
            return yaml.safe_load(f)
    except (OSError, tomllib.TOMLDecodeError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to load config from {path}: {e}") from e


def _load_from_file(path: Path, config: AppConfig) -> AppConfig:
    """Load configuration from a YAML, TOML or JSON file."""
    data = _read_file(path)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level")

    for section_name in _SECTIONS:
        values = data.get(section_name)
        if values is None:
            continue
        if not isinstance(values, dict):
            raise ConfigError(f"Config section '{section_name}' must be a mapping")
        section = getattr(config, section_name)
        for key, value in values.items():
            if not hasattr(section, key):
                raise ConfigError(f"Unknown configuration key: {section_name}.{key}")
            if (section_name, key) in _PATH_KEYS and value is not None:
                value = Path(value)
            setattr(section, key, value)

    jobs = data.get("jobs")
    if jobs is not None:
        if not isinstance(jobs, list):
            raise ConfigError("'jobs' must be a list")
        config.jobs = jobs

    if not isinstance(config.api.port, int) or not 0 < config.api.port < 65536:
        raise ConfigError(f"Invalid api.port: {config.api.port!r}")

    config.source = path
    return config


def _load_from_env(config: AppConfig, prefix: str) -> AppConfig:
    """Load configuration from environment variables."""

    if env_val := os.environ.get(f"{prefix}API_HOST"):
        config.api.host = env_val
    if env_val := os.environ.get(f"{prefix}API_PORT"):
        try:
            config.api.port = int(env_val)
        except ValueError:
            raise ConfigError(f"{prefix}API_PORT must be an integer, got {env_val!r}")

    if env_val := os.environ.get(f"{prefix}TIMEZONE"):
        config.scheduler.timezone = env_val

    if env_val := os.environ.get(f"{prefix}RCLONE_BINARY"):
        config.executor.rclone_binary = env_val
    if env_val := os.environ.get(f"{prefix}RCLONE_CONFIG"):
        config.executor.rclone_config = Path(env_val)

    if env_val := os.environ.get(f"{prefix}LOG_LEVEL"):
        config.logging.level = env_val.upper()

    return config
