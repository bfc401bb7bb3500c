"""Configuration loader with precedence handling.

Configuration is loaded with the following precedence (highest to lowest):
1. CLI arguments (passed directly to get_config)
2. Environment variables (CLIPFLOW_*)
3. Config file (<data dir>/config.toml)
4. Default values

Environment variables:
- CLIPFLOW_DATA_DIR: Data directory (overrides ~/.clipflow/)
- CLIPFLOW_CONFIG_PATH: Path to config file (overrides default location)
- CLIPFLOW_DATABASE_PATH: Path to database file
- CLIPFLOW_ADAPTERS: Stage adapter factory ("module:factory")
- CLIPFLOW_JOBS_MAX_ATTEMPTS, CLIPFLOW_JOBS_BACKOFF_BASE,
  CLIPFLOW_PROCESS_CONCURRENCY, CLIPFLOW_UPLOAD_CONCURRENCY,
  CLIPFLOW_JOBS_RETENTION_DAYS, CLIPFLOW_JOBS_AUTO_PURGE
- CLIPFLOW_TIMEZONE, CLIPFLOW_MISSED_POLICY
- CLIPFLOW_LOG_LEVEL, CLIPFLOW_LOG_FILE, CLIPFLOW_LOG_FORMAT
"""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any

from clipflow.config.builder import (
    ConfigBuilder,
    ConfigSource,
    source_from_env,
    source_from_file,
)
from clipflow.config.env import EnvReader
from clipflow.config.models import ClipflowConfig

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path.home() / ".clipflow"
CONFIG_FILENAME = "config.toml"


class ConfigError(Exception):
    """Raised when the config file cannot be parsed."""


def get_data_dir(env_reader: EnvReader | None = None) -> Path:
    """Get the clipflow data directory.

    Holds the database and config file. Can be overridden by the
    CLIPFLOW_DATA_DIR environment variable (supports ``~``).
    """
    reader = env_reader or EnvReader()
    return reader.get_path("CLIPFLOW_DATA_DIR") or DEFAULT_DATA_DIR


def get_default_config_path(env_reader: EnvReader | None = None) -> Path:
    """Get the config file path, honouring CLIPFLOW_CONFIG_PATH."""
    reader = env_reader or EnvReader()
    return reader.get_path("CLIPFLOW_CONFIG_PATH") or (
        get_data_dir(reader) / CONFIG_FILENAME
    )


def load_config_file(path: Path, *, strict: bool = False) -> dict[str, Any]:
    """Load configuration from a TOML file.

    Args:
        path: Path to config file.
        strict: If True, raise ConfigError on parse failures.
                If False (default), log and return an empty dict.

    Returns:
        Parsed configuration dict. Empty dict if file doesn't exist.
    """
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except FileNotFoundError:
        return {}
    except (tomllib.TOMLDecodeError, OSError) as e:
        if strict:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e
        logger.warning("Ignoring unreadable config file %s: %s", path, e)
        return {}


def get_config(
    config_path: Path | None = None,
    # CLI overrides (highest precedence)
    database_path: Path | None = None,
    adapters: str | None = None,
    # Optional dependency injection for testing
    env_reader: EnvReader | None = None,
    *,
    strict: bool = False,
) -> ClipflowConfig:
    """Get clipflow configuration with full precedence handling.

    Raises:
        ConfigError: When strict=True and the config file cannot be parsed.
        ValueError: When a configured value is invalid.
    """
    reader = env_reader or EnvReader()
    data_dir = get_data_dir(reader)

    file_config = load_config_file(
        config_path or get_default_config_path(reader), strict=strict
    )

    builder = ConfigBuilder()
    builder.apply(source_from_file(file_config), source_name="file")
    builder.apply(source_from_env(reader), source_name="env")
    builder.apply(
        ConfigSource(database_path=database_path, adapters=adapters),
        source_name="cli",
    )

    config = builder.build(data_dir)
    logger.debug(
        "Using database %s (from %s)",
        config.database_path,
        builder.origin("database_path"),
    )
    return config
