"""Configuration management for clipflow.

Configuration is layered: CLI flags, then CLIPFLOW_* environment variables,
then ``config.toml`` in the data directory, then defaults.
"""

from clipflow.config.builder import (
    ConfigBuilder,
    ConfigSource,
    source_from_env,
    source_from_file,
)
from clipflow.config.env import EnvReader
from clipflow.config.loader import (
    ConfigError,
    get_config,
    get_data_dir,
    get_default_config_path,
    load_config_file,
)
from clipflow.config.models import (
    ClipflowConfig,
    JobsConfig,
    LoggingConfig,
    ProcessingConfig,
    SchedulerConfig,
)

__all__ = [
    "ClipflowConfig",
    "ConfigBuilder",
    "ConfigError",
    "ConfigSource",
    "EnvReader",
    "JobsConfig",
    "LoggingConfig",
    "ProcessingConfig",
    "SchedulerConfig",
    "get_config",
    "get_data_dir",
    "get_default_config_path",
    "load_config_file",
    "source_from_env",
    "source_from_file",
]
