"""Configuration builder with explicit layering.

This module provides ConfigBuilder for building ClipflowConfig by composing
multiple configuration sources with explicit precedence handling.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from clipflow.config.env import EnvReader
from clipflow.config.models import (
    ClipflowConfig,
    JobsConfig,
    LoggingConfig,
    ProcessingConfig,
    SchedulerConfig,
)

logger = logging.getLogger(__name__)

DATABASE_FILENAME = "clipflow.db"


@dataclass
class ConfigSource:
    """Configuration values from a single source.

    None values indicate "not specified in this source" and will not
    override values from lower-precedence sources.
    """

    database_path: Path | None = None
    adapters: str | None = None

    # Jobs config
    jobs_max_attempts: int | None = None
    jobs_backoff_base_seconds: float | None = None
    jobs_process_concurrency: int | None = None
    jobs_upload_concurrency: int | None = None
    jobs_poll_interval_seconds: float | None = None
    jobs_heartbeat_interval_seconds: float | None = None
    jobs_stale_timeout_seconds: int | None = None
    jobs_retention_days: int | None = None
    jobs_auto_purge: bool | None = None

    # Processing config
    processing_default_clip_duration: int | None = None
    processing_max_clip_duration: int | None = None
    processing_default_quality: str | None = None
    processing_default_audio_quality: str | None = None

    # Scheduler config
    scheduler_default_timezone: str | None = None
    scheduler_rescan_interval_seconds: float | None = None
    scheduler_cleanup_days: int | None = None
    scheduler_missed_policy: str | None = None

    # Logging config
    logging_level: str | None = None
    logging_file: Path | None = None
    logging_format: str | None = None
    logging_include_stderr: bool | None = None
    logging_max_bytes: int | None = None
    logging_backup_count: int | None = None


class ConfigBuilder:
    """Builds ClipflowConfig by layering ConfigSources with precedence.

    Later sources override earlier ones (for non-None values).

    Example:
        builder = ConfigBuilder()
        builder.apply(source_from_file(file_config), source_name="file")
        builder.apply(source_from_env(reader), source_name="env")
        builder.apply(cli_source, source_name="cli")
        config = builder.build(data_dir)
    """

    def __init__(self) -> None:
        self._values: dict[str, Any] = {}
        self._origins: dict[str, str] = {}

    def apply(self, source: ConfigSource, source_name: str = "unknown") -> None:
        """Apply configuration source, overriding existing values.

        Args:
            source: Configuration source to apply.
            source_name: Label recorded for debugging where a value came from.
        """
        for field_obj in fields(source):
            value = getattr(source, field_obj.name)
            if value is not None:
                self._values[field_obj.name] = value
                self._origins[field_obj.name] = source_name

    def origin(self, key: str) -> str:
        """Return which source supplied ``key`` ("default" if none did)."""
        return self._origins.get(key, "default")

    def _get(self, key: str, default: Any) -> Any:
        return self._values.get(key, default)

    def build(self, data_dir: Path) -> ClipflowConfig:
        """Build the final ClipflowConfig with defaults for unset values.

        Raises:
            ValueError: If any value fails validation.
        """
        jobs = JobsConfig(
            max_attempts=self._get("jobs_max_attempts", 3),
            backoff_base_seconds=self._get("jobs_backoff_base_seconds", 5.0),
            process_concurrency=self._get("jobs_process_concurrency", 2),
            upload_concurrency=self._get("jobs_upload_concurrency", 3),
            poll_interval_seconds=self._get("jobs_poll_interval_seconds", 1.0),
            heartbeat_interval_seconds=self._get(
                "jobs_heartbeat_interval_seconds", 30.0
            ),
            stale_timeout_seconds=self._get("jobs_stale_timeout_seconds", 300),
            retention_days=self._get("jobs_retention_days", 1),
            auto_purge=self._get("jobs_auto_purge", True),
        )

        processing = ProcessingConfig(
            default_clip_duration=self._get("processing_default_clip_duration", 15),
            max_clip_duration=self._get("processing_max_clip_duration", 60),
            default_quality=self._get("processing_default_quality", "best"),
            default_audio_quality=self._get(
                "processing_default_audio_quality", "best"
            ),
        )

        scheduler = SchedulerConfig(
            default_timezone=self._get("scheduler_default_timezone", "UTC"),
            rescan_interval_seconds=self._get(
                "scheduler_rescan_interval_seconds", 60.0
            ),
            cleanup_days=self._get("scheduler_cleanup_days", 30),
            missed_policy=self._get("scheduler_missed_policy", "run"),
        )

        logging_config = LoggingConfig(
            level=self._get("logging_level", "info"),
            file=self._get("logging_file", None),
            format=self._get("logging_format", "text"),
            include_stderr=self._get("logging_include_stderr", True),
            max_bytes=self._get("logging_max_bytes", 10_485_760),
            backup_count=self._get("logging_backup_count", 5),
        )

        return ClipflowConfig(
            data_dir=data_dir,
            database_path=self._get("database_path", data_dir / DATABASE_FILENAME),
            adapters=self._get("adapters", None),
            jobs=jobs,
            processing=processing,
            scheduler=scheduler,
            logging=logging_config,
        )


def source_from_file(file_config: dict[str, Any]) -> ConfigSource:
    """Create ConfigSource from parsed TOML config file."""
    jobs = file_config.get("jobs", {})
    processing = file_config.get("processing", {})
    scheduler = file_config.get("scheduler", {})
    logging_conf = file_config.get("logging", {})

    log_file_str = logging_conf.get("file")
    log_file = Path(log_file_str).expanduser() if log_file_str else None

    return ConfigSource(
        database_path=(
            Path(file_config["database_path"]).expanduser()
            if file_config.get("database_path")
            else None
        ),
        adapters=file_config.get("adapters"),
        # Jobs
        jobs_max_attempts=jobs.get("max_attempts"),
        jobs_backoff_base_seconds=jobs.get("backoff_base_seconds"),
        jobs_process_concurrency=jobs.get("process_concurrency"),
        jobs_upload_concurrency=jobs.get("upload_concurrency"),
        jobs_poll_interval_seconds=jobs.get("poll_interval_seconds"),
        jobs_heartbeat_interval_seconds=jobs.get("heartbeat_interval_seconds"),
        jobs_stale_timeout_seconds=jobs.get("stale_timeout_seconds"),
        jobs_retention_days=jobs.get("retention_days"),
        jobs_auto_purge=jobs.get("auto_purge"),
        # Processing
        processing_default_clip_duration=processing.get("default_clip_duration"),
        processing_max_clip_duration=processing.get("max_clip_duration"),
        processing_default_quality=processing.get("default_quality"),
        processing_default_audio_quality=processing.get("default_audio_quality"),
        # Scheduler
        scheduler_default_timezone=scheduler.get("default_timezone"),
        scheduler_rescan_interval_seconds=scheduler.get("rescan_interval_seconds"),
        scheduler_cleanup_days=scheduler.get("cleanup_days"),
        scheduler_missed_policy=scheduler.get("missed_policy"),
        # Logging
        logging_level=logging_conf.get("level"),
        logging_file=log_file,
        logging_format=logging_conf.get("format"),
        logging_include_stderr=logging_conf.get("include_stderr"),
        logging_max_bytes=logging_conf.get("max_bytes"),
        logging_backup_count=logging_conf.get("backup_count"),
    )


def source_from_env(reader: EnvReader) -> ConfigSource:
    """Create ConfigSource from CLIPFLOW_* environment variables."""
    return ConfigSource(
        database_path=reader.get_path("CLIPFLOW_DATABASE_PATH"),
        adapters=reader.get_str("CLIPFLOW_ADAPTERS"),
        # Jobs
        jobs_max_attempts=reader.get_int("CLIPFLOW_JOBS_MAX_ATTEMPTS"),
        jobs_backoff_base_seconds=reader.get_float("CLIPFLOW_JOBS_BACKOFF_BASE"),
        jobs_process_concurrency=reader.get_int("CLIPFLOW_PROCESS_CONCURRENCY"),
        jobs_upload_concurrency=reader.get_int("CLIPFLOW_UPLOAD_CONCURRENCY"),
        jobs_retention_days=reader.get_int("CLIPFLOW_JOBS_RETENTION_DAYS"),
        jobs_auto_purge=reader.get_bool("CLIPFLOW_JOBS_AUTO_PURGE"),
        # Scheduler
        scheduler_default_timezone=reader.get_str("CLIPFLOW_TIMEZONE"),
        scheduler_missed_policy=reader.get_str("CLIPFLOW_MISSED_POLICY"),
        # Logging
        logging_level=reader.get_str("CLIPFLOW_LOG_LEVEL"),
        logging_file=reader.get_path("CLIPFLOW_LOG_FILE"),
        logging_format=reader.get_str("CLIPFLOW_LOG_FORMAT"),
    )
