"""Configuration models for clipflow.

Each section of ``config.toml`` maps to one dataclass. Values are validated
in ``__post_init__``; errors name the offending field.
"""

from dataclasses import dataclass, field
from pathlib import Path

from clipflow.core.datetime_utils import resolve_timezone

VALID_LOG_LEVELS = ("debug", "info", "warning", "error")
VALID_LOG_FORMATS = ("text", "json")
VALID_MISSED_POLICIES = ("run", "fail")
VALID_QUALITIES = ("best", "1080p", "720p", "480p")
VALID_AUDIO_QUALITIES = ("best", "good", "medium")


def _require_positive(name: str, value: float) -> None:
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")


@dataclass
class JobsConfig:
    """Job queue, retry and worker settings."""

    max_attempts: int = 3
    backoff_base_seconds: float = 5.0
    process_concurrency: int = 2
    upload_concurrency: int = 3
    poll_interval_seconds: float = 1.0
    heartbeat_interval_seconds: float = 30.0
    stale_timeout_seconds: int = 300
    retention_days: int = 1
    auto_purge: bool = True

    def __post_init__(self) -> None:
        _require_positive("jobs.max_attempts", self.max_attempts)
        if self.backoff_base_seconds < 0:
            raise ValueError(
                "jobs.backoff_base_seconds must be >= 0, "
                f"got {self.backoff_base_seconds}"
            )
        _require_positive("jobs.process_concurrency", self.process_concurrency)
        _require_positive("jobs.upload_concurrency", self.upload_concurrency)
        _require_positive("jobs.poll_interval_seconds", self.poll_interval_seconds)
        _require_positive(
            "jobs.heartbeat_interval_seconds", self.heartbeat_interval_seconds
        )
        _require_positive("jobs.stale_timeout_seconds", self.stale_timeout_seconds)
        if self.stale_timeout_seconds <= self.heartbeat_interval_seconds:
            raise ValueError(
                "jobs.stale_timeout_seconds must be greater than "
                "jobs.heartbeat_interval_seconds"
            )
        if self.retention_days < 0:
            raise ValueError(
                f"jobs.retention_days must be >= 0, got {self.retention_days}"
            )


@dataclass
class ProcessingConfig:
    """Defaults applied to processing requests that omit them."""

    default_clip_duration: int = 15
    max_clip_duration: int = 60
    default_quality: str = "best"
    default_audio_quality: str = "best"

    def __post_init__(self) -> None:
        _require_positive("processing.max_clip_duration", self.max_clip_duration)
        if not 1 <= self.default_clip_duration <= self.max_clip_duration:
            raise ValueError(
                "processing.default_clip_duration must be between 1 and "
                f"{self.max_clip_duration}, got {self.default_clip_duration}"
            )
        if self.default_quality not in VALID_QUALITIES:
            raise ValueError(
                f"processing.default_quality must be one of {VALID_QUALITIES}, "
                f"got {self.default_quality!r}"
            )
        if self.default_audio_quality not in VALID_AUDIO_QUALITIES:
            raise ValueError(
                "processing.default_audio_quality must be one of "
                f"{VALID_AUDIO_QUALITIES}, got {self.default_audio_quality!r}"
            )


@dataclass
class SchedulerConfig:
    """Upload scheduler settings."""

    default_timezone: str = "UTC"
    rescan_interval_seconds: float = 60.0
    cleanup_days: int = 30
    missed_policy: str = "run"

    def __post_init__(self) -> None:
        try:
            resolve_timezone(self.default_timezone)
        except ValueError as e:
            raise ValueError(f"scheduler.default_timezone: {e}") from e
        _require_positive(
            "scheduler.rescan_interval_seconds", self.rescan_interval_seconds
        )
        _require_positive("scheduler.cleanup_days", self.cleanup_days)
        if self.missed_policy not in VALID_MISSED_POLICIES:
            raise ValueError(
                f"scheduler.missed_policy must be one of {VALID_MISSED_POLICIES}, "
                f"got {self.missed_policy!r}"
            )


@dataclass
class LoggingConfig:
    """Logging output settings."""

    level: str = "info"
    file: Path | None = None
    format: str = "text"
    include_stderr: bool = True
    max_bytes: int = 10_485_760
    backup_count: int = 5

    def __post_init__(self) -> None:
        self.level = self.level.casefold()
        if self.level not in VALID_LOG_LEVELS:
            raise ValueError(
                f"logging.level must be one of {VALID_LOG_LEVELS}, got {self.level!r}"
            )
        if self.format not in VALID_LOG_FORMATS:
            raise ValueError(
                f"logging.format must be one of {VALID_LOG_FORMATS}, "
                f"got {self.format!r}"
            )
        _require_positive("logging.max_bytes", self.max_bytes)
        if self.backup_count < 0:
            raise ValueError(
                f"logging.backup_count must be >= 0, got {self.backup_count}"
            )


@dataclass
class ClipflowConfig:
    """Complete clipflow configuration."""

    data_dir: Path
    database_path: Path
    adapters: str | None = None
    jobs: JobsConfig = field(default_factory=JobsConfig)
    processing: ProcessingConfig = field(default_factory=ProcessingConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
