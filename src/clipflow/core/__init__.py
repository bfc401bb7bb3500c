"""Core utilities package.

Pure helpers with no dependencies on the rest of clipflow.
"""

from clipflow.core.datetime_utils import (
    calculate_duration_seconds,
    parse_iso_timestamp,
    resolve_timezone,
    to_aware,
    to_utc_iso,
    utc_now,
)
from clipflow.core.periodic import PeriodicTask

__all__ = [
    "PeriodicTask",
    "calculate_duration_seconds",
    "parse_iso_timestamp",
    "resolve_timezone",
    "to_aware",
    "to_utc_iso",
    "utc_now",
]
