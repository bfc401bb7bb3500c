"""Distribution patterns for bulk upload campaigns.

A pattern spreads N uploads over time:

    interval  start + index * interval hours
    daily     start + index days, keeping the local wall-clock time
    custom    times[index], one explicit time per upload
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from clipflow.core.datetime_utils import resolve_timezone, to_aware
from clipflow.exceptions import (
    InsufficientTimesError,
    InvalidPatternError,
    InvalidTimeError,
)
from clipflow.jobs.payloads import format_pydantic_errors

PATTERN_TYPES = ("interval", "daily", "custom")


class DistributionPattern(BaseModel):
    """How the times of a bulk campaign are computed."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    type: str
    start_time: datetime | str | None = None
    timezone: str | None = None
    interval: float | None = Field(default=None, gt=0)  # hours
    times: list[datetime | str] = Field(default_factory=list)


def parse_pattern(data: Mapping[str, Any] | DistributionPattern) -> DistributionPattern:
    """Validate a pattern mapping.

    Raises:
        InvalidPatternError: If the mapping is malformed.
    """
    if isinstance(data, DistributionPattern):
        return data
    if not isinstance(data, Mapping):
        raise InvalidPatternError(
            f"Invalid pattern: expected an object, got {type(data).__name__}"
        )
    try:
        return DistributionPattern.model_validate(dict(data))
    except PydanticValidationError as e:
        raise InvalidPatternError(
            f"Invalid pattern: {format_pydantic_errors(e)}"
        ) from e


def _parse_time(value: datetime | str, tz_name: str) -> datetime:
    try:
        return to_aware(value, tz_name)
    except ValueError as e:
        raise InvalidTimeError(str(e)) from e


def _require_start(pattern: DistributionPattern, tz_name: str) -> datetime:
    if pattern.start_time is None:
        raise InvalidPatternError(f"Pattern '{pattern.type}' requires start_time")
    return _parse_time(pattern.start_time, tz_name)


def compute_times(
    pattern: DistributionPattern | Mapping[str, Any],
    count: int,
    default_timezone: str = "UTC",
) -> list[datetime]:
    """Compute one aware target time per upload, in upload order.

    Args:
        pattern: The distribution pattern.
        count: Number of uploads.
        default_timezone: Zone for naive times when the pattern names none.

    Raises:
        InvalidPatternError: Unknown type, unknown timezone or missing
            parameters.
        InsufficientTimesError: A custom pattern has fewer times than uploads.
        InvalidTimeError: A time cannot be parsed.
    """
    pattern = parse_pattern(pattern)
    tz_name = pattern.timezone or default_timezone

    if pattern.type not in PATTERN_TYPES:
        raise InvalidPatternError(
            f"Invalid pattern type '{pattern.type}'. "
            f"Must be one of: {', '.join(PATTERN_TYPES)}"
        )
    try:
        tz = resolve_timezone(tz_name)
    except ValueError as e:
        raise InvalidPatternError(str(e)) from e

    if pattern.type == "interval":
        if pattern.interval is None:
            raise InvalidPatternError("Pattern 'interval' requires interval (hours)")
        start = _require_start(pattern, tz_name)
        step = timedelta(hours=pattern.interval)
        return [start + index * step for index in range(count)]

    if pattern.type == "daily":
        # Add calendar days to the local wall time so DST shifts keep the hour
        local = _require_start(pattern, tz_name).astimezone(tz).replace(tzinfo=None)
        return [
            (local + timedelta(days=index)).replace(tzinfo=tz)
            for index in range(count)
        ]

    if len(pattern.times) < count:
        raise InsufficientTimesError(count, len(pattern.times))
    return [_parse_time(value, tz_name) for value in pattern.times[:count]]
