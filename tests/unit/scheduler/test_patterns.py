"""Unit tests for bulk distribution patterns."""

from datetime import datetime, timedelta, timezone

import pytest

from clipflow.exceptions import (
    InsufficientTimesError,
    InvalidPatternError,
    InvalidTimeError,
)
from clipflow.scheduler.patterns import compute_times, parse_pattern

START = datetime(2030, 1, 20, 10, 0, tzinfo=timezone.utc)


def as_utc(times: list[datetime]) -> list[datetime]:
    return [t.astimezone(timezone.utc) for t in times]


class TestIntervalPattern:
    """Tests for the interval pattern."""

    def test_spaces_uploads_by_interval(self):
        times = compute_times(
            {"type": "interval", "start_time": START.isoformat(), "interval": 2}, 3
        )

        assert as_utc(times) == [
            START,
            START + timedelta(hours=2),
            START + timedelta(hours=4),
        ]

    def test_fractional_hours(self):
        times = compute_times(
            {"type": "interval", "start_time": START, "interval": 0.5}, 2
        )
        assert times[1] - times[0] == timedelta(minutes=30)

    def test_naive_start_uses_pattern_timezone(self):
        times = compute_times(
            {
                "type": "interval",
                "start_time": "2030-01-20T09:00:00",
                "timezone": "America/New_York",
                "interval": 1,
            },
            1,
        )
        assert as_utc(times)[0] == datetime(2030, 1, 20, 14, 0, tzinfo=timezone.utc)

    def test_requires_interval(self):
        with pytest.raises(InvalidPatternError, match="interval"):
            compute_times({"type": "interval", "start_time": START}, 2)

    def test_rejects_non_positive_interval(self):
        with pytest.raises(InvalidPatternError):
            compute_times({"type": "interval", "start_time": START, "interval": 0}, 2)

    def test_requires_start_time(self):
        with pytest.raises(InvalidPatternError, match="start_time"):
            compute_times({"type": "interval", "interval": 1}, 2)


class TestDailyPattern:
    """Tests for the daily pattern."""

    def test_one_upload_per_day(self):
        times = compute_times({"type": "daily", "start_time": START}, 3)

        assert as_utc(times) == [START + timedelta(days=i) for i in range(3)]

    def test_keeps_local_hour_across_dst(self):
        """09:00 New York stays 09:00 local when clocks spring forward."""
        times = compute_times(
            {
                "type": "daily",
                "start_time": "2030-03-09T09:00:00",
                "timezone": "America/New_York",
            },
            2,
        )

        assert [t.hour for t in times] == [9, 9]
        assert as_utc(times) == [
            datetime(2030, 3, 9, 14, 0, tzinfo=timezone.utc),
            datetime(2030, 3, 10, 13, 0, tzinfo=timezone.utc),
        ]


class TestCustomPattern:
    """Tests for the custom pattern."""

    def test_uses_times_in_order(self):
        times = compute_times(
            {
                "type": "custom",
                "times": ["2030-02-01T08:00:00Z", "2030-02-03T18:30:00Z"],
            },
            2,
        )
        assert as_utc(times) == [
            datetime(2030, 2, 1, 8, 0, tzinfo=timezone.utc),
            datetime(2030, 2, 3, 18, 30, tzinfo=timezone.utc),
        ]

    def test_extra_times_are_ignored(self):
        times = compute_times(
            {"type": "custom", "times": [START, START + timedelta(hours=1)]}, 1
        )
        assert len(times) == 1

    def test_insufficient_times(self):
        with pytest.raises(InsufficientTimesError) as exc_info:
            compute_times({"type": "custom", "times": [START]}, 3)

        assert exc_info.value.needed == 3
        assert exc_info.value.provided == 1
        assert "Not enough custom times" in str(exc_info.value)

    def test_unparseable_time(self):
        with pytest.raises(InvalidTimeError):
            compute_times({"type": "custom", "times": ["soon"]}, 1)


class TestPatternValidation:
    """Tests for malformed patterns."""

    def test_unknown_type(self):
        with pytest.raises(InvalidPatternError, match="Invalid pattern type"):
            compute_times({"type": "weekly", "start_time": START}, 1)

    def test_unknown_timezone(self):
        with pytest.raises(InvalidPatternError, match="Unknown timezone"):
            compute_times(
                {"type": "daily", "start_time": START, "timezone": "Nowhere/City"}, 1
            )

    def test_unknown_field(self):
        with pytest.raises(InvalidPatternError, match="every"):
            parse_pattern({"type": "interval", "every": 2})

    def test_non_mapping(self):
        with pytest.raises(InvalidPatternError, match="expected an object"):
            parse_pattern("interval")
