"""Unit tests for UploadScheduler."""

from datetime import timedelta

import pytest

from conftest import FROZEN_NOW, ManualTimerService, make_upload_payload

from clipflow.db.types import ScheduleStatus
from clipflow.exceptions import (
    InsufficientTimesError,
    InvalidPatternError,
    InvalidTimeError,
    ScheduleNotFoundError,
    ScheduleStateError,
    ValidationError,
)
from clipflow.scheduler import SqliteScheduleStore, UploadScheduler
from clipflow.scheduler.service import MISSED_ERROR

IN_ONE_HOUR = FROZEN_NOW + timedelta(hours=1)


@pytest.fixture
def store(pool):
    return SqliteScheduleStore(pool)


@pytest.fixture
def scheduler(store, submitter, clock, timers):
    return UploadScheduler(store, submitter, clock, timers)


class TestScheduleUpload:
    """Tests for scheduling a single upload."""

    def test_stores_and_arms(self, scheduler, timers, upload_payload):
        schedule = scheduler.schedule_upload(upload_payload, IN_ONE_HOUR)

        assert schedule.status == ScheduleStatus.SCHEDULED
        assert schedule.scheduled_time == "2030-01-15T13:00:00.000000+00:00"
        assert schedule.timezone == "UTC"
        assert timers.armed() == [schedule.id]
        assert scheduler.get_schedule(schedule.id).upload_payload["video_path"] == (
            "/tmp/clip_0.mp4"
        )

    def test_naive_time_read_in_timezone(self, scheduler, upload_payload):
        schedule = scheduler.schedule_upload(
            upload_payload, "2030-01-15T09:00:00", timezone="America/New_York"
        )

        assert schedule.scheduled_time == "2030-01-15T14:00:00.000000+00:00"
        assert schedule.timezone == "America/New_York"

    def test_past_time_is_rejected(self, scheduler, store, timers, upload_payload):
        """A time in the past raises and leaves nothing behind."""
        with pytest.raises(InvalidTimeError, match="must be in the future"):
            scheduler.schedule_upload(upload_payload, FROZEN_NOW - timedelta(hours=1))

        assert store.list() == []
        assert timers.armed() == []

    def test_now_is_not_the_future(self, scheduler, upload_payload):
        with pytest.raises(InvalidTimeError):
            scheduler.schedule_upload(upload_payload, FROZEN_NOW)

    def test_unparseable_time(self, scheduler, upload_payload):
        with pytest.raises(InvalidTimeError):
            scheduler.schedule_upload(upload_payload, "tomorrow-ish")

    def test_unknown_timezone(self, scheduler, upload_payload):
        with pytest.raises(ValidationError, match="Unknown timezone"):
            scheduler.schedule_upload(upload_payload, IN_ONE_HOUR, "Nowhere/City")

    def test_invalid_payload(self, scheduler, store):
        with pytest.raises(ValidationError, match="metadata"):
            scheduler.schedule_upload({"video_path": "/tmp/a.mp4"}, IN_ONE_HOUR)
        assert store.list() == []


class TestScheduleBulk:
    """Tests for bulk campaigns."""

    def test_interval_campaign(self, scheduler, timers):
        uploads = [make_upload_payload(f"Clip {i}") for i in range(3)]

        schedules = scheduler.schedule_bulk(
            uploads,
            {"type": "interval", "start_time": IN_ONE_HOUR, "interval": 2},
        )

        assert [s.scheduled_time for s in schedules] == [
            "2030-01-15T13:00:00.000000+00:00",
            "2030-01-15T15:00:00.000000+00:00",
            "2030-01-15T17:00:00.000000+00:00",
        ]
        assert [s.upload_payload["metadata"]["title"] for s in schedules] == [
            "Clip 0",
            "Clip 1",
            "Clip 2",
        ]
        assert len(timers.armed()) == 3

    def test_insufficient_custom_times_stores_nothing(self, scheduler, store, timers):
        uploads = [make_upload_payload(f"Clip {i}") for i in range(3)]

        with pytest.raises(InsufficientTimesError):
            scheduler.schedule_bulk(
                uploads, {"type": "custom", "times": [IN_ONE_HOUR.isoformat()]}
            )

        assert store.list() == []
        assert timers.armed() == []

    def test_one_past_time_rejects_whole_campaign(self, scheduler, store):
        uploads = [make_upload_payload(f"Clip {i}") for i in range(2)]
        past = FROZEN_NOW - timedelta(minutes=5)

        with pytest.raises(InvalidTimeError, match="Upload 1"):
            scheduler.schedule_bulk(
                uploads,
                {"type": "custom", "times": [IN_ONE_HOUR, past]},
            )

        assert store.list() == []

    def test_invalid_upload_is_named_by_index(self, scheduler, store):
        uploads = [make_upload_payload(), {"video_path": "/tmp/x.mp4"}]

        with pytest.raises(ValidationError, match="Upload 1"):
            scheduler.schedule_bulk(
                uploads, {"type": "daily", "start_time": IN_ONE_HOUR}
            )

        assert store.list() == []

    def test_unknown_pattern_type(self, scheduler):
        with pytest.raises(InvalidPatternError):
            scheduler.schedule_bulk([make_upload_payload()], {"type": "hourly"})

    def test_empty_campaign(self, scheduler):
        with pytest.raises(ValidationError, match="No uploads"):
            scheduler.schedule_bulk([], {"type": "daily", "start_time": IN_ONE_HOUR})


class TestFiring:
    """Tests for timers firing schedules."""

    def test_due_timer_submits_upload(self, scheduler, submitter, clock, timers):
        schedule = scheduler.schedule_upload(make_upload_payload("Now"), IN_ONE_HOUR)

        clock.advance(hours=1)
        assert timers.fire_due() == 1

        fired = scheduler.get_schedule(schedule.id)
        assert fired.status == ScheduleStatus.COMPLETED
        assert fired.job_id == "job-1"
        assert fired.completed_at is not None
        assert submitter.submitted[0]["metadata"]["title"] == "Now"

    def test_timer_not_due_does_nothing(self, scheduler, submitter, clock, timers):
        scheduler.schedule_upload(make_upload_payload(), IN_ONE_HOUR)

        clock.advance(minutes=59)
        assert timers.fire_due() == 0
        assert submitter.submitted == []

    def test_fires_only_once(self, scheduler, submitter, clock):
        """A second fire loses the compare-and-set."""
        schedule = scheduler.schedule_upload(make_upload_payload(), IN_ONE_HOUR)
        clock.advance(hours=1)

        assert scheduler.fire(schedule.id) is not None
        assert scheduler.fire(schedule.id) is None
        assert len(submitter.submitted) == 1

    def test_submission_failure_marks_failed(self, scheduler, submitter, clock):
        submitter.error = ValidationError("video_path: file not found")
        schedule = scheduler.schedule_upload(make_upload_payload(), IN_ONE_HOUR)
        clock.advance(hours=1)

        result = scheduler.fire(schedule.id)

        assert result.status == ScheduleStatus.FAILED
        assert result.error == "video_path: file not found"
        assert result.failed_at is not None

    def test_fire_unknown_schedule_returns_none(self, scheduler):
        assert scheduler.fire("missing") is None

    def test_fire_due_catches_unarmed_schedules(self, store, submitter, clock, timers):
        """Schedules created by another process are fired by the rescan."""
        creator = UploadScheduler(store, submitter, clock)
        creator.schedule_upload(make_upload_payload(), IN_ONE_HOUR)
        scheduler = UploadScheduler(store, submitter, clock, timers)

        assert scheduler.fire_due() == 0
        clock.advance(hours=2)
        assert scheduler.fire_due() == 1
        assert len(submitter.submitted) == 1


class TestCancel:
    """Tests for cancel_schedule."""

    def test_cancel_prevents_submission(self, scheduler, submitter, clock, timers):
        schedule = scheduler.schedule_upload(make_upload_payload(), IN_ONE_HOUR)

        cancelled = scheduler.cancel_schedule(schedule.id)
        clock.advance(hours=2)
        timers.fire_due()
        scheduler.fire_due()

        assert cancelled.status == ScheduleStatus.CANCELLED
        assert cancelled.cancelled_at is not None
        assert submitter.submitted == []
        assert timers.armed() == []

    def test_cancel_failed_is_unchanged(self, scheduler, submitter, clock):
        """Only a pending schedule can be cancelled."""
        submitter.error = RuntimeError("queue down")
        schedule = scheduler.schedule_upload(make_upload_payload(), IN_ONE_HOUR)
        clock.advance(hours=1)
        scheduler.fire(schedule.id)

        result = scheduler.cancel_schedule(schedule.id)

        assert result.status == ScheduleStatus.FAILED
        assert result.error == "queue down"
        assert result.cancelled_at is None

    def test_cancel_completed_is_unchanged(self, scheduler, clock):
        schedule = scheduler.schedule_upload(make_upload_payload(), IN_ONE_HOUR)
        clock.advance(hours=1)
        scheduler.fire(schedule.id)

        assert scheduler.cancel_schedule(schedule.id).status == ScheduleStatus.COMPLETED

    def test_cancel_unknown(self, scheduler):
        with pytest.raises(ScheduleNotFoundError, match="cancel"):
            scheduler.cancel_schedule("missing")


class TestReschedule:
    """Tests for reschedule."""

    def test_moves_time_and_timer(self, scheduler, submitter, clock, timers):
        schedule = scheduler.schedule_upload(make_upload_payload(), IN_ONE_HOUR)

        moved = scheduler.reschedule(schedule.id, FROZEN_NOW + timedelta(hours=3))
        clock.advance(hours=2)
        timers.fire_due()

        assert moved.scheduled_time == "2030-01-15T15:00:00.000000+00:00"
        assert submitter.submitted == []
        clock.advance(hours=1)
        assert timers.fire_due() == 1
        assert len(submitter.submitted) == 1

    def test_move_from_another_process_rearms_stale_timer(
        self, store, scheduler, submitter, clock, timers
    ):
        """A timer armed for the old time neither submits nor is lost."""
        schedule = scheduler.schedule_upload(make_upload_payload(), IN_ONE_HOUR)
        # Same database, no timers of its own, as the CLI runs it
        other = UploadScheduler(store, submitter, clock)
        later = FROZEN_NOW + timedelta(hours=5)
        other.reschedule(schedule.id, later)

        clock.advance(hours=1, minutes=1)
        timers.fire_due()

        assert submitter.submitted == []
        assert scheduler.get_schedule(schedule.id).status == ScheduleStatus.SCHEDULED
        assert timers.armed() == [schedule.id]
        assert timers.timers[schedule.id][0] == later

        clock.advance(hours=4)
        assert timers.fire_due() == 1
        assert len(submitter.submitted) == 1
        assert scheduler.get_schedule(schedule.id).status == ScheduleStatus.COMPLETED

    def test_early_fire_does_not_submit(self, scheduler, submitter, timers):
        schedule = scheduler.schedule_upload(make_upload_payload(), IN_ONE_HOUR)

        assert scheduler.fire(schedule.id) is None

        assert submitter.submitted == []
        assert timers.armed() == [schedule.id]

    def test_failed_schedule_can_be_retried(self, scheduler, submitter, clock):
        submitter.error = RuntimeError("queue down")
        schedule = scheduler.schedule_upload(make_upload_payload(), IN_ONE_HOUR)
        clock.advance(hours=1)
        scheduler.fire(schedule.id)

        submitter.error = None
        moved = scheduler.reschedule(schedule.id, clock.now() + timedelta(minutes=5))

        assert moved.status == ScheduleStatus.SCHEDULED
        assert moved.error is None
        assert moved.failed_at is None

    def test_rejects_completed(self, scheduler, clock):
        schedule = scheduler.schedule_upload(make_upload_payload(), IN_ONE_HOUR)
        clock.advance(hours=1)
        scheduler.fire(schedule.id)

        with pytest.raises(ScheduleStateError, match="completed"):
            scheduler.reschedule(schedule.id, clock.now() + timedelta(hours=1))

    def test_rejects_past_time(self, scheduler):
        schedule = scheduler.schedule_upload(make_upload_payload(), IN_ONE_HOUR)

        with pytest.raises(InvalidTimeError):
            scheduler.reschedule(schedule.id, FROZEN_NOW - timedelta(hours=1))
        assert scheduler.get_schedule(schedule.id).scheduled_time == (
            "2030-01-15T13:00:00.000000+00:00"
        )

    def test_unknown(self, scheduler):
        with pytest.raises(ScheduleNotFoundError):
            scheduler.reschedule("missing", IN_ONE_HOUR)


class TestQueries:
    """Tests for listing, upcoming and cleanup."""

    def test_upcoming_is_soonest_first_and_limited(self, scheduler):
        for hours in (5, 1, 3):
            scheduler.schedule_upload(
                make_upload_payload(f"In {hours}h"), FROZEN_NOW + timedelta(hours=hours)
            )

        upcoming = scheduler.get_upcoming(limit=2)

        assert [s.upload_payload["metadata"]["title"] for s in upcoming] == [
            "In 1h",
            "In 3h",
        ]

    def test_upcoming_excludes_cancelled(self, scheduler):
        schedule = scheduler.schedule_upload(make_upload_payload(), IN_ONE_HOUR)
        scheduler.cancel_schedule(schedule.id)

        assert scheduler.get_upcoming() == []

    def test_list_by_status_string(self, scheduler):
        keep = scheduler.schedule_upload(make_upload_payload(), IN_ONE_HOUR)
        drop = scheduler.schedule_upload(make_upload_payload(), IN_ONE_HOUR)
        scheduler.cancel_schedule(drop.id)

        assert [s.id for s in scheduler.list_schedules("scheduled")] == [keep.id]
        assert len(scheduler.list_schedules()) == 2

    def test_list_rejects_unknown_status(self, scheduler):
        with pytest.raises(ValidationError):
            scheduler.list_schedules("paused")

    def test_cleanup_removes_old_finished_only(self, scheduler, clock):
        pending = scheduler.schedule_upload(make_upload_payload(), IN_ONE_HOUR)
        done = scheduler.schedule_upload(
            make_upload_payload(), FROZEN_NOW + timedelta(minutes=5)
        )
        scheduler.cancel_schedule(done.id)

        clock.advance(days=31)

        assert scheduler.cleanup(30) == 1
        assert scheduler.get_schedule(pending.id).status == ScheduleStatus.SCHEDULED
        with pytest.raises(ScheduleNotFoundError):
            scheduler.get_schedule(done.id)


class TestRestart:
    """Tests for start() after a restart."""

    def test_rearms_future_schedules(self, store, submitter, clock, timers):
        first = UploadScheduler(store, submitter, clock, ManualTimerService(clock))
        schedule = first.schedule_upload(make_upload_payload(), IN_ONE_HOUR)
        first.shutdown()

        second = UploadScheduler(store, submitter, clock, timers)
        counts = second.start()

        assert counts == {"armed": 1, "missed": 0}
        assert timers.armed() == [schedule.id]
        clock.advance(hours=1)
        timers.fire_due()
        assert len(submitter.submitted) == 1

    def test_missed_schedules_run_by_default(self, store, submitter, clock, timers):
        UploadScheduler(store, submitter, clock).schedule_upload(
            make_upload_payload(), IN_ONE_HOUR
        )
        clock.advance(hours=3)

        counts = UploadScheduler(store, submitter, clock, timers).start()

        assert counts == {"armed": 0, "missed": 1}
        assert len(submitter.submitted) == 1

    def test_missed_schedules_fail_with_fail_policy(
        self, store, submitter, clock, timers
    ):
        schedule = UploadScheduler(store, submitter, clock).schedule_upload(
            make_upload_payload(), IN_ONE_HOUR
        )
        clock.advance(hours=3)

        UploadScheduler(
            store, submitter, clock, timers, missed_policy="fail"
        ).start()

        missed = store.get(schedule.id)
        assert missed.status == ScheduleStatus.FAILED
        assert missed.error == MISSED_ERROR
        assert submitter.submitted == []

    def test_unknown_missed_policy(self, store, submitter):
        with pytest.raises(ValueError, match="missed policy"):
            UploadScheduler(store, submitter, missed_policy="skip")

    def test_shutdown_disarms_but_keeps_records(self, scheduler, store, timers):
        scheduler.schedule_upload(make_upload_payload(), IN_ONE_HOUR)

        scheduler.shutdown()

        assert timers.armed() == []
        assert store.list()[0].status == ScheduleStatus.SCHEDULED
