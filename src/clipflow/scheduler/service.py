"""Durable, timezone-aware scheduling of deferred uploads.

``UploadScheduler`` owns schedule records and their timers. When a timer
fires (or the periodic rescan finds an overdue record) the schedule is
moved to ``executing`` with a compare-and-set, the upload is handed to the
job orchestrator, and the outcome is recorded on the schedule. Firing
never raises; a failure is terminal for that schedule only.
"""

from __future__ import annotations

import functools
import logging
import uuid
from collections.abc import Mapping, Sequence
from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel

from clipflow.core.datetime_utils import (
    parse_iso_timestamp,
    resolve_timezone,
    to_aware,
    to_utc_iso,
)
from clipflow.db.types import Schedule, ScheduleStatus
from clipflow.exceptions import (
    InvalidTimeError,
    ScheduleNotFoundError,
    ScheduleStateError,
    ValidationError,
)
from clipflow.jobs.orchestrator import JobSubmitter
from clipflow.jobs.payloads import UploadRequest, parse_payload
from clipflow.logging.context import job_context
from clipflow.scheduler.patterns import DistributionPattern, compute_times, parse_pattern
from clipflow.scheduler.store import ScheduleStore
from clipflow.scheduler.timers import Clock, NullTimerService, SystemClock, TimerService

logger = logging.getLogger(__name__)

MISSED_POLICY_RUN = "run"
MISSED_POLICY_FAIL = "fail"
MISSED_ERROR = "missed while offline"
DEFAULT_UPCOMING_LIMIT = 10
DEFAULT_CLEANUP_DAYS = 30

_RESCHEDULABLE = (ScheduleStatus.SCHEDULED, ScheduleStatus.FAILED)
_CANCELLABLE = (ScheduleStatus.SCHEDULED,)


class UploadScheduler:
    """Schedules upload jobs for later submission.

    Args:
        store: Persistence for schedule records.
        submitter: Receives due uploads (normally the JobOrchestrator).
        clock: Source of the current time.
        timers: Arms one timer per pending schedule.
        default_timezone: Zone for naive times when the caller names none.
        missed_policy: What ``start`` does with schedules that came due
            while no process was running: "run" fires them, "fail" marks
            them failed.
    """

    def __init__(
        self,
        store: ScheduleStore,
        submitter: JobSubmitter,
        clock: Clock | None = None,
        timers: TimerService | None = None,
        *,
        default_timezone: str = "UTC",
        missed_policy: str = MISSED_POLICY_RUN,
    ) -> None:
        if missed_policy not in (MISSED_POLICY_RUN, MISSED_POLICY_FAIL):
            raise ValueError(f"Unknown missed policy: {missed_policy!r}")
        self.store = store
        self.submitter = submitter
        self.clock = clock or SystemClock()
        self.timers = timers or NullTimerService()
        self.default_timezone = default_timezone
        self.missed_policy = missed_policy

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _now_iso(self) -> str:
        return to_utc_iso(self.clock.now())

    def _zone(self, timezone: str | None) -> str:
        name = timezone or self.default_timezone
        try:
            resolve_timezone(name)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        return name

    def _future_time(self, value: datetime | str, tz_name: str) -> datetime:
        try:
            when = to_aware(value, tz_name)
        except ValueError as e:
            raise InvalidTimeError(str(e)) from e
        if when <= self.clock.now():
            raise InvalidTimeError(
                f"Scheduled time must be in the future: {to_utc_iso(when)}"
            )
        return when

    def _new_schedule(
        self, payload: dict[str, Any], when: datetime, tz_name: str
    ) -> Schedule:
        now = self._now_iso()
        return Schedule(
            id=str(uuid.uuid4()),
            upload_payload=payload,
            scheduled_time=to_utc_iso(when),
            timezone=tz_name,
            created_at=now,
            updated_at=now,
        )

    def _arm(self, schedule: Schedule) -> None:
        self.timers.arm(
            schedule.id,
            parse_iso_timestamp(schedule.scheduled_time),
            functools.partial(self.fire, schedule.id),
        )

    def _require(self, schedule_id: str, operation: str) -> Schedule:
        schedule = self.store.get(schedule_id)
        if schedule is None:
            raise ScheduleNotFoundError(schedule_id, operation)
        return schedule

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def schedule_upload(
        self,
        upload_payload: Mapping[str, Any] | BaseModel,
        scheduled_time: datetime | str,
        timezone: str | None = None,
    ) -> Schedule:
        """Schedule one upload.

        A naive ``scheduled_time`` is wall-clock time in ``timezone``;
        an aware one keeps its own offset.

        Raises:
            InvalidTimeError: If the time is unparseable or not in the future.
            ValidationError: If the payload or the timezone is invalid.
        """
        tz_name = self._zone(timezone)
        request = parse_payload(UploadRequest, upload_payload)
        when = self._future_time(scheduled_time, tz_name)

        schedule = self._new_schedule(
            request.model_dump(mode="json"), when, tz_name
        )
        self.store.put(schedule)
        self._arm(schedule)
        with job_context(schedule_id=schedule.id):
            logger.info("Scheduled upload for %s (%s)", schedule.scheduled_time, tz_name)
        return schedule

    def schedule_bulk(
        self,
        uploads: Sequence[Mapping[str, Any] | BaseModel],
        pattern: DistributionPattern | Mapping[str, Any],
    ) -> list[Schedule]:
        """Schedule a campaign of uploads spread by ``pattern``.

        All times and payloads are validated before anything is stored,
        and the records are stored in one transaction: either every
        upload is scheduled or none is.

        Raises:
            InvalidPatternError: Unknown or malformed pattern.
            InsufficientTimesError: Custom pattern with too few times.
            InvalidTimeError: A computed time is not in the future.
            ValidationError: An upload payload is invalid.
        """
        if not uploads:
            raise ValidationError("No uploads to schedule")
        pattern = parse_pattern(pattern)
        times = compute_times(pattern, len(uploads), self.default_timezone)
        tz_name = self._zone(pattern.timezone)

        schedules = []
        for index, (upload, when) in enumerate(zip(uploads, times)):
            try:
                request = parse_payload(UploadRequest, upload)
                when = self._future_time(when, tz_name)
            except ValidationError as e:
                raise type(e)(f"Upload {index}: {e}") from e
            schedules.append(
                self._new_schedule(request.model_dump(mode="json"), when, tz_name)
            )

        self.store.put_many(schedules)
        for schedule in schedules:
            self._arm(schedule)
        logger.info(
            "Scheduled %d upload(s) with %s pattern, %s to %s",
            len(schedules),
            pattern.type,
            schedules[0].scheduled_time,
            schedules[-1].scheduled_time,
        )
        return schedules

    def cancel_schedule(self, schedule_id: str) -> Schedule:
        """Cancel a pending schedule.

        Schedules in any other status (executing, completed, failed or
        already cancelled) are returned unchanged.

        Raises:
            ScheduleNotFoundError: If the schedule does not exist.
        """
        schedule = self._require(schedule_id, "cancel")
        self.timers.disarm(schedule_id)
        if schedule.status not in _CANCELLABLE:
            return schedule

        now = self._now_iso()
        if self.store.transition(
            schedule_id,
            _CANCELLABLE,
            ScheduleStatus.CANCELLED,
            now,
            cancelled_at=now,
        ):
            with job_context(schedule_id=schedule_id):
                logger.info("Cancelled schedule")
        return self._require(schedule_id, "cancel")

    def reschedule(
        self,
        schedule_id: str,
        new_time: datetime | str,
        timezone: str | None = None,
    ) -> Schedule:
        """Move a pending or failed schedule to a new time.

        The previous timer is replaced; a failed schedule becomes pending
        again with its error cleared.

        Raises:
            ScheduleNotFoundError: If the schedule does not exist.
            ScheduleStateError: If the schedule executed or was cancelled.
            InvalidTimeError: If the new time is not in the future.
        """
        schedule = self._require(schedule_id, "reschedule")
        if schedule.status not in _RESCHEDULABLE:
            raise ScheduleStateError(schedule_id, schedule.status.value, "reschedule")
        tz_name = self._zone(timezone)
        when = self._future_time(new_time, tz_name)

        self.timers.disarm(schedule_id)
        moved = self.store.transition(
            schedule_id,
            _RESCHEDULABLE,
            ScheduleStatus.SCHEDULED,
            self._now_iso(),
            scheduled_time=to_utc_iso(when),
            timezone=tz_name,
            error=None,
            failed_at=None,
        )
        updated = self._require(schedule_id, "reschedule")
        if not moved:
            raise ScheduleStateError(schedule_id, updated.status.value, "reschedule")

        self._arm(updated)
        with job_context(schedule_id=schedule_id):
            logger.info("Rescheduled to %s (%s)", updated.scheduled_time, tz_name)
        return updated

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_schedule(self, schedule_id: str) -> Schedule:
        """Return the schedule record.

        Raises:
            ScheduleNotFoundError: If the schedule does not exist.
        """
        return self._require(schedule_id, "get")

    def list_schedules(
        self, status: ScheduleStatus | str | None = None
    ) -> list[Schedule]:
        """All schedules, optionally of one status, soonest first."""
        if isinstance(status, str):
            try:
                status = ScheduleStatus(status)
            except ValueError as e:
                raise ValidationError(str(e)) from e
        return self.store.list(status=status)

    def get_upcoming(self, limit: int = DEFAULT_UPCOMING_LIMIT) -> list[Schedule]:
        """The ``limit`` soonest pending schedules still in the future."""
        return self.store.list(
            status=ScheduleStatus.SCHEDULED, after=self._now_iso(), limit=limit
        )

    def cleanup(self, max_age_days: int = DEFAULT_CLEANUP_DAYS) -> int:
        """Delete finished schedules created more than ``max_age_days`` ago.

        Pending schedules are never deleted.

        Returns:
            Number of schedules deleted.
        """
        cutoff = to_utc_iso(self.clock.now() - timedelta(days=max_age_days))
        deleted = self.store.delete_older_than(cutoff)
        if deleted:
            logger.info(
                "Removed %d schedule(s) older than %d day(s)", deleted, max_age_days
            )
        return deleted

    # ------------------------------------------------------------------
    # Firing
    # ------------------------------------------------------------------

    def fire(self, schedule_id: str) -> Schedule | None:
        """Submit a pending schedule's upload if it is due.

        Only the caller that wins the ``scheduled -> executing`` transition
        submits; everyone else gets None. A record that is still pending but
        not yet due (it was rescheduled elsewhere) gets its timer re-armed
        for the stored time instead. Never raises.

        Returns:
            The schedule after execution, or None if this call did not run it.
        """
        with job_context(schedule_id=schedule_id):
            try:
                return self._execute(schedule_id)
            except Exception:
                logger.exception("Error executing schedule")
                return None

    def _execute(self, schedule_id: str) -> Schedule | None:
        self.timers.disarm(schedule_id)
        now_iso = self._now_iso()
        if not self.store.transition(
            schedule_id,
            (ScheduleStatus.SCHEDULED,),
            ScheduleStatus.EXECUTING,
            now_iso,
            due_by=now_iso,
        ):
            current = self.store.get(schedule_id)
            if current is not None and current.status == ScheduleStatus.SCHEDULED:
                # Moved to a later time, possibly by another process
                self._arm(current)
                logger.info(
                    "Schedule not due until %s, timer re-armed",
                    current.scheduled_time,
                )
            else:
                logger.debug("Schedule no longer pending, not executing")
            return None

        schedule = self.store.get(schedule_id)
        if schedule is None:
            return None

        try:
            job_id = self.submitter.submit_upload(schedule.upload_payload)
        except Exception as e:
            error = str(e) or type(e).__name__
            now = self._now_iso()
            self.store.transition(
                schedule_id,
                (ScheduleStatus.EXECUTING,),
                ScheduleStatus.FAILED,
                now,
                error=error,
                failed_at=now,
            )
            logger.error("Scheduled upload failed: %s", error)
        else:
            now = self._now_iso()
            self.store.transition(
                schedule_id,
                (ScheduleStatus.EXECUTING,),
                ScheduleStatus.COMPLETED,
                now,
                job_id=job_id,
                completed_at=now,
            )
            logger.info("Scheduled upload submitted as job %s", job_id)
        return self.store.get(schedule_id)

    def fire_due(self) -> int:
        """Fire every pending schedule whose time has passed.

        Returns:
            Number of schedules this call executed.
        """
        due = self.store.list(status=ScheduleStatus.SCHEDULED, before=self._now_iso())
        fired = 0
        for schedule in due:
            if self.fire(schedule.id) is not None:
                fired += 1
        return fired

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> dict[str, int]:
        """Recover pending schedules after a restart.

        Future schedules get their timers re-armed. Schedules that came due
        while no process was running are handled per ``missed_policy``.

        Returns:
            Counts of re-armed and missed schedules.
        """
        now = self.clock.now()
        armed = 0
        missed: list[Schedule] = []
        for schedule in self.store.list(status=ScheduleStatus.SCHEDULED):
            if parse_iso_timestamp(schedule.scheduled_time) > now:
                self._arm(schedule)
                armed += 1
            else:
                missed.append(schedule)

        for schedule in missed:
            if self.missed_policy == MISSED_POLICY_RUN:
                self.fire(schedule.id)
                continue
            now_iso = self._now_iso()
            if self.store.transition(
                schedule.id,
                (ScheduleStatus.SCHEDULED,),
                ScheduleStatus.FAILED,
                now_iso,
                error=MISSED_ERROR,
                failed_at=now_iso,
            ):
                with job_context(schedule_id=schedule.id):
                    logger.warning(
                        "Schedule for %s was %s", schedule.scheduled_time, MISSED_ERROR
                    )

        logger.info(
            "Scheduler started: %d timer(s) armed, %d missed schedule(s) (%s)",
            armed,
            len(missed),
            self.missed_policy,
        )
        return {"armed": armed, "missed": len(missed)}

    def shutdown(self) -> None:
        """Disarm every timer; pending schedules stay stored."""
        count = self.timers.disarm_all()
        logger.info("Scheduler stopped, %d timer(s) disarmed", count)
