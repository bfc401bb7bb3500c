"""Unit tests for stage progress tracking and the broadcaster."""

import asyncio

import pytest

from clipflow.jobs.orchestrator import JobOrchestrator
from clipflow.jobs.progress import (
    DOWNLOAD_WINDOW,
    PROCESSING_WINDOW,
    DatabaseProgressSink,
    ProgressBroadcaster,
    ProgressEvent,
    StageProgress,
    StageWindow,
)


class TestStageWindow:
    """Tests for StageWindow.map."""

    def test_download_window_bounds(self):
        assert DOWNLOAD_WINDOW.map(0) == 10
        assert DOWNLOAD_WINDOW.map(50) == 20
        assert DOWNLOAD_WINDOW.map(100) == 30

    def test_processing_window_bounds(self):
        assert PROCESSING_WINDOW.map(0) == 30
        assert PROCESSING_WINDOW.map(100) == 70

    def test_clamps_out_of_range_input(self):
        """Adapters reporting below 0 or above 100 stay inside the window."""
        window = StageWindow("x", 10, 20)
        assert window.map(-5) == 10
        assert window.map(150) == 30

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_input_maps_to_window_base(self, value):
        """A NaN or infinite percent from an adapter counts as 0."""
        assert DOWNLOAD_WINDOW.map(value) == 10


class TestStageProgress:
    """Tests for StageProgress."""

    def test_events_are_non_decreasing(self):
        """A lower report is raised to the last emitted percent."""
        events: list[ProgressEvent] = []
        progress = StageProgress("job-1", [events.append])

        progress.report(40, "processing")
        progress.report(20, "uploading")

        assert [e.percent for e in events] == [40, 40]
        assert events[1].stage == "uploading"

    def test_duplicate_reports_are_dropped(self):
        events: list[ProgressEvent] = []
        progress = StageProgress("job-1", [events.append])

        progress.report(10, "downloading")
        progress.report(10, "downloading")

        assert len(events) == 1

    def test_callback_maps_through_window(self):
        events: list[ProgressEvent] = []
        progress = StageProgress("job-1", [events.append])

        on_progress = progress.callback(DOWNLOAD_WINDOW)
        on_progress(0, None)
        on_progress(100, {"bytes": 10})

        assert [e.percent for e in events] == [10, 30]
        assert events[-1].detail == {"bytes": 10}
        assert all(e.stage == "downloading" for e in events)

    def test_nan_from_adapter_does_not_raise(self):
        events: list[ProgressEvent] = []
        progress = StageProgress("job-1", [events.append])

        on_progress = progress.callback(PROCESSING_WINDOW)
        on_progress(50, None)
        on_progress(float("nan"), None)

        assert [e.percent for e in events] == [50]

    def test_failing_sink_does_not_stop_others(self):
        """One broken sink never hides events from the rest."""
        events: list[ProgressEvent] = []

        def broken(event):
            raise RuntimeError("sink down")

        progress = StageProgress("job-1", [broken, events.append])
        progress.report(50, "processing")

        assert len(events) == 1


class TestProgressBroadcaster:
    """Tests for ProgressBroadcaster."""

    def test_listener_receives_matching_events(self):
        broadcaster = ProgressBroadcaster()
        seen: list[ProgressEvent] = []
        broadcaster.add_listener(seen.append, job_id="a")

        broadcaster.publish(ProgressEvent("a", "downloading", 10))
        broadcaster.publish(ProgressEvent("b", "downloading", 10))

        assert [e.job_id for e in seen] == ["a"]

    def test_listening_unregisters_after_block(self):
        broadcaster = ProgressBroadcaster()
        seen: list[ProgressEvent] = []

        with broadcaster.listening(seen.append):
            assert broadcaster.subscriber_count == 1
            broadcaster.publish(ProgressEvent("a", "processing", 30))
        broadcaster.publish(ProgressEvent("a", "processing", 40))

        assert len(seen) == 1
        assert broadcaster.subscriber_count == 0

    def test_failing_listener_is_isolated(self):
        broadcaster = ProgressBroadcaster()
        seen: list[ProgressEvent] = []

        def broken(event):
            raise ValueError("bad listener")

        broadcaster.add_listener(broken)
        broadcaster.add_listener(seen.append)
        broadcaster.publish(ProgressEvent("a", "uploading", 50))

        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_subscription_yields_events_until_closed(self):
        broadcaster = ProgressBroadcaster()
        subscription = broadcaster.subscribe("a")

        broadcaster.publish(ProgressEvent("a", "downloading", 10))
        broadcaster.publish(ProgressEvent("b", "downloading", 10))
        broadcaster.publish(ProgressEvent("a", "processing", 30))
        subscription.close()

        received = [event async for event in subscription]

        assert [e.percent for e in received] == [10, 30]
        assert broadcaster.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_slow_subscriber_drops_events(self):
        """A full queue drops new events instead of blocking the publisher."""
        broadcaster = ProgressBroadcaster()
        with broadcaster.subscribe(maxsize=2) as subscription:
            for percent in (10, 20, 30, 40):
                broadcaster.publish(ProgressEvent("a", "processing", percent))

            assert subscription.dropped == 2
            first = await asyncio.wait_for(subscription.__anext__(), timeout=1)
            assert first.percent == 10

    @pytest.mark.asyncio
    async def test_publish_from_worker_thread(self):
        """Events published off the loop still reach the subscriber."""
        broadcaster = ProgressBroadcaster()
        with broadcaster.subscribe() as subscription:
            await asyncio.to_thread(
                broadcaster.publish, ProgressEvent("a", "uploading", 90)
            )
            event = await asyncio.wait_for(subscription.__anext__(), timeout=1)

        assert event.percent == 90


@pytest.fixture
def active_job(pool, upload_payload):
    job_id = JobOrchestrator(pool).submit_upload(upload_payload)
    with pool.transaction() as conn:
        conn.execute("UPDATE jobs SET state = 'active' WHERE id = ?", (job_id,))
    return job_id


def stored_progress(pool, job_id):
    with pool.connection() as conn:
        return conn.execute(
            "SELECT progress, progress_stage FROM jobs WHERE id = ?", (job_id,)
        ).fetchone()


class TestDatabaseProgressSink:
    """Tests for DatabaseProgressSink."""

    @pytest.mark.asyncio
    async def test_loop_reports_write_in_background(self, pool, active_job):
        """Reports on the loop return at once; flush writes the latest."""
        sink = DatabaseProgressSink(pool)

        sink(ProgressEvent(active_job, "downloading", 12))
        sink(ProgressEvent(active_job, "downloading", 20))
        assert tuple(stored_progress(pool, active_job)) == (0, None)

        await sink.flush()

        assert tuple(stored_progress(pool, active_job)) == (20, "downloading")

    @pytest.mark.asyncio
    async def test_flush_without_reports(self, pool):
        await DatabaseProgressSink(pool).flush()

    def test_off_loop_report_writes_directly(self, pool, active_job):
        sink = DatabaseProgressSink(pool)

        sink(ProgressEvent(active_job, "uploading", 85))

        assert tuple(stored_progress(pool, active_job)) == (85, "uploading")

    @pytest.mark.asyncio
    async def test_write_after_job_left_active_is_ignored(self, pool, active_job):
        sink = DatabaseProgressSink(pool)
        with pool.transaction() as conn:
            conn.execute(
                "UPDATE jobs SET state = 'completed', progress = 100 WHERE id = ?",
                (active_job,),
            )

        sink(ProgressEvent(active_job, "uploading", 90))
        await sink.flush()

        assert stored_progress(pool, active_job)[0] == 100
