"""Shared test fixtures for clipflow."""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from clipflow.adapters.content import FallbackContentGenerator
from clipflow.adapters.interfaces import (
    Clip,
    DownloadResult,
    GeneratedContent,
    StageAdapters,
    UploadMetadata,
    UploadResult,
    VideoMetadata,
)
from clipflow.db.connection import ConnectionPool, open_connection
from clipflow.db.schema import initialize_database
from clipflow.exceptions import DownloadError, UploadError

# A fixed "now" for scheduler tests
FROZEN_NOW = datetime(2030, 1, 15, 12, 0, tzinfo=timezone.utc)


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = FROZEN_NOW) -> None:
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


class ManualTimerService:
    """Timer service that records timers and fires them on demand."""

    def __init__(self, clock: ManualClock) -> None:
        self.clock = clock
        self.timers: dict[str, tuple[datetime, Callable[[], None]]] = {}
        self.arm_count = 0

    def arm(self, key: str, when: datetime, callback: Callable[[], None]) -> None:
        self.timers[key] = (when, callback)
        self.arm_count += 1

    def disarm(self, key: str) -> bool:
        return self.timers.pop(key, None) is not None

    def disarm_all(self) -> int:
        count = len(self.timers)
        self.timers.clear()
        return count

    def armed(self) -> list[str]:
        return list(self.timers)

    def fire_due(self) -> int:
        """Run every timer whose time has come, like an event loop would."""
        due = [
            (key, callback)
            for key, (when, callback) in self.timers.items()
            if when <= self.clock.now()
        ]
        for key, callback in due:
            self.timers.pop(key, None)
            callback()
        return len(due)


class RecordingSubmitter:
    """JobSubmitter that records payloads, optionally failing."""

    def __init__(self) -> None:
        self.submitted: list[dict] = []
        self.error: Exception | None = None

    def submit_upload(self, payload, scheduled_time=None) -> str:
        if self.error is not None:
            raise self.error
        self.submitted.append(dict(payload))
        return f"job-{len(self.submitted)}"


class FakeDownloader:
    def __init__(self) -> None:
        self.steps = [0, 25, 50, 100]
        self.fail_times = 0
        self.calls = 0
        self.before_return: Callable[[], None] | None = None

    async def download(self, url, *, quality, audio_quality, on_progress):
        self.calls += 1
        if self.calls <= self.fail_times:
            raise DownloadError(f"Download failed for {url}")
        for step in self.steps:
            on_progress(step, None)
        if self.before_return is not None:
            self.before_return()
        return DownloadResult(
            path=Path("/tmp/source.mp4"),
            metadata=VideoMetadata(title="Big Talk", duration=120.0, source_url=url),
        )


class FakeClipProcessor:
    def __init__(self) -> None:
        self.clip_count = 3
        self.steps = [0, 40, 80, 100]
        self.calls = 0

    async def process(self, path, *, clip_duration, start_time, max_clips, on_progress):
        self.calls += 1
        count = self.clip_count if max_clips is None else min(max_clips, self.clip_count)
        for step in self.steps:
            on_progress(step, {"clip": 0})
        return [
            Clip(
                index=i,
                path=Path(f"/tmp/clip_{i}.mp4"),
                start_time=start_time + i * clip_duration,
                duration=clip_duration,
                width=1080,
                height=1920,
            )
            for i in range(count)
        ]


class FakeContentGenerator:
    def __init__(self) -> None:
        self.fail = False

    async def generate(self, metadata, clip):
        if self.fail:
            raise RuntimeError("text model unavailable")
        return GeneratedContent(
            title=f"Clip {clip.index + 1}",
            description=f"From {metadata.title} #Shorts",
        )


class FakeUploader:
    def __init__(self) -> None:
        self.fail_times = 0
        self.calls = 0
        self.uploaded: list[tuple[Path, UploadMetadata]] = []

    async def upload(self, path, metadata, *, on_progress):
        self.calls += 1
        if self.calls <= self.fail_times:
            raise UploadError("quota exceeded")
        on_progress(50, None)
        on_progress(100, None)
        self.uploaded.append((path, metadata))
        return UploadResult(
            video_id=f"vid{self.calls}",
            url=f"https://videos.example.com/vid{self.calls}",
            title=metadata.title,
        )


def build_fake_adapters() -> StageAdapters:
    """Adapter factory usable as ``conftest:build_fake_adapters``."""
    return StageAdapters(
        downloader=FakeDownloader(),
        clip_processor=FakeClipProcessor(),
        content_generator=FallbackContentGenerator(FakeContentGenerator()),
        uploader=FakeUploader(),
    )


def make_upload_payload(title: str = "My clip", path: str = "/tmp/clip_0.mp4") -> dict:
    """Build a valid upload-video payload."""
    return {
        "video_path": path,
        "metadata": {"title": title, "description": "desc #Shorts", "tags": ["a"]},
    }


@pytest.fixture(autouse=True)
def reset_logging():
    """Remove handlers configure_logging installed during a test."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in list(root.handlers):
        if getattr(handler, "_clipflow_handler", False):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


@pytest.fixture
def db_conn():
    """Create an in-memory database with schema."""
    conn = open_connection(":memory:")
    initialize_database(conn)
    yield conn
    conn.close()


@pytest.fixture
def pool(tmp_path: Path):
    """Connection pool on an initialized file database."""
    pool = ConnectionPool(tmp_path / "clipflow.db")
    with pool.connection() as conn:
        initialize_database(conn)
    yield pool
    pool.close()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def timers(clock: ManualClock) -> ManualTimerService:
    return ManualTimerService(clock)


@pytest.fixture
def submitter() -> RecordingSubmitter:
    return RecordingSubmitter()


@pytest.fixture
def adapters() -> StageAdapters:
    """Fake stage adapters; tweak their attributes per test."""
    return build_fake_adapters()


@pytest.fixture
def upload_payload() -> dict:
    return make_upload_payload()
