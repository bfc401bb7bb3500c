"""Stage adapter protocols and the data they exchange.

The pipeline never talks to a download tool, a transcoder, a text model or a
publishing platform directly. Each external capability sits behind one of
the protocols below; concrete implementations are supplied by the host
application through ``clipflow.adapters.loader``.

Adapters report progress by calling ``on_progress(percent, detail)`` with a
stage-local percent in [0, 100]. Failures are signalled by raising a
``clipflow.exceptions.StageError`` subclass (any other exception is treated
the same way by the pipeline).
"""

from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

ProgressCallback = Callable[[float, "dict[str, Any] | None"], None]


def _noop_progress(percent: float, detail: dict[str, Any] | None = None) -> None:
    """Default progress callback that discards updates."""


@dataclass(frozen=True)
class VideoMetadata:
    """Descriptive metadata of a downloaded source video."""

    title: str
    duration: float = 0.0
    source_url: str = ""
    uploader: str | None = None
    description: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class DownloadResult:
    """Output of the download stage."""

    path: Path
    metadata: VideoMetadata


@dataclass(frozen=True)
class Clip:
    """One vertical clip cut from the source video."""

    index: int
    path: Path
    start_time: float
    duration: float
    width: int | None = None
    height: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["path"] = str(self.path)
        return data


@dataclass(frozen=True)
class GeneratedContent:
    """Title and description produced for one clip."""

    title: str
    description: str
    tags: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "tags": list(self.tags),
        }


@dataclass(frozen=True)
class UploadMetadata:
    """Metadata sent to the uploader with a clip."""

    title: str
    description: str = ""
    tags: tuple[str, ...] = ()
    privacy: str = "public"
    category_id: str | None = None
    # Platform-side release time; the video is private until then
    publish_at: datetime | None = None


@dataclass(frozen=True)
class UploadResult:
    """Outcome of a successful upload."""

    video_id: str
    url: str
    title: str = ""
    status: str = "uploaded"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@runtime_checkable
class Downloader(Protocol):
    """Fetches a source video to local storage."""

    async def download(
        self,
        url: str,
        *,
        quality: str,
        audio_quality: str,
        on_progress: ProgressCallback = _noop_progress,
    ) -> DownloadResult:
        """Download ``url`` and return the local file with its metadata.

        Raises:
            DownloadError: If the source cannot be fetched.
        """
        ...


@runtime_checkable
class ClipProcessor(Protocol):
    """Splits a video into short clips and resizes them to vertical format."""

    async def process(
        self,
        path: Path,
        *,
        clip_duration: int,
        start_time: float,
        max_clips: int | None,
        on_progress: ProgressCallback = _noop_progress,
    ) -> list[Clip]:
        """Cut ``path`` into clips of ``clip_duration`` seconds.

        Raises:
            ProcessingError: If splitting or resizing fails.
        """
        ...


@runtime_checkable
class ContentGenerator(Protocol):
    """Produces a title and description for a clip."""

    async def generate(self, metadata: VideoMetadata, clip: Clip) -> GeneratedContent:
        """Generate publishable text for ``clip`` of the video ``metadata``."""
        ...


@runtime_checkable
class Uploader(Protocol):
    """Publishes a clip to the remote platform."""

    async def upload(
        self,
        path: Path,
        metadata: UploadMetadata,
        *,
        on_progress: ProgressCallback = _noop_progress,
    ) -> UploadResult:
        """Upload ``path`` with ``metadata``.

        Raises:
            UploadError: If publishing fails.
        """
        ...


@dataclass
class StageAdapters:
    """The set of adapters a worker runs jobs with."""

    downloader: Downloader
    clip_processor: ClipProcessor
    content_generator: ContentGenerator
    uploader: Uploader
