"""Stage adapters: the narrow interfaces to external collaborators."""

from clipflow.adapters.content import FallbackContentGenerator
from clipflow.adapters.interfaces import (
    Clip,
    ClipProcessor,
    ContentGenerator,
    Downloader,
    DownloadResult,
    GeneratedContent,
    ProgressCallback,
    StageAdapters,
    UploadMetadata,
    Uploader,
    UploadResult,
    VideoMetadata,
)
from clipflow.adapters.loader import load_adapters

__all__ = [
    "Clip",
    "ClipProcessor",
    "ContentGenerator",
    "DownloadResult",
    "Downloader",
    "FallbackContentGenerator",
    "GeneratedContent",
    "ProgressCallback",
    "StageAdapters",
    "UploadMetadata",
    "UploadResult",
    "Uploader",
    "VideoMetadata",
    "load_adapters",
]
