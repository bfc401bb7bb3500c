"""Stage sequencing for job types.

``JobPipeline.run`` executes one attempt of one job and returns its result
dict. Stages run strictly in order; between stages the pipeline checks that
the job record still exists and stops with ``JobCancelledError`` if it was
removed. An in-flight adapter call is never interrupted.

process-video stages and their share of overall progress:

    downloading         10 -> 30
    processing          30 -> 70
    generating-content  70
    completed           100 (reported by the worker)

upload-video has a single uploading stage mapped onto 0 -> 100.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from clipflow.adapters.content import with_fallback
from clipflow.adapters.interfaces import StageAdapters, UploadMetadata
from clipflow.db.queries import get_job
from clipflow.db.types import Job, JobType
from clipflow.exceptions import JobCancelledError
from clipflow.jobs.payloads import ProcessRequest, UploadRequest, parse_payload
from clipflow.jobs.progress import (
    CONTENT_GENERATION_PERCENT,
    DOWNLOAD_WINDOW,
    PROCESSING_WINDOW,
    STAGE_GENERATING,
    UPLOAD_WINDOW,
    StageProgress,
)

if TYPE_CHECKING:
    from clipflow.db.connection import ConnectionPool

logger = logging.getLogger(__name__)


class JobPipeline:
    """Runs the stages of a job against the configured adapters.

    The content generator is always used through FallbackContentGenerator,
    so the content stage never fails a job.
    """

    def __init__(self, adapters: StageAdapters, pool: ConnectionPool) -> None:
        self.adapters = adapters
        self.pool = pool
        self.content_generator = with_fallback(adapters.content_generator)

    async def run(self, job: Job, progress: StageProgress) -> dict[str, Any]:
        """Run one attempt of ``job``.

        Raises:
            JobCancelledError: If the job record disappears between stages.
            Exception: Whatever a stage adapter raised.
        """
        if job.job_type == JobType.PROCESS_VIDEO:
            return await self._run_processing(job, progress)
        if job.job_type == JobType.UPLOAD_VIDEO:
            return await self._run_upload(job, progress)
        raise ValueError(f"Unsupported job type: {job.job_type}")

    async def _ensure_not_cancelled(self, job_id: str) -> None:
        def _exists() -> bool:
            with self.pool.connection() as conn:
                return get_job(conn, job_id) is not None

        if not await asyncio.to_thread(_exists):
            raise JobCancelledError(job_id)

    async def _run_processing(
        self, job: Job, progress: StageProgress
    ) -> dict[str, Any]:
        request = parse_payload(ProcessRequest, job.payload)
        options = request.options

        progress.report(DOWNLOAD_WINDOW.base, DOWNLOAD_WINDOW.name)
        logger.info("Downloading %s", request.url)
        download = await self.adapters.downloader.download(
            request.url,
            quality=options.quality,
            audio_quality=options.audio_quality,
            on_progress=progress.callback(DOWNLOAD_WINDOW),
        )
        await self._ensure_not_cancelled(job.id)

        progress.report(PROCESSING_WINDOW.base, PROCESSING_WINDOW.name)
        logger.info("Processing %s into %ds clips", download.path, options.clip_duration)
        clips = await self.adapters.clip_processor.process(
            download.path,
            clip_duration=options.clip_duration,
            start_time=options.start_time,
            max_clips=options.max_clips,
            on_progress=progress.callback(PROCESSING_WINDOW),
        )
        await self._ensure_not_cancelled(job.id)

        progress.report(
            CONTENT_GENERATION_PERCENT, STAGE_GENERATING, {"clips": len(clips)}
        )
        contents = []
        for clip in clips:
            content = await self.content_generator.generate(
                download.metadata, clip
            )
            contents.append(content)
        await self._ensure_not_cancelled(job.id)

        logger.info("Produced %d clip(s) from %s", len(clips), request.url)
        return {
            "video": download.metadata.to_dict(),
            "source_path": str(download.path),
            "clips": [clip.to_dict() for clip in clips],
            "content": [content.to_dict() for content in contents],
        }

    async def _run_upload(self, job: Job, progress: StageProgress) -> dict[str, Any]:
        request = parse_payload(UploadRequest, job.payload)
        meta = request.metadata

        progress.report(UPLOAD_WINDOW.base, UPLOAD_WINDOW.name)
        logger.info("Uploading %s as %r", request.video_path, meta.title)
        result = await self.adapters.uploader.upload(
            Path(request.video_path),
            UploadMetadata(
                title=meta.title,
                description=meta.description,
                tags=tuple(meta.tags),
                privacy=meta.privacy,
                category_id=meta.category_id,
                publish_at=meta.publish_at,
            ),
            on_progress=progress.callback(UPLOAD_WINDOW),
        )
        return result.to_dict()
