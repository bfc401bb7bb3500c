"""Content generation guard.

``FallbackContentGenerator`` wraps an optional text generator so that the
content stage can never fail a job: when the wrapped generator is missing,
raises, or returns an empty title, a deterministic title and description
are built from the source video's metadata instead.
"""

import logging

from clipflow.adapters.interfaces import (
    Clip,
    ContentGenerator,
    GeneratedContent,
    VideoMetadata,
)

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 100
BASE_HASHTAGS = ("#Shorts", "#YouTubeShorts", "#Viral")
FALLBACK_DESCRIPTION = (
    "Check out this amazing clip from: {title}\n\n"
    "#Shorts #YouTubeShorts #Viral #Trending"
)


def truncate_title(title: str, limit: int = MAX_TITLE_LENGTH) -> str:
    """Shorten a title to ``limit`` characters, ending it with '...'."""
    title = title.strip()
    if len(title) > limit:
        return title[: limit - 3] + "..."
    return title


def ensure_hashtags(description: str) -> str:
    """Append the base hashtags when a description carries none."""
    if "#" not in description:
        return f"{description}\n\n{' '.join(BASE_HASHTAGS)}"
    return description


def fallback_content(metadata: VideoMetadata, clip: Clip) -> GeneratedContent:
    """Build title and description without any external service."""
    return GeneratedContent(
        title=truncate_title(f"{metadata.title} - Part {clip.index + 1} #Shorts"),
        description=FALLBACK_DESCRIPTION.format(title=metadata.title),
    )


class FallbackContentGenerator:
    """Content generator that never fails.

    Args:
        inner: Generator to try first, or None to always use the fallback.
    """

    def __init__(self, inner: ContentGenerator | None = None) -> None:
        self.inner = inner

    async def generate(self, metadata: VideoMetadata, clip: Clip) -> GeneratedContent:
        if self.inner is None:
            return fallback_content(metadata, clip)

        try:
            content = await self.inner.generate(metadata, clip)
        except Exception as e:
            logger.warning(
                "Content generation failed for clip %d of %r, using fallback: %s",
                clip.index,
                metadata.title,
                e,
            )
            return fallback_content(metadata, clip)

        if content is None or not (content.title or "").strip():
            logger.info(
                "Content generator returned no title for clip %d, using fallback",
                clip.index,
            )
            return fallback_content(metadata, clip)

        description = content.description or ""
        if not description.strip():
            description = FALLBACK_DESCRIPTION.format(title=metadata.title)

        return GeneratedContent(
            title=truncate_title(content.title),
            description=ensure_hashtags(description),
            tags=content.tags,
        )


def with_fallback(generator: ContentGenerator | None) -> FallbackContentGenerator:
    """Wrap ``generator`` in a FallbackContentGenerator unless it already is one."""
    if isinstance(generator, FallbackContentGenerator):
        return generator
    return FallbackContentGenerator(generator)
