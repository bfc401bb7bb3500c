"""Unit tests for FallbackContentGenerator."""

from pathlib import Path

import pytest

from clipflow.adapters.content import (
    FallbackContentGenerator,
    ensure_hashtags,
    truncate_title,
)
from clipflow.adapters.interfaces import Clip, GeneratedContent, VideoMetadata

METADATA = VideoMetadata(title="Big Talk", duration=120.0)
CLIP = Clip(index=1, path=Path("/tmp/clip_1.mp4"), start_time=15.0, duration=15.0)


class StaticGenerator:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error

    async def generate(self, metadata, clip):
        if self.error is not None:
            raise self.error
        return self.content


class TestHelpers:
    """Tests for the text helpers."""

    def test_truncate_title(self):
        title = truncate_title("x" * 120)
        assert len(title) == 100
        assert title.endswith("...")

    def test_short_title_unchanged(self):
        assert truncate_title("  Hello  ") == "Hello"

    def test_ensure_hashtags_appends(self):
        assert ensure_hashtags("Nice clip").endswith("#Shorts #YouTubeShorts #Viral")

    def test_ensure_hashtags_keeps_existing(self):
        assert ensure_hashtags("Nice #clip") == "Nice #clip"


class TestFallbackContentGenerator:
    """Tests for FallbackContentGenerator.generate."""

    @pytest.mark.asyncio
    async def test_without_inner_uses_fallback(self):
        content = await FallbackContentGenerator().generate(METADATA, CLIP)

        assert content.title == "Big Talk - Part 2 #Shorts"
        assert "Big Talk" in content.description

    @pytest.mark.asyncio
    async def test_inner_error_uses_fallback(self):
        generator = FallbackContentGenerator(StaticGenerator(error=TimeoutError()))

        content = await generator.generate(METADATA, CLIP)

        assert content.title == "Big Talk - Part 2 #Shorts"

    @pytest.mark.asyncio
    async def test_empty_title_uses_fallback(self):
        generator = FallbackContentGenerator(
            StaticGenerator(GeneratedContent(title="  ", description="d"))
        )

        content = await generator.generate(METADATA, CLIP)

        assert content.title == "Big Talk - Part 2 #Shorts"

    @pytest.mark.asyncio
    async def test_generated_content_is_cleaned(self):
        """Long titles are cut and hashtags added to bare descriptions."""
        generator = FallbackContentGenerator(
            StaticGenerator(
                GeneratedContent(title="T" * 150, description="Watch", tags=("a",))
            )
        )

        content = await generator.generate(METADATA, CLIP)

        assert len(content.title) == 100
        assert "#Shorts" in content.description
        assert content.tags == ("a",)

    @pytest.mark.asyncio
    async def test_blank_description_is_replaced(self):
        generator = FallbackContentGenerator(
            StaticGenerator(GeneratedContent(title="Good title", description=""))
        )

        content = await generator.generate(METADATA, CLIP)

        assert content.title == "Good title"
        assert "Big Talk" in content.description
