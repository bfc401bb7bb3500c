"""Unit tests for job payload validation."""

from datetime import datetime, timezone

import pytest

from clipflow.exceptions import ValidationError
from clipflow.jobs.payloads import ProcessRequest, UploadRequest, parse_payload


class TestProcessRequest:
    """Tests for process-video payloads."""

    def test_defaults_applied(self):
        request = parse_payload(ProcessRequest, {"url": "https://example.com/v"})

        assert request.options.clip_duration == 15
        assert request.options.start_time == 0
        assert request.options.max_clips is None
        assert request.options.quality == "best"

    def test_rejects_non_http_url(self):
        with pytest.raises(ValidationError, match="url"):
            parse_payload(ProcessRequest, {"url": "ftp://example.com/v"})

    def test_rejects_clip_duration_over_limit(self):
        with pytest.raises(ValidationError, match=r"options\.clip_duration"):
            parse_payload(
                ProcessRequest,
                {"url": "https://example.com/v", "options": {"clip_duration": 61}},
            )

    def test_rejects_unknown_fields(self):
        with pytest.raises(ValidationError):
            parse_payload(ProcessRequest, {"url": "https://example.com/v", "x": 1})


class TestUploadRequest:
    """Tests for upload-video payloads."""

    def test_valid_payload(self, upload_payload):
        request = parse_payload(UploadRequest, upload_payload)

        assert request.metadata.title == "My clip"
        assert request.metadata.privacy == "public"

    def test_title_required(self):
        with pytest.raises(ValidationError, match=r"metadata\.title"):
            parse_payload(
                UploadRequest, {"video_path": "/tmp/a.mp4", "metadata": {"title": ""}}
            )

    def test_rejects_non_mapping(self):
        with pytest.raises(ValidationError, match="expected an object"):
            parse_payload(UploadRequest, ["not", "a", "dict"])

    def test_model_instance_passes_through(self, upload_payload):
        request = parse_payload(UploadRequest, upload_payload)
        assert parse_payload(UploadRequest, request) is request

    def test_publish_at_keeps_upload_private(self, upload_payload):
        """A clip with a release time is uploaded private regardless of privacy."""
        upload_payload["metadata"]["privacy"] = "public"
        upload_payload["metadata"]["publish_at"] = "2030-02-01T09:00:00+01:00"

        request = parse_payload(UploadRequest, upload_payload)

        assert request.metadata.privacy == "private"
        assert request.metadata.publish_at == datetime(
            2030, 2, 1, 8, 0, tzinfo=timezone.utc
        )

    def test_publish_at_requires_offset(self, upload_payload):
        upload_payload["metadata"]["publish_at"] = "2030-02-01T09:00:00"

        with pytest.raises(ValidationError, match=r"metadata\.publish_at"):
            parse_payload(UploadRequest, upload_payload)
