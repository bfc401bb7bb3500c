"""Pydantic models for job payloads.

These models validate caller input at submission time:
- ProcessOptionsModel: clip settings for a processing run
- ProcessRequest: payload of a process-video job
- UploadMetadataModel: title/description/privacy/publish time for a published clip
- UploadRequest: payload of an upload-video job
"""

from collections.abc import Mapping
from typing import Any, Literal, TypeVar
from urllib.parse import urlparse

from pydantic import (
    AwareDatetime,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic import ValidationError as PydanticValidationError

from clipflow.exceptions import ValidationError

MAX_TITLE_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 5000
MAX_CLIP_DURATION = 60

VideoQuality = Literal["best", "1080p", "720p", "480p"]
AudioQuality = Literal["best", "good", "medium"]
Privacy = Literal["public", "private", "unlisted"]

ModelT = TypeVar("ModelT", bound=BaseModel)


class ProcessOptionsModel(BaseModel):
    """Clip settings for one processing run."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    clip_duration: int = Field(default=15, ge=1, le=MAX_CLIP_DURATION)
    start_time: float = Field(default=0, ge=0)
    max_clips: int | None = Field(default=None, ge=1)
    quality: VideoQuality = "best"
    audio_quality: AudioQuality = "best"


class ProcessRequest(BaseModel):
    """Payload of a process-video job."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    url: str
    options: ProcessOptionsModel = Field(default_factory=ProcessOptionsModel)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Require an absolute http(s) URL."""
        parsed = urlparse(v.strip())
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"Invalid video URL '{v}'. Must be an http(s) URL.")
        return v.strip()


class UploadMetadataModel(BaseModel):
    """Metadata published with an uploaded clip."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    title: str = Field(min_length=1, max_length=MAX_TITLE_LENGTH)
    description: str = Field(default="", max_length=MAX_DESCRIPTION_LENGTH)
    tags: list[str] = Field(default_factory=list)
    privacy: Privacy = "public"
    category_id: str | None = None
    publish_at: AwareDatetime | None = None

    @model_validator(mode="before")
    @classmethod
    def private_until_published(cls, data: Any) -> Any:
        """A clip with a publish time stays private until then."""
        if isinstance(data, Mapping) and data.get("publish_at") is not None:
            data = {**data, "privacy": "private"}
        return data


class UploadRequest(BaseModel):
    """Payload of an upload-video job."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    video_path: str = Field(min_length=1)
    metadata: UploadMetadataModel


def format_pydantic_errors(error: PydanticValidationError) -> str:
    """Render pydantic errors as ``field.path: message`` lines."""
    lines = []
    for item in error.errors():
        parts: list[str] = []
        for part in item.get("loc", ()):
            if isinstance(part, int) and parts:
                parts[-1] = f"{parts[-1]}[{part}]"
            else:
                parts.append(str(part))
        location = ".".join(parts) or "payload"
        lines.append(f"{location}: {item.get('msg', 'invalid value')}")
    return "; ".join(lines)


def parse_payload(model: type[ModelT], payload: Mapping[str, Any] | BaseModel) -> ModelT:
    """Validate a payload against ``model``.

    Raises:
        ValidationError: With a readable summary of every problem.
    """
    if isinstance(payload, model):
        return payload
    if isinstance(payload, BaseModel):
        payload = payload.model_dump()
    if not isinstance(payload, Mapping):
        raise ValidationError(
            f"Invalid {model.__name__}: expected an object, "
            f"got {type(payload).__name__}"
        )
    try:
        return model.model_validate(dict(payload))
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid {model.__name__}: {format_pydantic_errors(e)}"
        ) from e
