"""Pydantic v2 schemas for generation requests, results and jobs."""

from __future__ import annotations

import enum
import os
from datetime import datetime, timezone
from typing import Any

import pydantic
from pydantic import BaseModel, Field, field_validator, model_validator

from mediaforge.errors import ValidationError

MAX_REFERENCE_INPUTS = 6


class MediaKind(str, enum.Enum):
    IMAGE = "image"
    VIDEO = "video"


class Strength(str, enum.Enum):
    """How strongly a reference input biases the output."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AspectRatio(str, enum.Enum):
    SQUARE = "1:1"
    LANDSCAPE = "16:9"
    PORTRAIT = "9:16"
    STANDARD = "4:3"
    STANDARD_PORTRAIT = "3:4"
    PHOTO = "3:2"
    PHOTO_PORTRAIT = "2:3"
    SOCIAL_PORTRAIT = "4:5"
    SOCIAL_LANDSCAPE = "5:4"
    CINEMATIC = "21:9"


class ProviderId(str, enum.Enum):
    """Every generation backend known to the registry."""

    NANOBANANA_PRO = "nanobanana-pro"   # Gemini image, inline bytes
    SEEDREAM = "seedream"               # fal.ai Seedream 4.5 (+ ESRGAN upscale)
    KLING = "kling-2.6-pro"             # fal.ai Kling 2.6 Pro, native audio
    WAN = "wan-2.6"                     # fal.ai Wan 2.6, frame-based
    VEO = "veo-3.1"                     # Google Veo 3.1, long-running job


class JobState(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATES = frozenset({JobState.COMPLETED, JobState.FAILED})

# JobStatus.error_kind values
ERROR_PROVIDER = "provider"
ERROR_TIMEOUT = "timeout"
ERROR_UNRECOGNIZED = "unrecognized"

_MIME_TYPES = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "webp": "image/webp",
}


def mime_type_for(filename: str) -> str:
    """Guess an image MIME type from a filename; defaults to PNG."""
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    return _MIME_TYPES.get(ext, "image/png")


class ReferenceInput(BaseModel):
    """A reference image conditioning the generation."""

    data: bytes
    mime_type: str = "image/png"
    strength: Strength = Strength.MEDIUM
    filename: str | None = None

    model_config = {"frozen": True}

    @classmethod
    def from_file(cls, path: str, strength: Strength = Strength.MEDIUM) -> ReferenceInput:
        """Read a reference image from disk."""
        with open(path, "rb") as f:
            data = f.read()
        return cls(
            data=data,
            mime_type=mime_type_for(path),
            strength=strength,
            filename=os.path.basename(path),
        )


class GenerationRequest(BaseModel):
    """The single abstract request every provider is driven from."""

    prompt: str
    media_kind: MediaKind = MediaKind.IMAGE
    aspect_ratio: AspectRatio = AspectRatio.SQUARE
    resolution: str | None = None
    duration: int | None = Field(default=None, gt=0)
    reference_inputs: list[ReferenceInput] = Field(
        default_factory=list, max_length=MAX_REFERENCE_INPUTS,
    )
    provider: ProviderId

    model_config = {"frozen": True}

    @field_validator("prompt")
    @classmethod
    def _prompt_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Prompt is required")
        return value


class GenerationResult(BaseModel):
    """Canonical output of a successful generation."""

    data: bytes | None = None
    url: str | None = None
    mime_type: str
    media_kind: MediaKind
    duration: float | None = None
    has_audio: bool = False
    provider: ProviderId | None = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _has_media(self) -> GenerationResult:
        if self.data is None and not self.url:
            raise ValueError("GenerationResult needs bytes or a URL")
        return self


class JobHandle(BaseModel):
    """Identifier of a job accepted by an asynchronous provider."""

    job_id: str
    provider: ProviderId
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"frozen": True}


class JobStatus(BaseModel):
    """Snapshot of an asynchronous job, as last observed by polling.

    ``progress`` is None when the provider did not report one.
    ``error_kind`` separates provider failures from timeouts and
    unrecognized payloads when ``state`` is ``failed``.
    """

    job_id: str
    state: JobState
    progress: int | None = Field(default=None, ge=0, le=100)
    result: GenerationResult | None = None
    error: str | None = None
    error_kind: str | None = None

    model_config = {"frozen": True}

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES


def parse_request(data: dict[str, Any]) -> GenerationRequest:
    """Build a GenerationRequest, reporting schema problems as ValidationError."""
    try:
        return GenerationRequest.model_validate(data)
    except pydantic.ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'request'}: {err['msg']}"
            for err in e.errors()
        )
        raise ValidationError(f"Invalid generation request: {problems}") from e
