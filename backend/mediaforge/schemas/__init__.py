"""Pydantic v2 schemas package."""

from mediaforge.schemas.generation import (
    MAX_REFERENCE_INPUTS,
    AspectRatio,
    GenerationRequest,
    GenerationResult,
    JobHandle,
    JobState,
    JobStatus,
    MediaKind,
    ProviderId,
    ReferenceInput,
    Strength,
    mime_type_for,
    parse_request,
)

__all__ = [
    "MAX_REFERENCE_INPUTS",
    "AspectRatio",
    "GenerationRequest",
    "GenerationResult",
    "JobHandle",
    "JobState",
    "JobStatus",
    "MediaKind",
    "ProviderId",
    "ReferenceInput",
    "Strength",
    "mime_type_for",
    "parse_request",
]
