"""Generation API: image, video, and video job status.

Sync providers answer in the same request.  Async providers answer with a
job id; the client polls ``/generate-video/status`` on its own timer and
each call performs exactly one poll.
"""

from __future__ import annotations

import base64
import binascii
import logging
from collections import OrderedDict
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from mediaforge.api.deps import get_generation_service, to_http_error
from mediaforge.config import get_settings
from mediaforge.errors import GenerationError, ValidationError
from mediaforge.schemas.generation import (
    GenerationRequest,
    GenerationResult,
    JobStatus,
    MediaKind,
    ProviderId,
    Strength,
    parse_request,
)
from mediaforge.services.generation import GenerationService
from mediaforge.services.job_lifecycle import JobLifecycle

logger = logging.getLogger(__name__)

router = APIRouter()


class ReferenceImageIn(BaseModel):
    data: str  # base64
    mime_type: str = "image/png"
    strength: Strength = Strength.MEDIUM
    filename: str | None = None


class ImageGenerateRequest(BaseModel):
    prompt: str
    aspect_ratio: str = "1:1"
    resolution: str = "1K"
    reference_images: list[ReferenceImageIn] = []
    model: str = ProviderId.NANOBANANA_PRO.value


class VideoGenerateRequest(BaseModel):
    prompt: str
    model: str = ProviderId.KLING.value
    duration: int = 5
    aspect_ratio: str = "16:9"
    resolution: str | None = "1080p"
    reference_images: list[ReferenceImageIn] = []


class JobBoard:
    """In-memory map of job id → live lifecycle, or final status once terminal.

    Both maps hold at most ``max_entries`` jobs; the least recently touched
    entry is evicted first.  An evicted live job is resumed from its id on
    the next status call.
    """

    def __init__(self, max_entries: int | None = None) -> None:
        self.max_entries = max_entries or get_settings().JOB_BOARD_MAX_ENTRIES
        self._live: OrderedDict[str, JobLifecycle] = OrderedDict()
        self._finished: OrderedDict[str, JobStatus] = OrderedDict()

    def __len__(self) -> int:
        return len(self._live) + len(self._finished)

    def _remember(self, entries: OrderedDict, job_id: str, value: Any) -> None:
        entries[job_id] = value
        entries.move_to_end(job_id)
        while len(entries) > self.max_entries:
            evicted, _ = entries.popitem(last=False)
            logger.debug("Job board full, evicted %s", evicted)

    def add(self, lifecycle: JobLifecycle) -> None:
        self._remember(self._live, lifecycle.handle.job_id, lifecycle)

    def finished(self, job_id: str) -> JobStatus | None:
        return self._finished.get(job_id)

    def live(self, job_id: str) -> JobLifecycle | None:
        lifecycle = self._live.get(job_id)
        if lifecycle is not None:
            self._live.move_to_end(job_id)
        return lifecycle

    def settle(self, job_id: str, status: JobStatus) -> None:
        """Drop the lifecycle (and its handle) of a terminal job."""
        self._live.pop(job_id, None)
        self._remember(self._finished, job_id, status)


def _job_board(request: Request) -> JobBoard:
    board = getattr(request.app.state, "job_board", None)
    if board is None:
        board = JobBoard()
        request.app.state.job_board = board
    return board


def _decode_b64(value: str, what: str) -> bytes:
    if value.startswith("data:"):
        value = value.split(",", 1)[1] if "," in value else ""
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"{what} is not valid base64") from e


def _to_core_request(media_kind: MediaKind, fields: dict[str, Any]) -> GenerationRequest:
    refs = fields.pop("reference_images")
    fields["reference_inputs"] = [
        {
            "data": _decode_b64(ref["data"], f"Reference image {i}"),
            "mime_type": ref["mime_type"],
            "strength": ref["strength"],
            "filename": ref["filename"],
        }
        for i, ref in enumerate(refs, start=1)
    ]
    fields["provider"] = fields.pop("model")
    fields["media_kind"] = media_kind
    return parse_request(fields)


def result_to_dict(result: GenerationResult) -> dict[str, Any]:
    return {
        "data": base64.b64encode(result.data).decode("ascii") if result.data is not None else None,
        "url": result.url,
        "mime_type": result.mime_type,
        "media_kind": result.media_kind.value,
        "duration": result.duration,
        "has_audio": result.has_audio,
        "provider": result.provider.value if result.provider else None,
    }


def status_to_dict(status: JobStatus) -> dict[str, Any]:
    return {
        "job_id": status.job_id,
        "status": status.state.value,
        "progress": status.progress,
        "result": result_to_dict(status.result) if status.result else None,
        "error": status.error,
        "error_kind": status.error_kind,
    }


@router.post("/generate")
async def generate_image(
    req: ImageGenerateRequest,
    service: GenerationService = Depends(get_generation_service),
) -> dict[str, Any]:
    """Generate an image with a synchronous image provider."""
    try:
        request = _to_core_request(MediaKind.IMAGE, req.model_dump(mode="json"))
        result = await service.generate(request)
    except GenerationError as e:
        logger.error("Image generation failed: %s", e)
        raise to_http_error(e)
    return {"results": [result_to_dict(result)]}


@router.post("/generate-video")
async def generate_video(
    req: VideoGenerateRequest,
    request: Request,
    service: GenerationService = Depends(get_generation_service),
) -> dict[str, Any]:
    """Generate a video; async providers return a job id to poll."""
    try:
        core_request = _to_core_request(MediaKind.VIDEO, req.model_dump(mode="json"))
        outcome = await service.submit(core_request)
    except GenerationError as e:
        logger.error("Video generation failed: %s", e)
        raise to_http_error(e)

    if isinstance(outcome, GenerationResult):
        return {"result": result_to_dict(outcome)}

    _job_board(request).add(outcome)
    return {"job_id": outcome.handle.job_id}


@router.get("/generate-video/status")
async def video_status(
    job_id: str,
    request: Request,
    model: str = ProviderId.VEO.value,
    service: GenerationService = Depends(get_generation_service),
) -> dict[str, Any]:
    """Poll a video job once and report its status."""
    if not job_id:
        raise HTTPException(status_code=400, detail="Job ID is required")

    board = _job_board(request)
    finished = board.finished(job_id)
    if finished is not None:
        return status_to_dict(finished)

    try:
        lifecycle = board.live(job_id)
        resumed = lifecycle is None
        if resumed:
            lifecycle = service.resume_job(model, job_id)
        status = await lifecycle.poll_once()
    except GenerationError as e:
        logger.error("Video status check failed for %s: %s", job_id, e)
        raise to_http_error(e)

    if status.is_terminal:
        board.settle(job_id, status)
    elif resumed:
        # Only ids the provider answered for are tracked
        board.add(lifecycle)
    return status_to_dict(status)
