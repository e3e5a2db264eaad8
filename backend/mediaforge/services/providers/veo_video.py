"""Gemini Veo video generation provider.

Long-running operation pattern:
  POST models/{model}:predictLongRunning → operation name (the job id)
  GET  {operation name}                  → done / error / progress metadata

``create`` and ``fetch`` are single HTTP exchanges, the only part that is
retried.  ``job_id_from`` and ``to_status`` interpret their bodies after the
retry, so a malformed body is reported once and never re-submitted.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from mediaforge.config import get_settings
from mediaforge.errors import UnrecognizedResponseError, ValidationError
from mediaforge.schemas.generation import (
    ERROR_PROVIDER,
    ERROR_UNRECOGNIZED,
    JobState,
    JobStatus,
    MediaKind,
    ProviderId,
)
from mediaforge.services.normalizer import ProviderPayload
from mediaforge.services.transport import request_json
from mediaforge.services.unifier import NO_MEDIA, extract_veo_video_uri, from_url

logger = logging.getLogger(__name__)


class VeoClient:
    """HTTP client for one Veo job."""

    provider = ProviderId.VEO

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        duration: int | None = None,
        has_audio: bool = True,
    ):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.GOOGLE_API_KEY
        if not self.api_key:
            raise ValidationError("GOOGLE_API_KEY is not set", provider=self.provider.value)
        self.base_url = (base_url or settings.GOOGLE_API_BASE).rstrip("/")
        self.model = model or settings.VEO_MODEL
        self.duration = duration
        self.has_audio = has_audio
        self._client = client

    @property
    def download_params(self) -> dict[str, str]:
        """Query params needed to download a finished video URI."""
        return {"key": self.api_key}

    async def create(self, payload: ProviderPayload) -> dict[str, Any]:
        """POST the operation; returns the raw response body."""
        return await request_json(
            self._client, "POST",
            f"{self.base_url}/models/{self.model}:{payload.endpoint}",
            json=payload.body,
            params={"key": self.api_key},
            label="Veo",
            provider=self.provider.value,
        )

    def job_id_from(self, data: dict[str, Any]) -> str:
        """The operation name of a create response is the job id."""
        job_id = data.get("name")
        if not job_id or not isinstance(job_id, str):
            raise UnrecognizedResponseError(
                "Veo task creation failed: no operation name returned",
                provider=self.provider.value,
            )
        logger.info("Veo operation created: %s (model=%s)", job_id, self.model)
        return job_id

    async def fetch(self, job_id: str) -> dict[str, Any]:
        """GET the operation once; returns the raw response body."""
        return await request_json(
            self._client, "GET", f"{self.base_url}/{job_id}",
            params={"key": self.api_key},
            label="Veo",
            provider=self.provider.value,
        )

    def to_status(self, job_id: str, data: dict[str, Any]) -> JobStatus:
        """Map an operation body onto a JobStatus. Never raises."""
        error = data.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            return JobStatus(
                job_id=job_id,
                state=JobState.FAILED,
                error=f"Veo generation failed: {message or 'unknown'}",
                error_kind=ERROR_PROVIDER,
            )

        if data.get("done"):
            response = data.get("response")
            video_uri = extract_veo_video_uri(response) if isinstance(response, dict) else None
            if not video_uri:
                return JobStatus(
                    job_id=job_id,
                    state=JobState.FAILED,
                    error=NO_MEDIA,
                    error_kind=ERROR_UNRECOGNIZED,
                )
            return JobStatus(
                job_id=job_id,
                state=JobState.COMPLETED,
                progress=100,
                result=from_url(
                    video_uri,
                    mime_type="video/mp4",
                    media_kind=MediaKind.VIDEO,
                    provider=self.provider,
                    duration=self.duration,
                    has_audio=self.has_audio,
                ),
            )

        return JobStatus(
            job_id=job_id,
            state=JobState.PROCESSING,
            progress=_progress(data.get("metadata")),
        )


def _progress(metadata: Any) -> int | None:
    """Provider-reported percentage, or None when unknown."""
    if not isinstance(metadata, dict):
        return None
    value = metadata.get("progress", metadata.get("progressPercent"))
    if value is None:
        return None
    try:
        return max(0, min(100, int(value)))
    except (TypeError, ValueError):
        return None
