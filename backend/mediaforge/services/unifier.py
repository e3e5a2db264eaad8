"""Result unifier: provider success payloads → GenerationResult.

Three shapes are recognized:
  1. inline base64 bytes in the response body (Gemini)
  2. a remote URL, displayable as-is or materialized to bytes (Veo, fal)
  3. a queued fal result fetched from the request's result endpoint
     (the fetch itself lives in providers/fal_queue.py; the payload it
     returns is unified here like shape 2)

A "successful" response with none of these is terminal:
UnrecognizedResponseError, never retried.
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any

import httpx

from mediaforge.errors import UnrecognizedResponseError
from mediaforge.schemas.generation import GenerationResult, MediaKind, ProviderId
from mediaforge.services.transport import ResilientTransport, fetch_bytes

logger = logging.getLogger(__name__)

NO_MEDIA = "No media in response"


def from_inline(
    data_b64: str,
    *,
    mime_type: str,
    media_kind: MediaKind,
    provider: ProviderId | None = None,
    duration: float | None = None,
    has_audio: bool = False,
) -> GenerationResult:
    """Shape 1: decode inline base64 bytes."""
    try:
        data = base64.b64decode(data_b64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise UnrecognizedResponseError(
            f"{NO_MEDIA}: inline data is not valid base64",
            provider=provider.value if provider else None,
        ) from e
    return GenerationResult(
        data=data,
        mime_type=mime_type,
        media_kind=media_kind,
        provider=provider,
        duration=duration,
        has_audio=has_audio,
    )


def from_url(
    url: str,
    *,
    mime_type: str,
    media_kind: MediaKind,
    provider: ProviderId | None = None,
    duration: float | None = None,
    has_audio: bool = False,
) -> GenerationResult:
    """Shape 2: reference a remote resource without downloading it."""
    return GenerationResult(
        url=url,
        mime_type=mime_type,
        media_kind=media_kind,
        provider=provider,
        duration=duration,
        has_audio=has_audio,
    )


# ---------------------------------------------------------------------------
# Provider response shapes
# ---------------------------------------------------------------------------

def extract_gemini_inline(response: dict[str, Any]) -> tuple[str, str]:
    """Return (base64 data, mime type) of the first inline image part."""
    candidates = response.get("candidates") or []
    if not candidates:
        raise UnrecognizedResponseError(f"{NO_MEDIA}: no candidates")

    parts = (candidates[0].get("content") or {}).get("parts") or []
    for part in parts:
        inline = part.get("inlineData") or part.get("inline_data")
        if inline and inline.get("data"):
            mime_type = inline.get("mimeType") or inline.get("mime_type") or "image/png"
            return inline["data"], mime_type

    raise UnrecognizedResponseError(
        f"{NO_MEDIA}. The model may have returned text only."
    )


def extract_fal_media_url(response: dict[str, Any]) -> str:
    """URL of the produced media in a fal result (images[], image or video)."""
    images = response.get("images")
    if isinstance(images, list) and images:
        url = (images[0] or {}).get("url")
        if url:
            return url

    for key in ("image", "video"):
        item = response.get(key)
        if isinstance(item, dict) and item.get("url"):
            return item["url"]

    raise UnrecognizedResponseError(
        f"{NO_MEDIA}. Response keys: {sorted(response.keys())}"
    )


def extract_veo_video_uri(response: dict[str, Any]) -> str | None:
    """URI of the first generated sample in a finished Veo operation."""
    body = response.get("generateVideoResponse") or response
    samples = body.get("generatedSamples") if isinstance(body, dict) else None
    if not isinstance(samples, list) or not samples or not isinstance(samples[0], dict):
        return None
    video = samples[0].get("video")
    uri = video.get("uri") if isinstance(video, dict) else None
    return uri if isinstance(uri, str) and uri else None


# ---------------------------------------------------------------------------
# URL → bytes
# ---------------------------------------------------------------------------

def _decode_data_url(url: str) -> tuple[bytes, str | None]:
    header, _, payload = url.partition(",")
    mime_type = header[5:].split(";")[0] or None
    try:
        return base64.b64decode(payload), mime_type
    except (binascii.Error, ValueError) as e:
        raise UnrecognizedResponseError(f"{NO_MEDIA}: malformed data URL") from e


async def materialize(
    result: GenerationResult,
    *,
    client: httpx.AsyncClient,
    transport: ResilientTransport,
    params: dict[str, str] | None = None,
) -> GenerationResult:
    """Return a copy of ``result`` whose bytes are populated.

    URL results are downloaded through the transport; the source URL is
    kept on the returned result.
    """
    if result.data is not None:
        return result

    provider = result.provider.value if result.provider else None
    if not result.url:
        raise UnrecognizedResponseError(NO_MEDIA, provider=provider)
    if result.url.startswith("data:"):
        data, content_type = _decode_data_url(result.url)
    else:
        data, content_type = await transport.execute(
            lambda: fetch_bytes(
                client, result.url, label=result.media_kind.value,
                provider=provider, params=params,
            ),
            label=f"{provider or 'media'} fetch",
        )

    if not data:
        raise UnrecognizedResponseError(f"{NO_MEDIA}: empty download", provider=provider)

    mime_type = result.mime_type
    if content_type and content_type.split("/")[0] == result.media_kind.value:
        mime_type = content_type

    logger.info("Materialized %s result (%d bytes)", result.media_kind.value, len(data))
    return result.model_copy(update={"data": data, "mime_type": mime_type})
