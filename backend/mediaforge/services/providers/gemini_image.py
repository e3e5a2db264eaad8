"""Gemini image generation provider (Nano Banana Pro).

Single generateContent round trip; the image comes back inline as base64.
"""

from __future__ import annotations

import logging

import httpx

from mediaforge.config import get_settings
from mediaforge.errors import ValidationError
from mediaforge.schemas.generation import GenerationResult, MediaKind
from mediaforge.services.normalizer import ProviderPayload
from mediaforge.services.transport import ResilientTransport, request_json
from mediaforge.services.unifier import extract_gemini_inline, from_inline

logger = logging.getLogger(__name__)


async def generate_image(
    payload: ProviderPayload,
    *,
    client: httpx.AsyncClient,
    transport: ResilientTransport,
    api_key: str | None = None,
    base_url: str | None = None,
    model: str | None = None,
) -> GenerationResult:
    """Generate an image via the Gemini API.

    Returns a GenerationResult carrying the decoded image bytes.
    """
    settings = get_settings()
    api_key = api_key if api_key is not None else settings.GOOGLE_API_KEY
    if not api_key:
        raise ValidationError("GOOGLE_API_KEY is not set", provider=payload.provider.value)

    endpoint = (base_url or settings.GOOGLE_API_BASE).rstrip("/")
    model = model or settings.GEMINI_IMAGE_MODEL
    url = f"{endpoint}/models/{model}:{payload.endpoint}"

    logger.info("Calling Gemini image model=%s (path=%s)", model, payload.path)

    response = await transport.execute(
        lambda: request_json(
            client, "POST", url,
            json=payload.body,
            params={"key": api_key},
            label="Gemini",
            provider=payload.provider.value,
        ),
        label=f"gemini {model}",
    )

    data_b64, mime_type = extract_gemini_inline(response)
    return from_inline(
        data_b64,
        mime_type=mime_type,
        media_kind=MediaKind.IMAGE,
        provider=payload.provider,
    )
