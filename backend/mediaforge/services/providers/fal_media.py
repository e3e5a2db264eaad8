"""fal.ai synchronous media chains.

Seedream image: generate → optional ESRGAN upscale → fetch as bytes
Kling / Wan video: generate → fetch as bytes

Steps run strictly in sequence; a failure at any step aborts the chain.
"""

from __future__ import annotations

import logging

import httpx

from mediaforge.schemas.generation import GenerationResult, MediaKind
from mediaforge.services.capability_registry import ProviderCapability
from mediaforge.services.normalizer import FAL_ESRGAN, ProviderPayload
from mediaforge.services.providers.fal_queue import FalQueueClient
from mediaforge.services.transport import ResilientTransport
from mediaforge.services.unifier import extract_fal_media_url, from_url, materialize

logger = logging.getLogger(__name__)


async def generate_image(
    payload: ProviderPayload,
    *,
    queue: FalQueueClient,
    client: httpx.AsyncClient,
    transport: ResilientTransport,
) -> GenerationResult:
    """Run the Seedream chain and return the image bytes."""
    provider = payload.provider.value

    result = await queue.run(payload.endpoint, payload.body, provider=provider)
    image_url = extract_fal_media_url(result)
    logger.info("Seedream image ready (path=%s)", payload.path)

    if payload.upscale_factor:
        upscaled = await queue.run(
            FAL_ESRGAN,
            {"image_url": image_url, "scale": payload.upscale_factor},
            provider=provider,
        )
        image_url = extract_fal_media_url(upscaled)
        logger.info("Seedream image upscaled x%d", payload.upscale_factor)

    return await materialize(
        from_url(
            image_url,
            mime_type="image/png",
            media_kind=MediaKind.IMAGE,
            provider=payload.provider,
        ),
        client=client,
        transport=transport,
    )


async def generate_video(
    payload: ProviderPayload,
    capability: ProviderCapability,
    *,
    queue: FalQueueClient,
    client: httpx.AsyncClient,
    transport: ResilientTransport,
) -> GenerationResult:
    """Run a Kling or Wan generation and return the video bytes."""
    result = await queue.run(payload.endpoint, payload.body, provider=payload.provider.value)
    video_url = extract_fal_media_url(result)
    logger.info("%s video ready (path=%s)", capability.label, payload.path)

    return await materialize(
        from_url(
            video_url,
            mime_type="video/mp4",
            media_kind=MediaKind.VIDEO,
            provider=payload.provider,
            duration=payload.selection.duration,
            has_audio=capability.has_audio,
        ),
        client=client,
        transport=transport,
    )
