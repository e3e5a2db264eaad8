"""Synchronous path: providers whose request/response cycle is the whole job.

Dispatches a normalized payload to its provider chain and returns the
canonical GenerationResult with bytes populated.  Every provider variant
is handled explicitly; asynchronous providers are rejected here and go
through job_lifecycle.py instead.
"""

from __future__ import annotations

import asyncio
import logging

import httpx

from mediaforge.errors import ValidationError
from mediaforge.schemas.generation import GenerationResult, ProviderId
from mediaforge.services.capability_registry import ProviderCapability
from mediaforge.services.normalizer import ProviderPayload
from mediaforge.services.providers import fal_media, gemini_image
from mediaforge.services.providers.fal_queue import FalQueueClient
from mediaforge.services.transport import ResilientTransport, Sleep

logger = logging.getLogger(__name__)


class SyncPath:
    """Runs one synchronous generation chain."""

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        transport: ResilientTransport,
        sleep: Sleep = asyncio.sleep,
    ):
        self._client = client
        self._transport = transport
        self._sleep = sleep

    def _fal_queue(self) -> FalQueueClient:
        return FalQueueClient(client=self._client, transport=self._transport, sleep=self._sleep)

    async def run(self, payload: ProviderPayload, capability: ProviderCapability) -> GenerationResult:
        provider = payload.provider
        if capability.is_async:
            raise ValidationError(
                f"{provider.value} is asynchronous; start a job instead",
                provider=provider.value,
            )

        logger.info("Sync generation: provider=%s path=%s", provider.value, payload.path)

        if provider == ProviderId.NANOBANANA_PRO:
            return await gemini_image.generate_image(
                payload, client=self._client, transport=self._transport,
            )
        elif provider == ProviderId.SEEDREAM:
            return await fal_media.generate_image(
                payload, queue=self._fal_queue(),
                client=self._client, transport=self._transport,
            )
        elif provider in (ProviderId.KLING, ProviderId.WAN):
            return await fal_media.generate_video(
                payload, capability, queue=self._fal_queue(),
                client=self._client, transport=self._transport,
            )
        else:
            raise NotImplementedError(f"Unhandled synchronous provider variant: {provider}")
