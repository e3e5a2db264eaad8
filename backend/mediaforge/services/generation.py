"""Generation service: the entry point callers use.

    request ─▶ registry lookup ─▶ normalize ─▶ sync path ─────────────▶ result
                                           └─▶ job lifecycle (poll) ─▶ result

Each call builds its own transport / lifecycle objects; only the
read-only capability registry and the pooled httpx client are shared.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

import httpx

from mediaforge.errors import ValidationError
from mediaforge.schemas.generation import (
    GenerationRequest,
    GenerationResult,
    JobHandle,
    ProviderId,
)
from mediaforge.services.capability_registry import (
    PROVIDER_REGISTRY,
    ProviderCapability,
    ProviderRegistry,
)
from mediaforge.services.job_lifecycle import JobBackend, JobLifecycle, wait_for_completion
from mediaforge.services.normalizer import ProviderPayload, normalize
from mediaforge.services.providers.veo_video import VeoClient
from mediaforge.services.sync_path import SyncPath
from mediaforge.services.transport import ResilientTransport, Sleep, get_http_client
from mediaforge.services.unifier import materialize

logger = logging.getLogger(__name__)


class GenerationService:
    """Satisfies GenerationRequests with whichever provider they select."""

    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        registry: ProviderRegistry = PROVIDER_REGISTRY,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._client = client
        self.registry = registry
        self._sleep = sleep
        self._clock = clock

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client or get_http_client()

    def _transport(self) -> ResilientTransport:
        return ResilientTransport(sleep=self._sleep)

    def prepare(self, request: GenerationRequest) -> tuple[ProviderCapability, ProviderPayload]:
        """Resolve the provider and build its payload.

        Raises:
            ValidationError: unknown provider or a request it cannot serve.
        """
        capability = self.registry.get(request.provider)
        return capability, normalize(request, capability)

    # -- asynchronous jobs --------------------------------------------------

    def _job_backend(self, capability: ProviderCapability, duration: int | None = None) -> JobBackend:
        if capability.provider == ProviderId.VEO:
            return VeoClient(
                client=self.client, duration=duration, has_audio=capability.has_audio,
            )
        raise NotImplementedError(
            f"Unhandled asynchronous provider variant: {capability.provider}"
        )

    def _lifecycle(self, capability: ProviderCapability, duration: int | None = None) -> JobLifecycle:
        return JobLifecycle(
            self._job_backend(capability, duration),
            self._transport(),
            provider=capability.provider,
            clock=self._clock,
        )

    async def start_job(self, request: GenerationRequest) -> JobLifecycle:
        """Start an asynchronous job; its handle is available immediately."""
        capability, payload = self.prepare(request)
        if not capability.is_async:
            raise ValidationError(
                f"{capability.provider.value} is synchronous; use generate()",
                provider=capability.provider.value,
            )
        lifecycle = self._lifecycle(capability, payload.selection.duration)
        await lifecycle.start(payload)
        return lifecycle

    def resume_job(self, provider: ProviderId | str, job_id: str) -> JobLifecycle:
        """Rebuild a lifecycle for a job id handed out earlier."""
        capability = self.registry.get(provider)
        if not capability.is_async:
            raise ValidationError(
                f"{capability.provider.value} has no jobs to poll",
                provider=capability.provider.value,
            )
        lifecycle = self._lifecycle(capability)
        lifecycle.attach(JobHandle(job_id=job_id, provider=capability.provider))
        return lifecycle

    # -- entry points -------------------------------------------------------

    async def submit(self, request: GenerationRequest) -> GenerationResult | JobLifecycle:
        """Sync providers: the result.  Async providers: the started job."""
        capability, payload = self.prepare(request)
        if capability.is_async:
            lifecycle = self._lifecycle(capability, payload.selection.duration)
            await lifecycle.start(payload)
            return lifecycle
        return await SyncPath(
            client=self.client, transport=self._transport(), sleep=self._sleep,
        ).run(payload, capability)

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """Run a generation to its end, polling asynchronous jobs to completion."""
        outcome = await self.submit(request)
        if isinstance(outcome, GenerationResult):
            return outcome
        return await wait_for_completion(outcome, sleep=self._sleep)

    async def materialize(self, result: GenerationResult) -> GenerationResult:
        """Download a URL-only result so it can be persisted as bytes."""
        params = None
        if result.provider == ProviderId.VEO and result.url and not result.url.startswith("data:"):
            params = VeoClient(client=self.client).download_params
        return await materialize(
            result, client=self.client, transport=self._transport(), params=params,
        )
