"""Asynchronous job lifecycle.

    pending ──start──▶ processing ──▶ completed
                           │
                           └────────▶ failed   (provider error, no media,
                                                or poll budget exhausted)

One JobLifecycle owns one job.  ``poll_once`` performs at most one status
fetch; scheduling (the fixed 5s interval) belongs to whoever drives it:
``wait_for_completion`` below, or an HTTP client hitting the status route.
Terminal states are final: polling a finished job returns the stored status
without touching the provider.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Protocol

from mediaforge.config import get_settings
from mediaforge.errors import (
    GenerationError,
    JobTimeoutError,
    ProviderError,
    UnrecognizedResponseError,
)
from mediaforge.schemas.generation import (
    ERROR_TIMEOUT,
    ERROR_UNRECOGNIZED,
    GenerationResult,
    JobHandle,
    JobState,
    JobStatus,
    ProviderId,
)
from mediaforge.services.normalizer import ProviderPayload
from mediaforge.services.transport import ResilientTransport, Sleep

logger = logging.getLogger(__name__)


class JobBackend(Protocol):
    """Provider side of an asynchronous job.

    ``create`` and ``fetch`` are the HTTP exchanges the transport retries;
    ``job_id_from`` and ``to_status`` interpret their bodies and run once.
    """

    async def create(self, payload: ProviderPayload) -> dict[str, Any]: ...

    def job_id_from(self, data: dict[str, Any]) -> str: ...

    async def fetch(self, job_id: str) -> dict[str, Any]: ...

    def to_status(self, job_id: str, data: dict[str, Any]) -> JobStatus: ...


class JobLifecycle:
    """State machine for a single asynchronous generation job."""

    def __init__(
        self,
        backend: JobBackend,
        transport: ResilientTransport,
        *,
        provider: ProviderId,
        poll_interval: float | None = None,
        max_polls: int | None = None,
        budget_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        settings = get_settings()
        self.provider = provider
        self.poll_interval = poll_interval if poll_interval is not None else settings.POLL_INTERVAL
        self.max_polls = max_polls if max_polls is not None else settings.POLL_MAX_ATTEMPTS
        self.budget_seconds = budget_seconds if budget_seconds is not None else settings.POLL_TIMEOUT
        self.backend = backend
        self._transport = transport
        self._clock = clock
        self._handle: JobHandle | None = None
        self._status: JobStatus | None = None
        self._started_at = 0.0
        self._polls = 0
        self._stopped = False

    # -- inspection ---------------------------------------------------------

    @property
    def handle(self) -> JobHandle:
        if self._handle is None:
            raise RuntimeError("Job has not been started")
        return self._handle

    @property
    def status(self) -> JobStatus:
        if self._status is None:
            raise RuntimeError("Job has not been started")
        return self._status

    @property
    def polls(self) -> int:
        return self._polls

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def is_terminal(self) -> bool:
        return self._status is not None and self._status.is_terminal

    def _elapsed(self) -> float:
        return self._clock() - self._started_at

    # -- transitions --------------------------------------------------------

    def _accept(self, handle: JobHandle) -> JobHandle:
        self._handle = handle
        self._started_at = self._clock()
        self._status = JobStatus(job_id=handle.job_id, state=JobState.PENDING)
        return handle

    async def start(self, payload: ProviderPayload) -> JobHandle:
        """Submit the job (exactly once) and return its handle."""
        if self._handle is not None:
            raise RuntimeError(f"Job {self._handle.job_id} already started")

        created = await self._transport.execute(
            lambda: self.backend.create(payload),
            label=f"{self.provider.value} start",
        )
        job_id = self.backend.job_id_from(created)
        logger.info("Job started: %s (provider=%s)", job_id, self.provider.value)
        return self._accept(JobHandle(job_id=job_id, provider=self.provider))

    def attach(self, handle: JobHandle) -> JobHandle:
        """Track a job started elsewhere; the poll budget counts from now."""
        if self._handle is not None:
            raise RuntimeError(f"Job {self._handle.job_id} already started")
        return self._accept(handle)

    def stop(self) -> None:
        """Stop polling. The provider is not told; it cannot cancel anyway."""
        if not self._stopped:
            logger.info("Polling stopped for job %s", self._handle.job_id if self._handle else "-")
        self._stopped = True

    def _budget_spent(self) -> bool:
        return self._polls >= self.max_polls or self._elapsed() >= self.budget_seconds

    def _time_out(self) -> JobStatus:
        last = self.status
        self._status = JobStatus(
            job_id=last.job_id,
            state=JobState.FAILED,
            progress=last.progress,
            error=(
                f"Timed out waiting for {self.provider.value} job after "
                f"{self._polls} polls ({self._elapsed():.0f}s)"
            ),
            error_kind=ERROR_TIMEOUT,
        )
        logger.warning("Job %s timed out after %d polls", last.job_id, self._polls)
        return self._status

    async def poll_once(self) -> JobStatus:
        """Fetch the job status once, unless the job is finished or stopped.

        A transport failure that survives the retry budget propagates and
        still counts against the poll budget; the job stays non-terminal.
        """
        current = self.status
        if current.is_terminal or self._stopped:
            return current
        if self._budget_spent():
            return self._time_out()

        job_id = current.job_id
        try:
            data = await self._transport.execute(
                lambda: self.backend.fetch(job_id),
                label=f"{self.provider.value} poll {job_id}",
            )
        finally:
            self._polls += 1

        status = self.backend.to_status(job_id, data)
        self._status = status
        if status.is_terminal:
            logger.info(
                "Job %s finished: %s after %d polls", job_id, status.state.value, self._polls,
            )
            return status

        logger.debug(
            "Job %s: %s progress=%s (poll %d/%d)",
            job_id, status.state.value,
            "unknown" if status.progress is None else f"{status.progress}%",
            self._polls, self.max_polls,
        )
        if self._budget_spent():
            return self._time_out()
        return status

    def result(self) -> GenerationResult:
        """Result of a completed job, or the typed error of a failed one."""
        status = self.status
        if status.state == JobState.COMPLETED and status.result is not None:
            return status.result

        provider = self.provider.value
        if status.state == JobState.FAILED:
            message = status.error or "Generation failed"
            if status.error_kind == ERROR_TIMEOUT:
                raise JobTimeoutError(message, provider=provider)
            if status.error_kind == ERROR_UNRECOGNIZED:
                raise UnrecognizedResponseError(message, provider=provider)
            raise ProviderError(message, provider=provider)
        if status.state == JobState.COMPLETED:
            raise UnrecognizedResponseError("No media in response", provider=provider)
        raise RuntimeError(f"Job {status.job_id} is still {status.state.value}")


async def wait_for_completion(
    lifecycle: JobLifecycle,
    *,
    sleep: Sleep = asyncio.sleep,
    on_status: Callable[[JobStatus], None] | None = None,
) -> GenerationResult:
    """Poll a started job at its fixed interval until it reaches a terminal state.

    Raises:
        ProviderError, UnrecognizedResponseError, JobTimeoutError: terminal failure.
        GenerationError: polling was stopped before the job finished.
    """
    while True:
        status = await lifecycle.poll_once()
        if on_status is not None:
            on_status(status)
        if status.is_terminal:
            return lifecycle.result()
        if lifecycle.stopped:
            raise GenerationError(
                f"Polling stopped before job {status.job_id} finished",
                provider=lifecycle.provider.value,
            )
        await sleep(lifecycle.poll_interval)
