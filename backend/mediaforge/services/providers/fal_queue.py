"""fal.ai queue protocol.

Submit → (if queued) poll ``/requests/{id}/status`` → GET ``/requests/{id}``.
This nested poll is part of fal's own transport step, below the
orchestration layer's job lifecycle.  Each HTTP exchange is retried on its
own; a failed submit is re-submitted, but once a request id exists the
queue is only ever polled, never re-submitted.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from mediaforge.config import get_settings
from mediaforge.errors import JobTimeoutError, ProviderError, ValidationError
from mediaforge.services.transport import ResilientTransport, Sleep, request_json

logger = logging.getLogger(__name__)

_FAILED_STATES = {"FAILED", "ERROR"}


class FalQueueClient:
    """Runs fal endpoints through the queue API and returns the result JSON."""

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        transport: ResilientTransport,
        api_key: str | None = None,
        base_url: str | None = None,
        poll_interval: float | None = None,
        max_polls: int | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.FAL_API_KEY
        if not self.api_key:
            raise ValidationError("FAL_API_KEY is not set")
        self.base_url = (base_url or settings.FAL_QUEUE_URL).rstrip("/")
        self.poll_interval = poll_interval if poll_interval is not None else settings.POLL_INTERVAL
        self.max_polls = max_polls if max_polls is not None else settings.POLL_MAX_ATTEMPTS
        self._client = client
        self._transport = transport
        self._sleep = sleep

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Key {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _call(self, method: str, url: str, *, label: str, provider: str | None, **kwargs: Any) -> dict[str, Any]:
        return await self._transport.execute(
            lambda: request_json(
                self._client, method, url,
                headers=self._headers, label="Fal", provider=provider, **kwargs,
            ),
            label=label,
        )

    async def run(self, endpoint: str, payload: dict[str, Any], *, provider: str | None = None) -> dict[str, Any]:
        """Submit ``payload`` to ``endpoint`` and return the final result body."""
        submitted = await self._call(
            "POST", f"{self.base_url}/{endpoint}",
            label=f"fal {endpoint} submit", provider=provider, json=payload,
        )

        request_id = submitted.get("request_id")
        if not request_id:
            # Answered inline, no queueing
            return submitted

        logger.info("Fal request queued: %s (endpoint=%s)", request_id, endpoint)
        status_url = submitted.get("status_url") or f"{self.base_url}/{endpoint}/requests/{request_id}/status"
        result_url = submitted.get("response_url") or f"{self.base_url}/{endpoint}/requests/{request_id}"
        return await self._wait_for_result(
            request_id, status_url, result_url, provider=provider,
        )

    async def _wait_for_result(
        self,
        request_id: str,
        status_url: str,
        result_url: str,
        *,
        provider: str | None,
    ) -> dict[str, Any]:
        for attempt in range(1, self.max_polls + 1):
            await self._sleep(self.poll_interval)

            status = await self._call(
                "GET", status_url, label=f"fal {request_id} status", provider=provider,
            )
            state = str(status.get("status", "")).upper()

            if state == "COMPLETED":
                if status.get("error"):
                    raise ProviderError(
                        f"Fal generation failed: {status['error']}", provider=provider,
                    )
                logger.info("Fal request %s completed after %d polls", request_id, attempt)
                return await self._call(
                    "GET", result_url, label=f"fal {request_id} result", provider=provider,
                )

            if state in _FAILED_STATES:
                raise ProviderError(
                    f"Fal generation failed: {status.get('error') or 'Unknown error'}",
                    provider=provider,
                )

            logger.debug(
                "Fal request %s: %s (poll %d/%d)", request_id, state, attempt, self.max_polls,
            )

        raise JobTimeoutError(
            f"Fal generation timed out after {self.max_polls} polls", provider=provider,
        )
