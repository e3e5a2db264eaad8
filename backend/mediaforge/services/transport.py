"""Resilient transport: one outbound call, bounded fixed-schedule retry.

Every failure of the wrapped call consumes an attempt; after the last
attempt the final error is raised unchanged.  The delay before retry *n*
is ``RETRY_DELAYS[n - 1]`` (2s, 4s, 6s by default), not a multiplied
backoff.

Also hosts the httpx helpers that turn connection errors, non-2xx
responses and undecodable bodies into ``TransportError``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Sequence, TypeVar

import httpx

from mediaforge.config import get_settings
from mediaforge.errors import TransportError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[Any]]

# ---------------------------------------------------------------------------
# Shared HTTP client (lazy init)
# ---------------------------------------------------------------------------

_http_client: httpx.AsyncClient | None = None


def get_http_client() -> httpx.AsyncClient:
    """Return the module-level httpx.AsyncClient, creating it on first use."""
    global _http_client
    if _http_client is None or _http_client.is_closed:
        _http_client = httpx.AsyncClient(timeout=get_settings().HTTP_TIMEOUT)
    return _http_client


async def close_http_client() -> None:
    global _http_client
    if _http_client is not None and not _http_client.is_closed:
        await _http_client.aclose()
    _http_client = None


# ---------------------------------------------------------------------------
# Retry
# ---------------------------------------------------------------------------

class ResilientTransport:
    """Executes a single idempotent call with a fixed retry schedule."""

    def __init__(
        self,
        max_attempts: int | None = None,
        delays: Sequence[float] | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        settings = get_settings()
        self.max_attempts = max_attempts if max_attempts is not None else settings.RETRY_MAX_ATTEMPTS
        self.delays = tuple(delays if delays is not None else settings.RETRY_DELAYS)
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if not self.delays:
            raise ValueError("at least one retry delay is required")
        self._sleep = sleep

    def delay_for(self, attempt: int) -> float:
        """Delay after the failed 1-based ``attempt``; the last entry repeats."""
        return self.delays[min(attempt - 1, len(self.delays) - 1)]

    async def execute(self, call: Callable[[], Awaitable[T]], *, label: str = "call") -> T:
        """Run ``call`` until it succeeds or the attempt budget is spent."""
        attempt = 1
        while True:
            try:
                return await call()
            except Exception as e:
                if attempt >= self.max_attempts:
                    logger.error(
                        "%s failed after %d attempts: %s", label, attempt, e,
                    )
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    "%s attempt %d/%d failed: %s (retrying in %.1fs)",
                    label, attempt, self.max_attempts, e, delay,
                )
                await self._sleep(delay)
                attempt += 1


# ---------------------------------------------------------------------------
# httpx helpers
# ---------------------------------------------------------------------------

async def request_json(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    label: str = "HTTP",
    provider: str | None = None,
    **kwargs: Any,
) -> dict[str, Any]:
    """Send a request and return its JSON object body.

    Raises:
        TransportError: on connection failure, non-2xx status or a body
            that is not a JSON object.
    """
    try:
        response = await client.request(method, url, **kwargs)
    except httpx.HTTPError as e:
        raise TransportError(f"{label} request failed: {e}", provider=provider) from e

    if response.is_error:
        raise TransportError(
            f"{label} API error: {response.status_code} - {response.text[:500]}",
            provider=provider,
            status_code=response.status_code,
        )

    try:
        data = response.json()
    except ValueError as e:
        raise TransportError(
            f"{label} returned invalid JSON", provider=provider,
            status_code=response.status_code,
        ) from e
    if not isinstance(data, dict):
        raise TransportError(
            f"{label} returned {type(data).__name__}, expected an object",
            provider=provider, status_code=response.status_code,
        )
    return data


async def fetch_bytes(
    client: httpx.AsyncClient,
    url: str,
    *,
    label: str = "media",
    provider: str | None = None,
    **kwargs: Any,
) -> tuple[bytes, str | None]:
    """Download binary content; returns (bytes, content-type)."""
    try:
        response = await client.get(url, **kwargs)
    except httpx.HTTPError as e:
        raise TransportError(f"Failed to fetch {label}: {e}", provider=provider) from e

    if response.is_error:
        raise TransportError(
            f"Failed to fetch {label}: {response.status_code}",
            provider=provider,
            status_code=response.status_code,
        )

    content_type = response.headers.get("content-type")
    if content_type:
        content_type = content_type.split(";")[0].strip()
    return response.content, content_type
