"""Pytest configuration and fixtures.

No test touches the network: provider traffic goes through
``httpx.MockTransport`` and every wait goes through a recording fake sleep.
"""

from __future__ import annotations

from typing import Callable

import httpx
import pytest

from mediaforge.config import get_settings


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSleep:
    """Records requested delays instead of waiting; optionally drives a clock."""

    def __init__(self, clock: FakeClock | None = None):
        self.calls: list[float] = []
        self.clock = clock

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.clock is not None:
            self.clock.advance(seconds)


@pytest.fixture(autouse=True)
def provider_keys(monkeypatch):
    """Deterministic settings: fake API keys, default retry and poll policy."""
    monkeypatch.setenv("FAL_API_KEY", "test-fal-key")
    monkeypatch.setenv("GOOGLE_API_KEY", "test-google-key")
    for name in ("RETRY_MAX_ATTEMPTS", "RETRY_DELAYS", "POLL_INTERVAL", "POLL_MAX_ATTEMPTS", "POLL_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep(clock) -> FakeSleep:
    return FakeSleep(clock)


@pytest.fixture
def mock_http() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Factory: an AsyncClient whose requests are answered by ``handler``."""

    def make(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return make
