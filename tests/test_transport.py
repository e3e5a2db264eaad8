"""Tests for the fixed-schedule retry transport and the httpx helpers."""

import httpx
import pytest

from mediaforge.errors import TransportError
from mediaforge.services.transport import ResilientTransport, fetch_bytes, request_json


class Flaky:
    """Fails the first ``failures`` calls with distinct errors, then returns ``value``."""

    def __init__(self, failures, value="ok"):
        self.failures = failures
        self.value = value
        self.calls = 0
        self.raised = []

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            err = TransportError(f"boom {self.calls}", status_code=503)
            self.raised.append(err)
            raise err
        return self.value


@pytest.mark.asyncio
async def test_succeeds_on_third_attempt_after_fixed_delays(sleep):
    call = Flaky(failures=2)
    transport = ResilientTransport(sleep=sleep)

    assert await transport.execute(call, label="test") == "ok"
    assert call.calls == 3
    assert sleep.calls == [2.0, 4.0]


@pytest.mark.asyncio
async def test_reraises_final_error_unchanged(sleep):
    call = Flaky(failures=5)
    transport = ResilientTransport(sleep=sleep)

    with pytest.raises(TransportError) as exc_info:
        await transport.execute(call, label="test")

    assert call.calls == 3
    assert exc_info.value is call.raised[-1]
    assert exc_info.value.message == "boom 3"
    assert sleep.calls == [2.0, 4.0]


@pytest.mark.asyncio
async def test_first_success_does_not_sleep(sleep):
    transport = ResilientTransport(sleep=sleep)

    assert await transport.execute(Flaky(failures=0, value=42)) == 42
    assert sleep.calls == []


@pytest.mark.asyncio
async def test_retries_any_exception(sleep):
    calls = []

    async def call():
        calls.append(1)
        if len(calls) == 1:
            raise KeyError("weird")
        return "fine"

    assert await ResilientTransport(sleep=sleep).execute(call) == "fine"
    assert sleep.calls == [2.0]


@pytest.mark.asyncio
async def test_single_attempt_budget(sleep):
    call = Flaky(failures=1)
    with pytest.raises(TransportError):
        await ResilientTransport(max_attempts=1, sleep=sleep).execute(call)
    assert sleep.calls == []


def test_delay_schedule_is_fixed_not_multiplied():
    transport = ResilientTransport(max_attempts=5, delays=[2.0, 4.0, 6.0])

    assert [transport.delay_for(n) for n in range(1, 6)] == [2.0, 4.0, 6.0, 6.0, 6.0]


def test_invalid_policy_is_rejected():
    with pytest.raises(ValueError):
        ResilientTransport(max_attempts=0)
    with pytest.raises(ValueError):
        ResilientTransport(delays=[])


def test_policy_comes_from_settings(monkeypatch):
    from mediaforge.config import get_settings

    monkeypatch.setenv("RETRY_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("RETRY_DELAYS", "[1, 1]")
    get_settings.cache_clear()

    transport = ResilientTransport()
    assert transport.max_attempts == 5
    assert transport.delays == (1.0, 1.0)


# ---------------------------------------------------------------------------
# httpx helpers
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_request_json_returns_object(mock_http):
    client = mock_http(lambda request: httpx.Response(200, json={"ok": True}))

    assert await request_json(client, "GET", "https://api.test/x") == {"ok": True}


@pytest.mark.asyncio
async def test_request_json_maps_http_error_status(mock_http):
    client = mock_http(lambda request: httpx.Response(503, text="overloaded"))

    with pytest.raises(TransportError) as exc_info:
        await request_json(client, "POST", "https://api.test/x", label="Fal")

    assert exc_info.value.status_code == 503
    assert exc_info.value.message == "Fal API error: 503 - overloaded"


@pytest.mark.asyncio
async def test_request_json_rejects_non_json_and_non_object(mock_http):
    client = mock_http(lambda request: httpx.Response(200, text="<html>"))
    with pytest.raises(TransportError, match="invalid JSON"):
        await request_json(client, "GET", "https://api.test/x")

    client = mock_http(lambda request: httpx.Response(200, json=[1, 2]))
    with pytest.raises(TransportError, match="expected an object"):
        await request_json(client, "GET", "https://api.test/x")


@pytest.mark.asyncio
async def test_request_json_maps_connection_errors(mock_http):
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(TransportError, match="request failed"):
        await request_json(mock_http(handler), "GET", "https://api.test/x")


@pytest.mark.asyncio
async def test_fetch_bytes_strips_content_type_params(mock_http):
    client = mock_http(lambda request: httpx.Response(
        200, content=b"\x00\x01", headers={"content-type": "video/mp4; codecs=avc1"},
    ))

    assert await fetch_bytes(client, "https://cdn.test/v.mp4") == (b"\x00\x01", "video/mp4")
