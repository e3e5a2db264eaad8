"""End-to-end tests of GenerationService against mocked provider HTTP."""

import base64
import json

import httpx
import pytest

from mediaforge.errors import ProviderError, UnrecognizedResponseError, ValidationError
from mediaforge.schemas.generation import (
    ERROR_PROVIDER,
    GenerationResult,
    JobState,
    MediaKind,
    ProviderId,
    parse_request,
)
from mediaforge.services.generation import GenerationService
from mediaforge.services.job_lifecycle import JobLifecycle

OPERATION = "models/veo-3.1-generate-preview/operations/abc"
VIDEO_URI = "https://generativelanguage.googleapis.com/v1beta/files/abc:download"
IMAGE = b"\x89PNG\r\n\x1a\nservice"


class VeoServer:
    """Fake Generative Language API: one operation that finishes after N polls."""

    def __init__(self, pending_polls=2):
        self.pending_polls = pending_polls
        self.creates = 0
        self.polls = 0
        self.downloads = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.endswith(":predictLongRunning"):
            self.creates += 1
            return httpx.Response(200, json={"name": OPERATION})
        if path.endswith(":generateContent"):
            return httpx.Response(200, json={"candidates": [{"content": {"parts": [
                {"inlineData": {"mimeType": "image/png", "data": base64.b64encode(IMAGE).decode()}},
            ]}}]})
        if path.endswith("/files/abc:download"):
            self.downloads.append(request)
            return httpx.Response(200, content=b"veo-video", headers={"content-type": "video/mp4"})

        self.polls += 1
        if self.polls <= self.pending_polls:
            return httpx.Response(200, json={
                "name": OPERATION, "done": False, "metadata": {"progress": 30 * self.polls},
            })
        return httpx.Response(200, json={
            "name": OPERATION,
            "done": True,
            "response": {"generateVideoResponse": {"generatedSamples": [{"video": {"uri": VIDEO_URI}}]}},
        })


def _service(mock_http, handler, sleep, clock):
    return GenerationService(client=mock_http(handler), sleep=sleep, clock=clock)


def _veo_request(**kwargs):
    return parse_request({
        "prompt": "slow pan over a misty forest",
        "provider": "veo-3.1",
        "media_kind": "video",
        "duration": 8,
        "aspect_ratio": "16:9",
        **kwargs,
    })


@pytest.mark.asyncio
async def test_generate_polls_async_provider_to_completion(mock_http, sleep, clock):
    server = VeoServer(pending_polls=2)
    service = _service(mock_http, server, sleep, clock)

    result = await service.generate(_veo_request())

    assert result.url == VIDEO_URI
    assert result.media_kind == MediaKind.VIDEO
    assert result.duration == 8
    assert result.has_audio is True
    assert server.creates == 1
    assert server.polls == 3
    assert sleep.calls == [5.0, 5.0]


@pytest.mark.asyncio
async def test_submit_returns_started_job_for_async_provider(mock_http, sleep, clock):
    service = _service(mock_http, VeoServer(), sleep, clock)

    outcome = await service.submit(_veo_request())

    assert isinstance(outcome, JobLifecycle)
    assert outcome.handle.job_id == OPERATION
    assert outcome.status.state == JobState.PENDING


@pytest.mark.asyncio
async def test_submit_returns_result_for_sync_provider(mock_http, sleep, clock):
    service = _service(mock_http, VeoServer(), sleep, clock)
    request = parse_request({"prompt": "a red kite", "provider": "nanobanana-pro"})

    outcome = await service.submit(request)

    assert isinstance(outcome, GenerationResult)
    assert outcome.data == IMAGE


@pytest.mark.asyncio
async def test_resume_job_polls_without_restarting(mock_http, sleep, clock):
    server = VeoServer(pending_polls=0)
    service = _service(mock_http, server, sleep, clock)

    lifecycle = service.resume_job("veo-3.1", OPERATION)
    status = await lifecycle.poll_once()

    assert status.state == JobState.COMPLETED
    assert server.creates == 0


@pytest.mark.asyncio
async def test_materialize_downloads_veo_video_with_key(mock_http, sleep, clock):
    server = VeoServer(pending_polls=0)
    service = _service(mock_http, server, sleep, clock)

    result = await service.materialize(await service.generate(_veo_request()))

    assert result.data == b"veo-video"
    assert server.downloads[0].url.params["key"] == "test-google-key"


@pytest.mark.asyncio
async def test_unsupported_selection_is_clamped_before_sending(mock_http, sleep, clock):
    seen = []

    def handler(request):
        seen.append(request)
        return VeoServer(pending_polls=0)(request)

    service = _service(mock_http, handler, sleep, clock)
    await service.start_job(_veo_request(duration=5, aspect_ratio="4:3"))

    params = json.loads(seen[0].content)["parameters"]
    assert params["durationSeconds"] == 4
    assert params["aspectRatio"] == "16:9"


@pytest.mark.asyncio
async def test_start_job_rejects_sync_provider(mock_http, sleep, clock):
    service = _service(mock_http, VeoServer(), sleep, clock)
    request = parse_request({"prompt": "x", "provider": "seedream"})

    with pytest.raises(ValidationError, match="synchronous"):
        await service.start_job(request)


def test_resume_job_rejects_sync_and_unknown_providers(mock_http, sleep, clock):
    service = _service(mock_http, VeoServer(), sleep, clock)

    with pytest.raises(ValidationError):
        service.resume_job("kling-2.6-pro", "r1")
    with pytest.raises(ValidationError, match="Unknown provider"):
        service.resume_job("sora", "r1")


def test_parse_request_reports_validation_errors():
    with pytest.raises(ValidationError, match="Prompt is required"):
        parse_request({"prompt": "   ", "provider": "seedream"})
    with pytest.raises(ValidationError, match="provider"):
        parse_request({"prompt": "x", "provider": "sora"})
    with pytest.raises(ValidationError, match="reference_inputs"):
        parse_request({
            "prompt": "x",
            "provider": "seedream",
            "reference_inputs": [{"data": b"x"}] * 7,
        })
    assert parse_request({"prompt": "x", "provider": "wan-2.6"}).provider == ProviderId.WAN


@pytest.mark.asyncio
async def test_create_response_without_operation_name_is_sent_once(mock_http, sleep, clock):
    posts = []

    def handler(request):
        posts.append(request)
        return httpx.Response(200, json={"metadata": {}})

    service = _service(mock_http, handler, sleep, clock)

    with pytest.raises(UnrecognizedResponseError):
        await service.submit(_veo_request())

    assert len(posts) == 1
    assert sleep.calls == []


@pytest.mark.asyncio
async def test_operation_error_string_fails_job_without_retry(mock_http, sleep, clock):
    polls = []

    def handler(request):
        polls.append(request)
        return httpx.Response(200, json={"name": "operations/x", "error": "quota exceeded"})

    service = _service(mock_http, handler, sleep, clock)
    lifecycle = service.resume_job(ProviderId.VEO, "operations/x")

    status = await lifecycle.poll_once()

    assert status.state == JobState.FAILED
    assert status.error_kind == ERROR_PROVIDER
    assert "quota exceeded" in status.error
    assert len(polls) == 1
    assert sleep.calls == []
    with pytest.raises(ProviderError, match="quota exceeded"):
        lifecycle.result()
