"""Tests for the HTTP API."""

import base64

import httpx
import pytest
from fastapi.testclient import TestClient

from mediaforge.api.deps import get_generation_service
from mediaforge.api.generate import JobBoard
from mediaforge.main import create_app
from mediaforge.schemas.generation import JobState, JobStatus
from mediaforge.services.generation import GenerationService

OPERATION = "models/veo-3.1-generate-preview/operations/xyz"
IMAGE = b"\x89PNG\r\n\x1a\napi"


class ProviderStub:
    """Answers Gemini image, Veo and fal Kling calls; counts Veo polls."""

    def __init__(self, veo_states=("running", "running", "done"), gemini_status=200, veo_poll_status=200):
        self.veo_poll_status = veo_poll_status
        self.veo_states = list(veo_states)
        self.gemini_status = gemini_status
        self.veo_polls = 0
        self.gemini_calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.endswith(":generateContent"):
            self.gemini_calls += 1
            if self.gemini_status != 200:
                return httpx.Response(self.gemini_status, text="upstream broke")
            return httpx.Response(200, json={"candidates": [{"content": {"parts": [
                {"inlineData": {"mimeType": "image/png", "data": base64.b64encode(IMAGE).decode()}},
            ]}}]})
        if path.endswith(":predictLongRunning"):
            return httpx.Response(200, json={"name": OPERATION})
        if request.url.host == "queue.fal.run":
            return httpx.Response(200, json={"video": {"url": "https://cdn.test/k.mp4"}})
        if request.url.host == "cdn.test":
            return httpx.Response(200, content=b"kling-video")

        self.veo_polls += 1
        if self.veo_poll_status != 200:
            return httpx.Response(self.veo_poll_status, text="not found")
        state = self.veo_states.pop(0) if len(self.veo_states) > 1 else self.veo_states[0]
        if state == "running":
            return httpx.Response(200, json={"done": False})
        return httpx.Response(200, json={
            "done": True,
            "response": {"generatedSamples": [{"video": {"uri": "https://g/video.mp4"}}]},
        })


async def _no_sleep(seconds):
    return None


@pytest.fixture
def stub():
    return ProviderStub()


@pytest.fixture
def service(stub):
    return GenerationService(
        client=httpx.AsyncClient(transport=httpx.MockTransport(stub)), sleep=_no_sleep,
    )


@pytest.fixture
def app(service):
    app = create_app()
    app.dependency_overrides[get_generation_service] = lambda: service
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_list_models(client):
    body = client.get("/api/models").json()
    assert body["total"] == 5

    videos = client.get("/api/models", params={"media_kind": "video"}).json()
    assert {m["provider"] for m in videos["models"]} == {"kling-2.6-pro", "wan-2.6", "veo-3.1"}


def test_list_models_rejects_unknown_media_kind(client):
    assert client.get("/api/models", params={"media_kind": "audio"}).status_code == 400


def test_repair_selection(client):
    resp = client.post(
        "/api/models/veo-3.1/repair",
        json={"duration": 5, "aspect_ratio": "1:1", "resolution": "1080p"},
    )

    assert resp.status_code == 200
    assert resp.json() == {"duration": 4, "aspect_ratio": "16:9", "resolution": "1080p"}


def test_repair_unknown_provider(client):
    assert client.post("/api/models/sora/repair", json={}).status_code == 404


def test_generate_image(client):
    resp = client.post("/api/generate", json={"prompt": "a kite", "aspect_ratio": "4:3"})

    assert resp.status_code == 200
    result = resp.json()["results"][0]
    assert base64.b64decode(result["data"]) == IMAGE
    assert result["mime_type"] == "image/png"
    assert result["provider"] == "nanobanana-pro"


def test_generate_image_with_reference(client, stub):
    ref = {"data": base64.b64encode(b"ref-bytes").decode(), "strength": "high"}
    resp = client.post("/api/generate", json={"prompt": "like this", "reference_images": [ref]})

    assert resp.status_code == 200
    assert stub.gemini_calls == 1


def test_generate_image_rejects_bad_reference(client):
    resp = client.post(
        "/api/generate",
        json={"prompt": "x", "reference_images": [{"data": "%%%not-base64%%%"}]},
    )
    assert resp.status_code == 400


def test_generate_image_blank_prompt(client):
    resp = client.post("/api/generate", json={"prompt": "  "})

    assert resp.status_code == 400
    assert "Prompt is required" in resp.json()["detail"]


def test_generate_image_with_video_model(client):
    resp = client.post("/api/generate", json={"prompt": "x", "model": "veo-3.1"})
    assert resp.status_code == 400


def test_upstream_failure_maps_to_502(client, stub):
    stub.gemini_status = 500

    resp = client.post("/api/generate", json={"prompt": "a kite"})

    assert resp.status_code == 502
    assert stub.gemini_calls == 3


def test_sync_video_returns_result(client):
    resp = client.post("/api/generate-video", json={"prompt": "a drone shot", "duration": 10})

    assert resp.status_code == 200
    result = resp.json()["result"]
    assert base64.b64decode(result["data"]) == b"kling-video"
    assert result["duration"] == 10
    assert result["has_audio"] is True


def test_async_video_job_flow(client, stub):
    resp = client.post(
        "/api/generate-video",
        json={"prompt": "a drone shot", "model": "veo-3.1", "duration": 8},
    )
    assert resp.status_code == 200
    job_id = resp.json()["job_id"]
    assert job_id == OPERATION

    statuses = [
        client.get("/api/generate-video/status", params={"job_id": job_id}).json()
        for _ in range(4)
    ]

    assert [s["status"] for s in statuses] == ["processing", "processing", "completed", "completed"]
    assert statuses[0]["progress"] is None
    assert statuses[2]["result"]["url"] == "https://g/video.mp4"
    assert statuses[3] == statuses[2]
    assert stub.veo_polls == 3


def test_status_for_unseen_job_resumes_polling(client, stub):
    stub.veo_states = ["done"]

    resp = client.get("/api/generate-video/status", params={"job_id": "operations/other"})

    assert resp.status_code == 200
    assert resp.json()["status"] == "completed"


def test_status_requires_job_id(client):
    assert client.get("/api/generate-video/status", params={"job_id": ""}).status_code == 400


def test_status_for_unknown_job_is_not_tracked(app, client, stub):
    stub.veo_poll_status = 404

    resp = client.get("/api/generate-video/status", params={"job_id": "operations/bogus"})

    assert resp.status_code == 502
    assert len(app.state.job_board) == 0


def test_resumed_job_is_tracked_after_answer(app, client, stub):
    stub.veo_states = ["running"]

    client.get("/api/generate-video/status", params={"job_id": "operations/live"})

    assert app.state.job_board.live("operations/live") is not None


def test_job_board_evicts_least_recent_entries(service):
    board = JobBoard(max_entries=2)
    for name in ("a", "b", "c"):
        board.settle(name, JobStatus(job_id=name, state=JobState.COMPLETED, progress=100))

    assert board.finished("a") is None
    assert board.finished("b") is not None
    assert board.finished("c") is not None

    first, second, third = (service.resume_job("veo-3.1", f"operations/{n}") for n in "xyz")
    board.add(first)
    board.add(second)
    board.live("operations/x")  # touch: y is now the oldest
    board.add(third)

    assert board.live("operations/x") is first
    assert board.live("operations/y") is None
    assert board.live("operations/z") is third
    assert len(board) == 4


def test_job_board_size_comes_from_settings(monkeypatch):
    from mediaforge.config import get_settings

    monkeypatch.setenv("JOB_BOARD_MAX_ENTRIES", "3")
    get_settings.cache_clear()

    assert JobBoard().max_entries == 3
