"""Tests for the HTTP surface (FastAPI TestClient)."""

import json

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from pydantic import SecretStr

from imagio.clients.llm_client import LLMClient
from imagio.clients.ocr_client import OcrResult
from imagio.core.lifespan import lifespan
from imagio.core.settings import LLMSettings
from imagio.main import create_app
from imagio.media.materializer import Materializer
from imagio.orchestrator import GenerationFacade
from imagio.registry import MODELS, ModelRegistry
from imagio.session import InMemorySessionStore


class FakeOcrEngine:
    def __init__(self, text):
        self.text = text
        self.calls = []

    async def recognize(self, image_path, params):
        self.calls.append((image_path, params))
        return OcrResult(text=self.text, processed_image_path="/tmp/processed.png")


class Upstream:
    """Routes every outbound request to a swappable handler."""

    def __init__(self):
        self.handler = lambda request: httpx.Response(500)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        return self.handler(request)


@pytest.fixture
def upstream():
    return Upstream()


@pytest.fixture
def ocr_engine():
    return FakeOcrEngine("first line\nsecond line\n\nnext paragraph")


@pytest.fixture
def client(upstream, store, provider_config, ocr_engine):
    app = create_app()
    with TestClient(app) as test_client:
        http = httpx.AsyncClient(transport=httpx.MockTransport(upstream))
        registry = ModelRegistry(http, Materializer(http, store), provider_config)
        app.state.registry = registry
        app.state.media_store = store
        app.state.sessions = InMemorySessionStore()
        app.state.facade = GenerationFacade(registry, sink=app.state.sessions)
        app.state.llm_client = LLMClient(
            http,
            LLMSettings(LLM_BASE_URL="https://llm.test/v1", LLM_API_KEY=SecretStr(""), LLM_MODEL="m"),
        )
        app.state.ocr_engine = ocr_engine
        yield test_client


def _images_response(png_b64):
    return lambda request: httpx.Response(
        200, json={"data": [{"b64_json": png_b64}], "usage": {"total_tokens": 7}}
    )


class TestHealth:
    """Tests for health and model listing."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["providers"] == len(MODELS)
        assert "X-Trace-ID" in response.headers

    def test_models(self, client):
        models = {m["id"]: m for m in client.get("/v1/models").json()}
        assert models["midjourney-fast"]["mode"] == "interactive_task"
        assert models["flux-bfl"]["provider"] == "BFL"


class TestGenerations:
    """Tests for generation endpoints."""

    def test_generate_and_fetch_asset(self, client, upstream, png_b64, png_bytes):
        upstream.handler = _images_response(png_b64)

        response = client.post(
            "/v1/generations", json={"slot": "a", "model": "nano-banana", "prompt": "a red fox"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["slot"] == "a"
        assert body["mode"] == "immediate_batch"
        assert body["provider"] == "BLTCY"
        assert body["usage"]["total_tokens"] == 7
        assert body["progress"][0] == "Generating with nano-banana"
        asset = body["assets"][0]
        assert asset["mime_type"] == "image/png"

        download = client.get(asset["url"])
        assert download.status_code == 200
        assert download.content == png_bytes
        assert download.headers["content-type"] == "image/png"

    def test_unknown_model(self, client):
        response = client.post("/v1/generations", json={"model": "nope", "prompt": "p"})
        assert response.status_code == 404
        assert response.json()["code"] == "HTTP_404"

    def test_validation_error(self, client):
        response = client.post("/v1/generations", json={"model": "nano-banana", "prompt": "p", "count": 9})
        assert response.status_code == 422
        problem = response.json()
        assert problem["code"] == "VALIDATION_ERROR"
        assert problem["detail"].startswith("count")

    def test_blank_prompt_rejected(self, client, upstream):
        calls = []
        upstream.handler = lambda request: calls.append(request) or httpx.Response(500)

        response = client.post("/v1/generations", json={"model": "dall-e-3", "prompt": "   "})

        assert response.status_code == 422
        problem = response.json()
        assert problem["code"] == "VALIDATION_ERROR"
        assert problem["detail"].startswith("prompt")
        assert "blank" in problem["detail"]
        assert calls == []

    def test_provider_error_is_problem_detail(self, client, upstream):
        upstream.handler = lambda request: httpx.Response(402, text="no credits")

        response = client.post("/v1/generations", json={"model": "dall-e-3", "prompt": "p"})

        assert response.status_code == 402
        problem = response.json()
        assert problem["code"] == "INSUFFICIENT_CREDITS"
        assert problem["title"] == "Insufficient credits. Please check your BLTCY account balance."
        assert problem["instance"] == "/v1/generations"
        assert problem["trace_id"] == response.headers["X-Trace-ID"]

    def test_action_on_non_interactive_model(self, client):
        response = client.post(
            "/v1/generations/actions",
            json={"model": "nano-banana", "task_id": "t", "action_id": "MJ::U1"},
        )
        assert response.status_code == 502
        assert response.json()["code"] == "REQUEST_FAILED"

    def test_cancel_idle_slot(self, client):
        response = client.post("/v1/generations/main/cancel")
        assert response.json() == {"slot": "main", "cancelled": False}

    def test_clear_slot_revokes_assets(self, client, upstream, png_b64):
        upstream.handler = _images_response(png_b64)
        asset_url = client.post(
            "/v1/generations", json={"slot": "b", "model": "nano-banana", "prompt": "p"}
        ).json()["assets"][0]["url"]

        assert client.delete("/v1/slots/b").status_code == 204
        assert client.get(asset_url).status_code == 404


class TestPrompts:
    """Tests for OCR and prompt optimization endpoints."""

    def test_ocr_reflows_text(self, client, ocr_engine):
        response = client.post(
            "/v1/ocr", json={"image_path": "/tmp/scan.png", "params": {"binarizationMethod": "otsu"}}
        )

        assert response.status_code == 200
        assert response.json() == {
            "text": "first line second line\n\nnext paragraph",
            "processed_image_path": "/tmp/processed.png",
        }
        assert ocr_engine.calls[0][1].binarization_method == "otsu"

    def test_ocr_without_reflow(self, client):
        response = client.post("/v1/ocr", json={"image_path": "/tmp/scan.png", "reflow": False})
        assert response.json()["text"] == "first line\nsecond line\n\nnext paragraph"

    def test_optimize_streams_text(self, client, upstream):
        frames = [{"choices": [{"delta": {"content": part}}]} for part in ["A foggy ", "harbor"]]
        wire = "".join(f"data: {json.dumps(f)}\n\n" for f in frames) + "data: [DONE]\n\n"
        upstream.handler = lambda request: httpx.Response(200, content=wire.encode())

        response = client.post("/v1/prompts/optimize", json={"text": "harbor"})

        assert response.status_code == 200
        assert response.text == "A foggy harbor"

    def test_optimize_without_streaming(self, client, upstream):
        upstream.handler = lambda request: httpx.Response(
            200, json={"choices": [{"message": {"content": "A foggy harbor"}}]}
        )

        response = client.post("/v1/prompts/optimize?stream=false", json={"text": "harbor"})

        assert response.text == "A foggy harbor"

    def test_optimize_upstream_failure(self, client, upstream):
        upstream.handler = lambda request: httpx.Response(429, text="slow down")

        response = client.post("/v1/prompts/optimize", json={"text": "harbor"})

        assert response.status_code == 429
        assert response.json()["code"] == "RATE_LIMITED"


class TestLifespan:
    """Tests for startup and shutdown wiring."""

    @pytest.mark.asyncio
    async def test_http_client_closed_when_shutdown_fails(self):
        class StuckFacade:
            async def shutdown(self):
                raise RuntimeError("stuck")

        app = FastAPI()
        with pytest.raises(RuntimeError):
            async with lifespan(app):
                http_client = app.state.http_client
                app.state.facade = StuckFacade()

        assert http_client.is_closed
