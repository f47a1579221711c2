"""Unit tests for the Seedream event-stream adapter."""

import json

import httpx
import pytest

from imagio.adapters.stream import SeedreamStreamAdapter
from imagio.clients.http import ProviderHttp
from imagio.core.exceptions import ClassifiedError
from imagio.errors.codes import ErrorCode
from imagio.media.materializer import Materializer
from imagio.models.dto import JobRequest, ProtocolMode
from imagio.resilience.cancellation import CancellationToken


def _sse(*frames, sentinel=True) -> bytes:
    lines = [f"data: {json.dumps(frame)}\n\n" for frame in frames]
    if sentinel:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode("utf-8")


def _adapter(handler, store):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    http = ProviderHttp(client, provider="BLTCY", base_url="https://bltcy.test", api_key="k")
    adapter = SeedreamStreamAdapter(http, Materializer(client, store), api_model="doubao-seedream-4-0-250828")
    return adapter, client


class TestSeedreamStreamAdapter:
    """Tests for streamed generation."""

    @pytest.mark.asyncio
    async def test_last_frame_is_the_result(self, store, png_bytes, jpeg_bytes):
        seen = {}
        stream = _sse(
            {"data": [], "usage": {"total_tokens": 100}},
            {"data": [{"url": "https://cdn.test/draft.png"}], "usage": {"total_tokens": 200}},
            {
                "data": [{"url": "https://cdn.test/1.png"}, {"url": "https://cdn.test/2.jpg"}],
                "usage": {"prompt_tokens": 5, "total_tokens": 300},
            },
        )
        downloads = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/v1/images/generations":
                seen["accept"] = request.headers["Accept"]
                seen["body"] = json.loads(request.content)
                return httpx.Response(200, content=stream, headers={"Content-Type": "text/event-stream"})
            downloads.append(request.url.path)
            return httpx.Response(200, content=jpeg_bytes if request.url.path.endswith(".jpg") else png_bytes)

        adapter, client = _adapter(handler, store)
        events = []
        async with client:
            result = await adapter.submit(
                JobRequest(model="doubao-seedream-4-0", prompt="a city", count=2, size="2K"),
                events.append,
                CancellationToken(),
            )

        body = seen["body"]
        assert seen["accept"] == "text/event-stream"
        assert body["stream"] is True
        assert body["n"] == "2"
        assert body["sequential_image_generation"] == "auto"
        assert body["size"] == "2K"
        assert downloads == ["/1.png", "/2.jpg"]
        assert [a.mime_type for a in result.assets] == ["image/png", "image/jpeg"]
        assert result.usage.total_tokens == 300
        assert result.handle.mode is ProtocolMode.EVENT_STREAM

        messages = [e.message for e in events]
        assert messages[0] == "Preparing to generate 2 images..."
        assert "Progress: 100 tokens used" in messages
        assert "Progress: 300 tokens used" in messages
        assert "Stream completed" in messages

    @pytest.mark.asyncio
    async def test_single_image_body_has_no_n(self, store, png_b64):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, content=_sse({"data": [{"b64_json": png_b64}]}, sentinel=False))

        adapter, client = _adapter(handler, store)
        async with client:
            result = await adapter.submit(JobRequest(model="m", prompt="p"), None, CancellationToken())

        assert "n" not in bodies[0]
        assert bodies[0]["watermark"] is True
        assert len(result.assets) == 1

    @pytest.mark.asyncio
    async def test_no_frames_is_malformed(self, store):
        adapter, client = _adapter(lambda r: httpx.Response(200, content=b": ping\n\ndata: [DONE]\n\n"), store)
        async with client:
            with pytest.raises(ClassifiedError) as exc_info:
                await adapter.submit(JobRequest(model="m", prompt="p"), None, CancellationToken())

        assert exc_info.value.code is ErrorCode.MALFORMED_RESPONSE
        assert "stream ended without image data" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_error_status_classified(self, store):
        adapter, client = _adapter(lambda r: httpx.Response(401, text="bad key"), store)
        async with client:
            with pytest.raises(ClassifiedError) as exc_info:
                await adapter.submit(JobRequest(model="m", prompt="p"), None, CancellationToken())
        assert exc_info.value.code is ErrorCode.INVALID_CREDENTIALS

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, store):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, content=b"")

        adapter, client = _adapter(handler, store)
        token = CancellationToken()
        token.cancel()
        async with client:
            with pytest.raises(ClassifiedError) as exc_info:
                await adapter.submit(JobRequest(model="m", prompt="p"), None, token)
        assert exc_info.value.code is ErrorCode.CANCELLED
        assert calls == []
