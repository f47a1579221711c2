"""Unit tests for the per-slot generation facade."""

import asyncio

import httpx
import pytest

from imagio.core.exceptions import ClassifiedError
from imagio.errors.codes import ErrorCode
from imagio.media.materializer import Materializer
from imagio.models.dto import GenerationResult, JobRequest
from imagio.orchestrator import GenerationFacade, SlotState
from imagio.registry import ModelRegistry
from imagio.session import InMemorySessionStore


class _Backend:
    """Images API stand-in; each generation returns one inline PNG.

    When `gate` is set, generation requests wait for it before answering.
    """

    def __init__(self, png_b64):
        self.png_b64 = png_b64
        self.gate = None
        self.requests = 0
        self.started = asyncio.Event()

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests += 1
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        return httpx.Response(200, json={"data": [{"b64_json": self.png_b64}]})


@pytest.fixture
def backend(png_b64):
    return _Backend(png_b64)


@pytest.fixture
def sessions():
    return InMemorySessionStore()


@pytest.fixture
def facade(backend, store, provider_config, sessions):
    client = httpx.AsyncClient(transport=httpx.MockTransport(backend))
    registry = ModelRegistry(client, Materializer(client, store), provider_config)
    return GenerationFacade(registry, sink=sessions)


def _request(prompt="a cat"):
    return JobRequest(model="nano-banana", prompt=prompt)


class TestSubmit:
    """Tests for submission and the slot state machine."""

    @pytest.mark.asyncio
    async def test_success_notifies_sink_once(self, facade, sessions):
        task = facade.submit("main", _request())
        assert facade.state("main") is SlotState.IN_FLIGHT

        result = await task

        assert isinstance(result, GenerationResult)
        assert facade.state("main") is SlotState.TERMINAL
        assert facade.slot("main").result is result
        assert len(sessions.history) == 1
        assert sessions.latest("main").outcome is result
        assert sessions.latest("main").succeeded

    @pytest.mark.asyncio
    async def test_busy_slot_ignores_submission(self, facade, backend):
        backend.gate = asyncio.Event()
        first = facade.submit("main", _request())
        await backend.started.wait()

        assert facade.submit("main", _request("another")) is None
        assert facade.is_busy("main")

        backend.gate.set()
        await first
        assert backend.requests == 1

    @pytest.mark.asyncio
    async def test_slots_are_independent(self, facade):
        first = facade.submit("left", _request())
        second = facade.submit("right", _request())
        assert first is not None and second is not None
        await asyncio.gather(first, second)

    @pytest.mark.asyncio
    async def test_new_result_revokes_previous(self, facade):
        first = await facade.submit("main", _request())
        old_path = first.assets[0].handle.path
        assert old_path.exists()

        second = await facade.submit("main", _request())

        assert first.assets[0].handle.revoked
        assert not old_path.exists()
        assert second.assets[0].handle.path.exists()
        assert facade.slot("main").result is second

    @pytest.mark.asyncio
    async def test_failure_notifies_sink_and_keeps_previous_result(self, facade, sessions):
        first = await facade.submit("main", _request())

        with pytest.raises(ClassifiedError) as exc_info:
            await facade.submit("main", JobRequest(model="no-such-model", prompt="p"))

        assert exc_info.value.code is ErrorCode.REQUEST_FAILED
        assert facade.state("main") is SlotState.TERMINAL
        assert facade.slot("main").error is exc_info.value
        assert facade.slot("main").result is first
        assert not first.assets[0].handle.revoked
        assert sessions.latest("main").outcome is exc_info.value
        assert len(sessions.history) == 2

    @pytest.mark.asyncio
    async def test_unclassified_failure_names_backend(self, store, provider_config, sessions):
        def handler(request):
            raise RuntimeError("socket exploded")

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        facade = GenerationFacade(ModelRegistry(client, Materializer(client, store), provider_config), sessions)

        with pytest.raises(ClassifiedError) as exc_info:
            await facade.submit("main", _request())

        assert exc_info.value.code is ErrorCode.UNKNOWN
        assert exc_info.value.message == "BLTCY API error: socket exploded"
        assert exc_info.value.details["provider"] == "BLTCY"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "model, payload",
        [
            ("dall-e-3", {"choices": ["x"]}),
            ("dall-e-3", {"choices": [{"message": "x"}]}),
            ("nano-banana-gemini", {"candidates": [{"content": {"parts": ["x"]}}]}),
        ],
    )
    async def test_mistyped_body_is_malformed(self, store, provider_config, sessions, model, payload):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200, json=payload)))
        facade = GenerationFacade(ModelRegistry(client, Materializer(client, store), provider_config), sessions)

        with pytest.raises(ClassifiedError) as exc_info:
            await facade.submit("main", JobRequest(model=model, prompt="p"))

        assert exc_info.value.code is ErrorCode.MALFORMED_RESPONSE

    @pytest.mark.asyncio
    async def test_progress_callback_errors_are_contained(self, facade):
        def explode(event):
            raise RuntimeError("ui gone")

        result = await facade.submit("main", _request(), on_progress=explode)
        assert result.assets

    @pytest.mark.asyncio
    async def test_sink_errors_are_contained(self, backend, store, provider_config):
        class BrokenSink:
            def notify(self, slot, outcome):
                raise RuntimeError("db down")

        client = httpx.AsyncClient(transport=httpx.MockTransport(backend))
        facade = GenerationFacade(ModelRegistry(client, Materializer(client, store), provider_config), BrokenSink())

        result = await facade.submit("main", _request())
        assert result.assets

    @pytest.mark.asyncio
    async def test_action_on_batch_model_rejected(self, facade, backend):
        with pytest.raises(ClassifiedError) as exc_info:
            await facade.submit_action("main", "nano-banana", "task-1", "MJ::U1")
        assert exc_info.value.code is ErrorCode.REQUEST_FAILED
        assert backend.requests == 0


class TestCancelAndClear:
    """Tests for cancellation, clearing and shutdown."""

    @pytest.mark.asyncio
    async def test_cancel_discards_late_result(self, facade, backend, store, sessions):
        backend.gate = asyncio.Event()
        task = facade.submit("main", _request())
        await backend.started.wait()

        assert facade.cancel("main", "user cancelled")
        backend.gate.set()

        with pytest.raises(ClassifiedError) as exc_info:
            await task
        assert exc_info.value.code is ErrorCode.CANCELLED
        assert exc_info.value.message == "user cancelled"
        assert store.live_handles() == []
        assert sessions.latest("main").outcome.code is ErrorCode.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_idle_slot(self, facade):
        assert facade.cancel("main") is False

    @pytest.mark.asyncio
    async def test_clear_revokes_assets(self, facade, store):
        result = await facade.submit("main", _request())
        facade.clear("main")

        assert result.assets[0].handle.revoked
        assert facade.state("main") is SlotState.IDLE
        assert store.live_handles() == []

    @pytest.mark.asyncio
    async def test_clear_while_in_flight(self, facade, backend, store):
        backend.gate = asyncio.Event()
        task = facade.submit("main", _request())
        await backend.started.wait()

        facade.clear("main")
        backend.gate.set()

        with pytest.raises(ClassifiedError):
            await task
        assert facade.state("main") is SlotState.IDLE
        assert store.live_handles() == []

    @pytest.mark.asyncio
    async def test_shutdown_cancels_and_revokes(self, facade, backend, store):
        done = await facade.submit("left", _request())
        backend.gate = asyncio.Event()
        backend.started.clear()
        pending = facade.submit("right", _request())
        await backend.started.wait()

        shutdown = asyncio.create_task(facade.shutdown())
        await asyncio.sleep(0)
        backend.gate.set()
        await shutdown

        assert pending.done()
        assert done.assets[0].handle.revoked
        assert store.live_handles() == []
        assert facade.state("left") is SlotState.IDLE
