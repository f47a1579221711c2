"""
Generation facade: the single external contract of the job client.

    facade.submit(slot, request, on_progress) -> asyncio.Task | None

Each slot runs at most one job at a time:

    IDLE --submit--> IN_FLIGHT --result/error--> TERMINAL --submit--> IN_FLIGHT

A submission while IN_FLIGHT is a synchronous no-op returning None. The
task resolves to a GenerationResult or raises a ClassifiedError, and the
session sink is notified exactly once either way. A successful result
supersedes (and revokes) the slot's previous one.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from imagio.adapters.base import ProgressCallback, ProviderAdapter
from imagio.core.exceptions import ClassifiedError
from imagio.errors.classifier import classify
from imagio.errors.codes import ErrorCode
from imagio.models.dto import GenerationResult, JobRequest, ProgressEvent
from imagio.registry import ModelRegistry
from imagio.resilience.cancellation import CancellationToken
from imagio.session import Outcome, SessionSink

logger = logging.getLogger(__name__)

JobRunner = Callable[[ProviderAdapter, ProgressCallback, CancellationToken], Awaitable[GenerationResult]]


class SlotState(str, Enum):
    IDLE = "idle"
    IN_FLIGHT = "in_flight"
    TERMINAL = "terminal"


@dataclass
class Slot:
    """Mutable per-slot bookkeeping owned by the facade."""

    name: str
    state: SlotState = SlotState.IDLE
    task: Optional[asyncio.Task] = None
    token: Optional[CancellationToken] = None
    result: Optional[GenerationResult] = None
    error: Optional[ClassifiedError] = None


class _ProgressRelay:
    """Forwards progress in order and drops anything after close."""

    def __init__(self, callback: Optional[ProgressCallback], slot: str):
        self._callback = callback
        self._slot = slot
        self._closed = False

    def __call__(self, event: ProgressEvent) -> None:
        if self._closed or self._callback is None:
            return
        try:
            self._callback(event)
        except Exception:
            logger.exception("Progress callback failed", extra={"slot": self._slot})

    def close(self) -> None:
        self._closed = True


class GenerationFacade:
    """Per-slot job orchestration over the model registry.

    Args:
        registry: Resolves model ids to adapters
        sink: Receives every terminal outcome
    """

    def __init__(self, registry: ModelRegistry, sink: Optional[SessionSink] = None):
        self.registry = registry
        self.sink = sink
        self._slots: dict[str, Slot] = {}

    def slot(self, name: str) -> Slot:
        return self._slots.setdefault(name, Slot(name))

    def state(self, name: str) -> SlotState:
        existing = self._slots.get(name)
        return existing.state if existing else SlotState.IDLE

    def is_busy(self, name: str) -> bool:
        return self.state(name) is SlotState.IN_FLIGHT

    def submit(
        self,
        slot: str,
        request: JobRequest,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Optional[asyncio.Task]:
        """Start one generation job on `slot`; None when the slot is busy."""

        async def runner(adapter: ProviderAdapter, progress: ProgressCallback, token: CancellationToken):
            return await adapter.submit(request, progress, token)

        return self._start(slot, request.model, runner, on_progress)

    def submit_action(
        self,
        slot: str,
        model: str,
        task_id: str,
        action_id: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Optional[asyncio.Task]:
        """Start a follow-up action on an interactive task; None when busy."""

        async def runner(adapter: ProviderAdapter, progress: ProgressCallback, token: CancellationToken):
            return await adapter.submit_action(task_id, action_id, progress, token)

        return self._start(slot, model, runner, on_progress)

    def cancel(self, slot: str, reason: Optional[str] = None) -> bool:
        """Trigger the in-flight job's token. Returns False when idle."""
        existing = self._slots.get(slot)
        if existing is None or existing.state is not SlotState.IN_FLIGHT or existing.token is None:
            return False
        existing.token.cancel(reason or "Generation cancelled")
        logger.info("Cancellation requested", extra={"slot": slot})
        return True

    def clear(self, slot: str) -> None:
        """Forget the slot: cancel its job and revoke its assets."""
        existing = self._slots.pop(slot, None)
        if existing is None:
            return
        if existing.token is not None:
            existing.token.cancel("Slot cleared")
        if existing.result is not None:
            existing.result.revoke_all()
        logger.info("Slot cleared", extra={"slot": slot})

    async def shutdown(self) -> None:
        """Cancel every in-flight job, wait for them, revoke all assets."""
        slots = list(self._slots.values())
        tasks = []
        for slot in slots:
            if slot.token is not None:
                slot.token.cancel("Shutting down")
            if slot.task is not None and not slot.task.done():
                tasks.append(slot.task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        for slot in slots:
            if slot.result is not None:
                slot.result.revoke_all()
        self._slots.clear()
        revoked = self.registry.materializer.store.revoke_all()
        logger.info("Facade shut down: %d job(s) cancelled, %d orphaned handle(s) revoked", len(tasks), revoked)

    def _start(
        self,
        name: str,
        model: str,
        runner: JobRunner,
        on_progress: Optional[ProgressCallback],
    ) -> Optional[asyncio.Task]:
        slot = self.slot(name)
        if slot.state is SlotState.IN_FLIGHT:
            logger.info("Slot busy; submission ignored", extra={"slot": name, "model": model})
            return None

        token = CancellationToken()
        slot.state = SlotState.IN_FLIGHT
        slot.token = token
        slot.error = None
        task = asyncio.get_running_loop().create_task(
            self._run(slot, model, runner, _ProgressRelay(on_progress, name), token)
        )
        task.add_done_callback(_mark_retrieved)
        slot.task = task
        return task

    async def _run(
        self,
        slot: Slot,
        model: str,
        runner: JobRunner,
        progress: _ProgressRelay,
        token: CancellationToken,
    ) -> GenerationResult:
        started = time.monotonic()
        error: Optional[ClassifiedError] = None
        result: Optional[GenerationResult] = None
        provider: Optional[str] = None
        try:
            provider = self.registry.get(model).provider
            adapter = self.registry.adapter_for(model)
            result = await runner(adapter, progress, token)
            if token.cancelled:
                result.revoke_all()
                result = None
                token.raise_if_cancelled()
        except asyncio.CancelledError as exc:
            error = classify(exc)
            self._finish(slot, None, error, model, started)
            raise
        except Exception as exc:
            error = classify(exc, provider=provider)
        finally:
            progress.close()

        self._finish(slot, result, error, model, started)
        if error is not None:
            raise error
        return result

    def _finish(
        self,
        slot: Slot,
        result: Optional[GenerationResult],
        error: Optional[ClassifiedError],
        model: str,
        started: float,
    ) -> None:
        current = self._slots.get(slot.name) is slot
        if result is not None and not current:
            # Slot was cleared while the job ran
            result.revoke_all()

        if current:
            slot.state = SlotState.TERMINAL
            slot.token = None
            if result is not None:
                if slot.result is not None:
                    slot.result.revoke_all()
                slot.result = result
            slot.error = error

        extra = {
            "slot": slot.name,
            "model": model,
            "duration_ms": int((time.monotonic() - started) * 1000),
        }
        if error is None:
            extra["job_id"] = result.handle.job_id if result else None
            logger.info("Job succeeded", extra=extra)
        else:
            extra["error_code"] = error.error_code
            logger.warning("Job failed: %s", error.message, extra=extra)

        self._notify(slot.name, result if error is None else error)

    def _notify(self, slot: str, outcome: Outcome) -> None:
        if self.sink is None:
            return
        try:
            self.sink.notify(slot, outcome)
        except Exception:
            logger.exception("Session sink failed", extra={"slot": slot})


def _mark_retrieved(task: asyncio.Task) -> None:
    # Errors are delivered through the sink; unawaited tasks must not warn.
    if not task.cancelled():
        task.exception()
