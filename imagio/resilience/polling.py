"""Fixed-cadence polling engine for create-then-poll jobs.

State machine: PENDING -> IN_PROGRESS* -> {READY | FAILED}, bounded by an
attempt budget. Each attempt calls `fetch_status`, reports progress, returns
on a terminal state and otherwise sleeps exactly `interval_seconds`.
Exhausting the budget raises ClassifiedError(TIMEOUT).

Example:
    >>> budget = PollBudget(max_attempts=120, interval_seconds=0.5)
    >>> state = await poll(handle, fetch_status, on_progress, budget=budget)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from imagio.core.exceptions import ClassifiedError
from imagio.core.settings import polling_settings
from imagio.errors.classifier import classify
from imagio.errors.codes import ErrorCode
from imagio.models.dto import JobHandle, PollState, ProgressEvent
from imagio.resilience.cancellation import CancellationToken

logger = logging.getLogger(__name__)

FetchStatus = Callable[[JobHandle], Awaitable[PollState]]
ProgressCallback = Callable[[ProgressEvent], None]

# Failures that may clear up on the next attempt
TRANSIENT_CODES = frozenset({ErrorCode.NETWORK_UNREACHABLE, ErrorCode.RATE_LIMITED})


@dataclass(frozen=True)
class PollBudget:
    """Attempt budget for one poll loop.

    Attributes:
        max_attempts: Maximum number of status fetches
        interval_seconds: Fixed delay between fetches
        max_consecutive_errors: Transient fetch failures tolerated in a row
            before the loop aborts (0 = abort on the first failure)
    """

    max_attempts: int
    interval_seconds: float
    max_consecutive_errors: int = 0

    @property
    def total_seconds(self) -> float:
        return self.max_attempts * self.interval_seconds


def short_budget() -> PollBudget:
    """~60s budget for single-stage jobs."""
    return PollBudget(
        max_attempts=polling_settings.SHORT_POLL_MAX_ATTEMPTS,
        interval_seconds=polling_settings.POLL_INTERVAL_SECONDS,
        max_consecutive_errors=polling_settings.POLL_MAX_CONSECUTIVE_ERRORS,
    )


def long_budget() -> PollBudget:
    """~10 min budget for multi-stage interactive jobs."""
    return PollBudget(
        max_attempts=polling_settings.LONG_POLL_MAX_ATTEMPTS,
        interval_seconds=polling_settings.POLL_INTERVAL_SECONDS,
        max_consecutive_errors=polling_settings.POLL_MAX_CONSECUTIVE_ERRORS,
    )


def _progress_from(state: PollState) -> ProgressEvent:
    message = state.message or state.status.value
    return ProgressEvent(message=message, percent=state.percent)


async def poll(
    handle: JobHandle,
    fetch_status: FetchStatus,
    on_progress: Optional[ProgressCallback],
    *,
    budget: PollBudget,
    token: Optional[CancellationToken] = None,
) -> PollState:
    """Poll `fetch_status` until a terminal state or the budget runs out.

    Args:
        handle: Job being polled
        fetch_status: Coroutine returning the job's current PollState
        on_progress: Called with every fetched state, terminal ones included
        budget: Attempt count and fixed interval
        token: Cancellation token observed before each fetch and while sleeping

    Returns:
        The terminal PollState (READY or FAILED)

    Raises:
        ClassifiedError: TIMEOUT when the budget is exhausted, CANCELLED when
            the token fires, or the classified fetch failure
    """
    token = token or CancellationToken()
    started = time.monotonic()
    consecutive_errors = 0

    for attempt in range(1, budget.max_attempts + 1):
        token.raise_if_cancelled()
        try:
            state = await fetch_status(handle)
        except Exception as exc:
            error = classify(exc, provider=handle.provider)
            consecutive_errors += 1
            tolerated = (
                error.code in TRANSIENT_CODES
                and consecutive_errors <= budget.max_consecutive_errors
                and attempt < budget.max_attempts
            )
            if not tolerated:
                logger.warning(
                    "Polling aborted: %s",
                    error.message,
                    extra={
                        "job_id": handle.job_id,
                        "provider": handle.provider,
                        "attempt": attempt,
                        "error_code": error.error_code,
                    },
                )
                if error is exc:
                    raise
                raise error from exc
            logger.warning(
                "Transient poll failure %d/%d: %s",
                consecutive_errors,
                budget.max_consecutive_errors,
                error.message,
                extra={"job_id": handle.job_id, "attempt": attempt},
            )
            await token.sleep(budget.interval_seconds)
            continue

        # A request already on the wire completes, but its result is dropped.
        token.raise_if_cancelled()
        consecutive_errors = 0

        if on_progress is not None:
            on_progress(_progress_from(state))

        if state.is_terminal:
            logger.info(
                "Job reached %s after %d checks",
                state.status.value,
                attempt,
                extra={
                    "job_id": handle.job_id,
                    "provider": handle.provider,
                    "attempt": attempt,
                    "duration_ms": int((time.monotonic() - started) * 1000),
                },
            )
            return state

        logger.debug(
            "Polling attempt %d/%d: %s",
            attempt,
            budget.max_attempts,
            state.status.value,
            extra={"job_id": handle.job_id},
        )
        if attempt < budget.max_attempts:
            await token.sleep(budget.interval_seconds)

    raise ClassifiedError(
        ErrorCode.TIMEOUT,
        f"Generation timed out after {budget.max_attempts} polling attempts",
        details={"job_id": handle.job_id, "max_attempts": budget.max_attempts},
    )
