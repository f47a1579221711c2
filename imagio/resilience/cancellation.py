"""Cooperative cancellation for generation jobs.

A CancellationToken is checked at every suspension point of a job (poll
sleep, stream pull, remote fetch). Once cancelled, the next suspension point
raises ClassifiedError(CANCELLED). Requests already on the wire are left to
complete and their results are discarded.

Example:
    >>> token = CancellationToken()
    >>> await token.sleep(0.5)       # returns after 0.5s
    >>> token.cancel()
    >>> await token.sleep(0.5)       # raises ClassifiedError(CANCELLED)
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Optional, TypeVar

from imagio.core.exceptions import ClassifiedError
from imagio.errors.codes import ErrorCode

T = TypeVar("T")


class CancellationToken:
    """One-shot cancellation signal shared by a job's suspension points."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: Optional[str] = None) -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ClassifiedError(ErrorCode.CANCELLED, self.reason)

    async def sleep(self, seconds: float) -> None:
        """Sleep for `seconds` unless cancelled first."""
        self.raise_if_cancelled()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        self.raise_if_cancelled()

    async def race(self, awaitable: Awaitable[T]) -> T:
        """Await `awaitable` unless the token fires first.

        Used for waits that send nothing, such as pulling the next chunk of
        an already open stream.
        """
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            self.raise_if_cancelled()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
        if self.cancelled:
            if task.done() and not task.cancelled():
                task.exception()  # mark retrieved; the result is discarded
            raise ClassifiedError(ErrorCode.CANCELLED, self.reason)
        return task.result()
