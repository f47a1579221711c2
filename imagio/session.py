"""SessionSink protocol: where finished jobs are handed off.

The facade calls `notify` exactly once per job with either the result or
the classified error. Persistence beyond the process is not this package's
concern; InMemorySessionStore keeps the latest outcome per slot.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Protocol, Union

from imagio.core.exceptions import ClassifiedError
from imagio.models.dto import GenerationResult

Outcome = Union[GenerationResult, ClassifiedError]


class SessionSink(Protocol):  # pragma: no cover - contract
    """Receives the terminal outcome of every job."""

    def notify(self, slot: str, outcome: Outcome) -> None: ...


@dataclass(frozen=True)
class SessionRecord:
    slot: str
    outcome: Outcome
    recorded_at: datetime

    @property
    def succeeded(self) -> bool:
        return isinstance(self.outcome, GenerationResult)


class InMemorySessionStore:
    """Latest outcome per slot, plus a running history."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._latest: dict[str, SessionRecord] = {}
        self.history: list[SessionRecord] = []

    def notify(self, slot: str, outcome: Outcome) -> None:
        record = SessionRecord(slot=slot, outcome=outcome, recorded_at=datetime.now(timezone.utc))
        with self._lock:
            self._latest[slot] = record
            self.history.append(record)

    def latest(self, slot: str) -> Optional[SessionRecord]:
        with self._lock:
            return self._latest.get(slot)
