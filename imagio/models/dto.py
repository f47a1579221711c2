"""
Typed contracts shared by adapters, the polling engine and the facade.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from imagio.core.config import MAX_BATCH_COUNT
from imagio.media.store import LocalHandle


class ProtocolMode(str, Enum):
    """Completion protocol a provider speaks."""

    IMMEDIATE_BATCH = "immediate_batch"
    POLLABLE_JOB = "pollable_job"
    INTERACTIVE_TASK = "interactive_task"
    EVENT_STREAM = "event_stream"


class JobRequest(BaseModel):
    """
    One creative request. Immutable once submitted.
    """

    model_config = ConfigDict(frozen=True)

    model: str
    prompt: str = Field(..., min_length=1)
    reference_images: tuple[str, ...] = ()
    count: int = Field(1, ge=1, le=MAX_BATCH_COUNT)
    size: Optional[str] = None
    quality: Optional[str] = None
    aspect_ratio: Optional[str] = None
    watermark: bool = True

    @field_validator("prompt")
    @classmethod
    def _prompt_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("prompt must not be blank")
        return value


@dataclass(frozen=True)
class JobHandle:
    """Provider-assigned job id plus the protocol it was submitted under."""

    job_id: str
    mode: ProtocolMode
    provider: str


class PollStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class PollState:
    """Snapshot of a remote job's status.

    READY carries the raw provider payload, FAILED the provider's reason.
    """

    status: PollStatus
    percent: Optional[float] = None
    message: str = ""
    payload: Optional[dict[str, Any]] = None
    reason: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (PollStatus.READY, PollStatus.FAILED)

    @classmethod
    def pending(cls, message: str = "") -> "PollState":
        return cls(PollStatus.PENDING, message=message)

    @classmethod
    def in_progress(cls, percent: Optional[float], message: str = "") -> "PollState":
        return cls(PollStatus.IN_PROGRESS, percent=percent, message=message)

    @classmethod
    def ready(cls, payload: dict[str, Any], message: str = "") -> "PollState":
        return cls(PollStatus.READY, percent=100.0, message=message, payload=payload)

    @classmethod
    def failed(cls, reason: str, message: str = "") -> "PollState":
        return cls(PollStatus.FAILED, message=message, reason=reason)


@dataclass(frozen=True)
class ProgressEvent:
    """Observational progress update; never required for correctness."""

    message: str
    percent: Optional[float] = None


@dataclass(frozen=True)
class MediaRef:
    """What a provider returned for one media slot."""

    index: int
    url: Optional[str] = None
    b64_data: Optional[str] = None


@dataclass
class MediaAsset:
    """Locally owned media bytes with a revocable handle."""

    data: bytes
    mime_type: str
    handle: LocalHandle
    source_url: Optional[str] = None

    @property
    def asset_id(self) -> str:
        return self.handle.handle_id

    @property
    def size(self) -> int:
        return len(self.data)

    def revoke(self) -> None:
        self.handle.revoke()


@dataclass(frozen=True)
class Usage:
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["Usage"]:
        """Parse snake_case or camelCase usage blocks; None when absent."""
        if not isinstance(payload, dict):
            return None
        return cls(
            prompt_tokens=payload.get("prompt_tokens", payload.get("promptTokens")),
            completion_tokens=payload.get(
                "completion_tokens", payload.get("completionTokens")
            ),
            total_tokens=payload.get("total_tokens", payload.get("totalTokens")),
        )


@dataclass(frozen=True)
class TaskAction:
    """Follow-up action offered by an interactive task (upscale, vary, ...)."""

    custom_id: str
    label: str = ""
    emoji: str = ""


@dataclass
class GenerationResult:
    """Terminal success of one job. Asset order is provider order."""

    handle: JobHandle
    assets: list[MediaAsset]
    usage: Optional[Usage] = None
    actions: list[TaskAction] = field(default_factory=list)

    @property
    def provider(self) -> str:
        return self.handle.provider

    def revoke_all(self) -> None:
        for asset in self.assets:
            asset.revoke()
