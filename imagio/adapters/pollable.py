"""
Create-then-poll adapters for FLUX models.

Two backends speak the same job protocol:
    - BFL official API: ``POST /{model}`` with ``x-key``, then GET the
      returned ``polling_url``
    - BLTCY proxy: ``POST /bfl/v1/{model}`` with a bearer key, then
      ``GET /bfl/v1/get_result?id=...``

Status payloads look like ``{"status": "Ready", "result": {"sample": url}}``.
"""

from __future__ import annotations

import logging
import random
from abc import abstractmethod
from typing import Any, Optional

from imagio.adapters.base import ProgressCallback, ProviderAdapter, emit
from imagio.core.config import (
    ASPECT_RATIO_DIMENSIONS,
    DEFAULT_DIMENSIONS,
    FLUX_OUTPUT_FORMAT,
    FLUX_PROXY_GUIDANCE,
    FLUX_PROXY_STEPS,
    FLUX_SAFETY_TOLERANCE,
)
from imagio.core.exceptions import ClassifiedError
from imagio.core.logging_utils import sanitize_prompt
from imagio.errors.codes import ErrorCode
from imagio.models.dto import (
    GenerationResult,
    JobHandle,
    JobRequest,
    MediaRef,
    PollState,
    PollStatus,
    ProtocolMode,
)
from imagio.resilience.cancellation import CancellationToken
from imagio.resilience.polling import PollBudget, poll, short_budget

logger = logging.getLogger(__name__)

_FAILED_STATUSES = {
    "error",
    "failed",
    "content moderated",
    "request moderated",
    "task not found",
}
_PENDING_STATUSES = {"pending", "queued", "task not started"}


def dimensions_for(aspect_ratio: Optional[str]) -> tuple[int, int]:
    """Translate an aspect ratio into FLUX width/height."""
    if not aspect_ratio:
        return DEFAULT_DIMENSIONS
    return ASPECT_RATIO_DIMENSIONS.get(aspect_ratio, DEFAULT_DIMENSIONS)


def parse_bfl_status(payload: Any) -> PollState:
    """Map a BFL ``get_result`` payload onto a PollState."""
    if not isinstance(payload, dict):
        raise ValueError("status payload is not an object")

    raw_status = str(payload.get("status") or "")
    status = raw_status.lower()

    if status == "ready":
        return PollState.ready(payload, message=raw_status)
    if status in _FAILED_STATUSES:
        reason = payload.get("error") or payload.get("details") or raw_status
        return PollState.failed(f"BFL generation failed: {reason}", message=raw_status)
    if status in _PENDING_STATUSES or not status:
        return PollState.pending(message=raw_status or "Pending")

    progress = payload.get("progress")
    percent = None
    if isinstance(progress, (int, float)):
        percent = float(progress) * 100 if progress <= 1 else float(progress)
    return PollState.in_progress(percent, message=raw_status)


def sample_url(state: PollState) -> str:
    result = (state.payload or {}).get("result") or {}
    sample = result.get("sample") if isinstance(result, dict) else None
    if not sample:
        raise ClassifiedError(ErrorCode.MALFORMED_RESPONSE, "BFL result is missing the image sample")
    return sample


class PollableJobAdapter(ProviderAdapter):
    """Submit, poll on the short budget, materialize the single sample."""

    mode = ProtocolMode.POLLABLE_JOB

    def __init__(self, *args: Any, budget: Optional[PollBudget] = None, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.budget = budget

    @abstractmethod
    def build_body(self, request: JobRequest) -> dict[str, Any]:
        """Provider request body for one job."""

    @abstractmethod
    def create_path(self) -> str:
        """Path of the job creation endpoint."""

    @abstractmethod
    def status_target(self, created: dict[str, Any], job_id: str) -> tuple[str, Optional[dict[str, Any]]]:
        """Return (path or url, query params) to poll for this job."""

    async def submit(
        self,
        request: JobRequest,
        on_progress: Optional[ProgressCallback],
        token: CancellationToken,
    ) -> GenerationResult:
        self.http.require_credentials()
        token.raise_if_cancelled()
        logger.info(
            "Creating %s job: %s",
            self.api_model,
            sanitize_prompt(request.prompt),
            extra={"provider": self.provider, "model": self.api_model},
        )
        emit(on_progress, "Creating generation request")

        created = await self.http.post_json(self.create_path(), self.build_body(request))
        token.raise_if_cancelled()
        job_id = created.get("id") if isinstance(created, dict) else None
        if not job_id:
            raise ClassifiedError(
                ErrorCode.MALFORMED_RESPONSE,
                f"{self.provider} API response missing request id",
                details={"provider": self.provider},
            )

        handle = self.new_handle(str(job_id))
        path, params = self.status_target(created, handle.job_id)
        emit(on_progress, "Generation queued")

        async def fetch_status(_: JobHandle) -> PollState:
            return parse_bfl_status(await self.http.get_json(path, params=params))

        state = await poll(
            handle,
            fetch_status,
            on_progress,
            budget=self.budget or short_budget(),
            token=token,
        )
        if state.status is PollStatus.FAILED:
            raise ClassifiedError(
                ErrorCode.REQUEST_FAILED,
                state.reason,
                details={"job_id": handle.job_id, "provider": self.provider},
            )

        ref = MediaRef(index=0, url=sample_url(state))
        assets = await self.materialize_all([ref], on_progress, token)
        return GenerationResult(handle=handle, assets=assets)


class BflOfficialAdapter(PollableJobAdapter):
    """api.bfl.ai with ``x-key`` auth and a returned ``polling_url``."""

    def create_path(self) -> str:
        return f"/{self.api_model}"

    def build_body(self, request: JobRequest) -> dict[str, Any]:
        body: dict[str, Any] = {
            "prompt": request.prompt,
            "output_format": FLUX_OUTPUT_FORMAT,
            "safety_tolerance": FLUX_SAFETY_TOLERANCE,
        }
        if request.aspect_ratio:
            body["aspect_ratio"] = request.aspect_ratio
        return body

    def status_target(self, created: dict[str, Any], job_id: str) -> tuple[str, Optional[dict[str, Any]]]:
        polling_url = created.get("polling_url")
        if not polling_url:
            raise ClassifiedError(
                ErrorCode.MALFORMED_RESPONSE,
                "BFL API response missing polling_url",
                details={"job_id": job_id},
            )
        return polling_url, None


class BflProxyAdapter(PollableJobAdapter):
    """BLTCY's BFL-compatible proxy; takes width/height instead of a ratio."""

    def create_path(self) -> str:
        return f"/bfl/v1/{self.api_model}"

    def build_body(self, request: JobRequest) -> dict[str, Any]:
        width, height = dimensions_for(request.aspect_ratio)
        body: dict[str, Any] = {
            "prompt": request.prompt,
            "width": width,
            "height": height,
            "steps": FLUX_PROXY_STEPS,
            "prompt_upsampling": False,
            "seed": random.randint(0, 999_999),
            "guidance": FLUX_PROXY_GUIDANCE,
            "safety_tolerance": FLUX_SAFETY_TOLERANCE,
            "output_format": FLUX_OUTPUT_FORMAT,
        }
        if request.reference_images:
            body["input_image"] = request.reference_images[0]
        return body

    def status_target(self, created: dict[str, Any], job_id: str) -> tuple[str, Optional[dict[str, Any]]]:
        return "/bfl/v1/get_result", {"id": job_id}
