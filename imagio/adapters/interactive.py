"""
Interactive task adapter for Midjourney (via BLTCY).

    POST /mj-{mode}/mj/submit/imagine   -> {"code": 1, "result": task_id}
    GET  /mj-{mode}/mj/task/{id}/fetch  -> {"status": ..., "progress": "42%", ...}
    POST /mj-{mode}/mj/submit/action    -> {"code": 1, "result": new_task_id}

A finished task offers follow-up actions (upscale, vary, zoom ...) as
buttons. Running an action starts a new task that goes through the same
poll-then-materialize path.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional

from imagio.adapters.base import ProgressCallback, ProviderAdapter, emit
from imagio.core.config import MIDJOURNEY_ACCEPTED_CODES
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
    TaskAction,
)
from imagio.resilience.cancellation import CancellationToken
from imagio.resilience.polling import PollBudget, long_budget, poll

logger = logging.getLogger(__name__)

_PERCENT_RE = re.compile(r"(\d+(?:\.\d+)?)\s*%")
_PENDING_STATUSES = {"NOT_START", "SUBMITTED", "MODAL"}


def parse_percent(progress: Any) -> Optional[float]:
    """'42%' -> 42.0; anything unparsable -> None."""
    if isinstance(progress, (int, float)):
        return float(progress)
    match = _PERCENT_RE.search(str(progress or ""))
    return float(match.group(1)) if match else None


def parse_task_status(payload: Any) -> PollState:
    """Map a Midjourney task payload onto a PollState."""
    if not isinstance(payload, dict):
        raise ValueError("task payload is not an object")

    status = str(payload.get("status") or "")
    progress = payload.get("progress") or "0%"
    message = f"Generation progress: {progress} - {status}"

    if status == "SUCCESS":
        return PollState.ready(payload, message=message)
    if status == "FAILURE":
        reason = payload.get("failReason") or "Unknown error"
        return PollState.failed(f"Generation failed: {reason}", message=message)
    if status == "IN_PROGRESS":
        return PollState.in_progress(parse_percent(progress), message=message)
    if status not in _PENDING_STATUSES:
        logger.debug("Unknown task status %r treated as pending", status)
    return PollState.pending(message=message)


def parse_actions(payload: dict[str, Any]) -> list[TaskAction]:
    actions = []
    for button in payload.get("buttons") or []:
        if not isinstance(button, dict) or not button.get("customId"):
            continue
        actions.append(
            TaskAction(
                custom_id=button["customId"],
                label=button.get("label") or "",
                emoji=button.get("emoji") or "",
            )
        )
    return actions


class MidjourneyAdapter(ProviderAdapter):
    """Imagine plus follow-up actions on the long poll budget.

    Args:
        task_mode: ``fast`` or ``relax`` queue
    """

    mode = ProtocolMode.INTERACTIVE_TASK

    def __init__(
        self,
        *args: Any,
        task_mode: str = "fast",
        budget: Optional[PollBudget] = None,
        **kwargs: Any,
    ):
        super().__init__(*args, **kwargs)
        self.task_mode = task_mode
        self.budget = budget

    @property
    def prefix(self) -> str:
        return f"/mj-{self.task_mode}/mj"

    async def submit(
        self,
        request: JobRequest,
        on_progress: Optional[ProgressCallback],
        token: CancellationToken,
    ) -> GenerationResult:
        self.http.require_credentials()
        token.raise_if_cancelled()
        logger.info(
            "Submitting imagine task: %s",
            sanitize_prompt(request.prompt),
            extra={"provider": self.provider, "mode": self.task_mode},
        )
        emit(on_progress, "Submitting Midjourney task")
        body = {"base64Array": list(request.reference_images), "prompt": request.prompt}
        task_id = await self._submit_task(f"{self.prefix}/submit/imagine", body, "Submit failed")
        token.raise_if_cancelled()
        return await self._complete(task_id, on_progress, token)

    async def submit_action(
        self,
        task_id: str,
        action_id: str,
        on_progress: Optional[ProgressCallback],
        token: CancellationToken,
    ) -> GenerationResult:
        """Run a follow-up action (button `action_id`) on a finished task."""
        self.http.require_credentials()
        token.raise_if_cancelled()
        logger.info(
            "Executing action on task %s",
            task_id,
            extra={"job_id": task_id, "provider": self.provider},
        )
        body = {"customId": action_id, "taskId": task_id}
        new_task_id = await self._submit_task(f"{self.prefix}/submit/action", body, "Action failed")
        token.raise_if_cancelled()
        emit(on_progress, "Action submitted, processing...")
        return await self._complete(new_task_id, on_progress, token)

    async def _submit_task(self, path: str, body: dict[str, Any], failure: str) -> str:
        data = await self.http.post_json(path, body)
        if not isinstance(data, dict):
            raise ClassifiedError(ErrorCode.MALFORMED_RESPONSE, f"{failure}: unexpected response")

        if data.get("code") not in MIDJOURNEY_ACCEPTED_CODES:
            raise ClassifiedError(
                ErrorCode.REQUEST_FAILED,
                f"{failure}: {data.get('description') or 'Unknown error'}",
                details={"provider": self.provider, "submit_code": data.get("code")},
            )
        task_id = data.get("result")
        if not task_id:
            raise ClassifiedError(ErrorCode.MALFORMED_RESPONSE, f"{failure}: response missing task id")
        return str(task_id)

    async def _complete(
        self,
        task_id: str,
        on_progress: Optional[ProgressCallback],
        token: CancellationToken,
    ) -> GenerationResult:
        handle = self.new_handle(task_id)
        path = f"{self.prefix}/task/{task_id}/fetch"

        async def fetch_status(_: JobHandle) -> PollState:
            return parse_task_status(await self.http.get_json(path))

        state = await poll(
            handle,
            fetch_status,
            on_progress,
            budget=self.budget or long_budget(),
            token=token,
        )
        if state.status is PollStatus.FAILED:
            raise ClassifiedError(
                ErrorCode.REQUEST_FAILED,
                state.reason,
                details={"job_id": task_id, "provider": self.provider},
            )

        payload = state.payload or {}
        image_url = payload.get("imageUrl")
        if not image_url:
            raise ClassifiedError(ErrorCode.MALFORMED_RESPONSE, "No image URL in task result")

        assets = await self.materialize_all([MediaRef(index=0, url=image_url)], on_progress, token)
        return GenerationResult(handle=handle, assets=assets, actions=parse_actions(payload))
