"""Generation job endpoints: submit, follow-up action, cancel, clear."""

import asyncio
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request, status

from imagio.api.schemas import (
    ActionRequest,
    CancelResponse,
    GenerationRequest,
    GenerationResponse,
    ProblemDetail,
)
from imagio.core.dependencies import get_facade
from imagio.core.logging_utils import sanitize_prompt
from imagio.models.dto import ProgressEvent
from imagio.orchestrator import GenerationFacade

router = APIRouter()
logger = logging.getLogger(__name__)

_ERROR_RESPONSES = {
    404: {"description": "Unknown model", "model": ProblemDetail},
    409: {"description": "Slot busy", "model": ProblemDetail},
    422: {"description": "Validation Error", "model": ProblemDetail},
    502: {"description": "Provider failure", "model": ProblemDetail},
}


def _require_model(facade: GenerationFacade, model: str) -> None:
    if model not in facade.registry:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown model: {model}")


def _busy(slot: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=f"Slot '{slot}' already has a generation in flight",
    )


def _collector(messages: List[str]):
    def on_progress(event: ProgressEvent) -> None:
        messages.append(event.message)

    return on_progress


@router.post(
    "/v1/generations",
    response_model=GenerationResponse,
    tags=["generations"],
    responses=_ERROR_RESPONSES,
)
async def create_generation(
    request: Request,
    body: GenerationRequest,
    facade: GenerationFacade = Depends(get_facade),
):
    trace_id = getattr(request.state, "trace_id", None)
    _require_model(facade, body.model)
    logger.info(
        "[NEW GENERATION] model=%s prompt=%s",
        body.model,
        sanitize_prompt(body.prompt),
        extra={"trace_id": trace_id, "slot": body.slot, "model": body.model},
    )

    progress: List[str] = []
    task = facade.submit(body.slot, body.to_job(), _collector(progress))
    if task is None:
        raise _busy(body.slot)

    # Shielded so a dropped connection does not tear down the job
    result = await asyncio.shield(task)
    return GenerationResponse.from_result(body.slot, result, progress)


@router.post(
    "/v1/generations/actions",
    response_model=GenerationResponse,
    tags=["generations"],
    responses=_ERROR_RESPONSES,
)
async def run_action(
    request: Request,
    body: ActionRequest,
    facade: GenerationFacade = Depends(get_facade),
):
    _require_model(facade, body.model)
    logger.info(
        "[ACTION] task=%s action=%s",
        body.task_id,
        body.action_id,
        extra={"trace_id": getattr(request.state, "trace_id", None), "slot": body.slot},
    )

    progress: List[str] = []
    task = facade.submit_action(body.slot, body.model, body.task_id, body.action_id, _collector(progress))
    if task is None:
        raise _busy(body.slot)

    result = await asyncio.shield(task)
    return GenerationResponse.from_result(body.slot, result, progress)


@router.post("/v1/generations/{slot}/cancel", response_model=CancelResponse, tags=["generations"])
async def cancel_generation(slot: str, facade: GenerationFacade = Depends(get_facade)):
    return CancelResponse(slot=slot, cancelled=facade.cancel(slot))


@router.delete("/v1/slots/{slot}", status_code=status.HTTP_204_NO_CONTENT, tags=["generations"])
async def clear_slot(slot: str, facade: GenerationFacade = Depends(get_facade)):
    facade.clear(slot)
