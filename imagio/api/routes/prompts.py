"""OCR and prompt optimization endpoints."""

import logging
from pathlib import Path

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse, StreamingResponse

from imagio.api.schemas import OcrRequest, OcrResponse, OptimizeRequest, ProblemDetail
from imagio.clients.llm_client import LLMClient
from imagio.clients.ocr_client import OcrEngine, reflow_text
from imagio.core.dependencies import get_llm_client, get_ocr_engine

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/v1/ocr",
    response_model=OcrResponse,
    tags=["ocr"],
    responses={502: {"description": "OCR failure", "model": ProblemDetail}},
)
async def recognize(body: OcrRequest, engine: OcrEngine = Depends(get_ocr_engine)):
    result = await engine.recognize(Path(body.image_path), body.params)
    text = reflow_text(result.text) if body.reflow else result.text
    return OcrResponse(text=text, processed_image_path=result.processed_image_path)


@router.post(
    "/v1/prompts/optimize",
    tags=["prompts"],
    responses={502: {"description": "LLM failure", "model": ProblemDetail}},
)
async def optimize_prompt(
    request: Request,
    body: OptimizeRequest,
    stream: bool = True,
    llm: LLMClient = Depends(get_llm_client),
):
    messages = LLMClient.optimization_messages(body.text, body.instructions)
    logger.info(
        "[OPTIMIZE] chars=%d stream=%s",
        len(body.text),
        stream,
        extra={"trace_id": getattr(request.state, "trace_id", None)},
    )

    if not stream:
        completion = await llm.complete(
            messages, temperature=body.temperature, max_tokens=body.max_tokens
        )
        return PlainTextResponse(completion.content)

    deltas = llm.stream_complete(messages, temperature=body.temperature, max_tokens=body.max_tokens)
    # Upstream failures must surface before the response starts
    try:
        first = await deltas.__anext__()
    except StopAsyncIteration:
        first = ""

    async def body_iter():
        if first:
            yield first
        async for delta in deltas:
            yield delta

    return StreamingResponse(body_iter(), media_type="text/plain; charset=utf-8")
