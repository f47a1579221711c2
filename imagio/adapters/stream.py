"""
Event-stream adapter for Seedream 4 (``/v1/images/generations`` with
``stream: true``).

Each ``data:`` frame is a full images-API body. Intermediate frames only
drive progress; the refs of the last frame before completion are the
result.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Optional

from imagio.adapters.base import ProgressCallback, ProviderAdapter, emit
from imagio.adapters.parsers import refs_from_data_list
from imagio.core.exceptions import ClassifiedError
from imagio.core.logging_utils import sanitize_prompt
from imagio.errors.codes import ErrorCode
from imagio.models.dto import GenerationResult, JobRequest, ProtocolMode, Usage
from imagio.resilience.cancellation import CancellationToken
from imagio.streaming.sse import StreamDecoder, StreamDone, StreamFrame, iter_stream

logger = logging.getLogger(__name__)


class SeedreamStreamAdapter(ProviderAdapter):
    mode = ProtocolMode.EVENT_STREAM
    path = "/v1/images/generations"

    def build_body(self, request: JobRequest) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self.api_model,
            "prompt": request.prompt,
            "response_format": "url",
            "stream": True,
            "watermark": request.watermark,
        }
        if request.reference_images:
            body["image"] = list(request.reference_images)
        if request.count > 1:
            # The endpoint expects n as a string
            body["n"] = str(request.count)
            body["sequential_image_generation"] = "auto"
        if request.size:
            body["size"] = request.size
        if request.aspect_ratio:
            body["aspect_ratio"] = request.aspect_ratio
        return body

    async def submit(
        self,
        request: JobRequest,
        on_progress: Optional[ProgressCallback],
        token: CancellationToken,
    ) -> GenerationResult:
        self.http.require_credentials()
        token.raise_if_cancelled()
        handle = self.new_handle(uuid.uuid4().hex)
        started = time.monotonic()
        logger.info(
            "Starting stream for %s: %s",
            self.api_model,
            sanitize_prompt(request.prompt),
            extra={"job_id": handle.job_id, "provider": self.provider, "model": self.api_model},
        )

        if request.reference_images:
            emit(on_progress, "Preparing image-to-image generation...")
        elif request.count > 1:
            emit(on_progress, f"Preparing to generate {request.count} images...")
        emit(on_progress, "Starting streaming generation...")

        final: Optional[dict[str, Any]] = None
        decoder = StreamDecoder()
        async with self.http.stream_post(self.path, self.build_body(request)) as response:
            async for event in iter_stream(response.aiter_bytes(), decoder, token):
                if isinstance(event, StreamFrame):
                    if not isinstance(event.content, dict):
                        logger.warning("Ignoring non-object stream frame")
                        continue
                    final = event.content
                    usage = final.get("usage")
                    if isinstance(usage, dict) and usage.get("total_tokens") is not None:
                        emit(on_progress, f"Progress: {usage['total_tokens']} tokens used")
                elif isinstance(event, StreamDone) and event.sentinel_seen:
                    emit(on_progress, "Stream completed")

        token.raise_if_cancelled()
        if final is None:
            raise ClassifiedError(
                ErrorCode.MALFORMED_RESPONSE,
                f"{self.provider} stream ended without image data",
                details={"job_id": handle.job_id, "frames_skipped": decoder.frames_skipped},
            )

        refs = refs_from_data_list(final.get("data"), provider=self.provider)
        assets = await self.materialize_all(refs, on_progress, token)
        logger.info(
            "Stream produced %d image(s) from %d frame(s)",
            len(assets),
            decoder.frames_emitted,
            extra={
                "job_id": handle.job_id,
                "provider": self.provider,
                "duration_ms": int((time.monotonic() - started) * 1000),
            },
        )
        return GenerationResult(handle=handle, assets=assets, usage=Usage.from_payload(final.get("usage")))
