"""
Immediate-batch adapters: one request, one response carrying 1..N images.

Three wire dialects share the same flow:
    - images API (``/v1/images/generations``): ``data[].url | b64_json``
    - chat completions (``/v1/chat/completions``): message content as URL,
      markdown image link or base64
    - Gemini ``generateContent``: ``candidates[0].content.parts[].inlineData``
"""

from __future__ import annotations

import logging
import time
import uuid
from abc import abstractmethod
from typing import Any, Optional

from imagio.adapters.base import ProgressCallback, ProviderAdapter, emit
from imagio.adapters.parsers import (
    parse_chat_completion,
    parse_gemini_response,
    parse_gemini_usage,
    parse_images_response,
)
from imagio.core.logging_utils import sanitize_prompt
from imagio.media.materializer import split_data_url
from imagio.models.dto import (
    GenerationResult,
    JobRequest,
    MediaRef,
    ProtocolMode,
    Usage,
)
from imagio.resilience.cancellation import CancellationToken

logger = logging.getLogger(__name__)


class ImmediateBatchAdapter(ProviderAdapter):
    """Submit once, materialize every returned ref independently."""

    mode = ProtocolMode.IMMEDIATE_BATCH
    path: str = ""

    @abstractmethod
    def build_body(self, request: JobRequest) -> dict[str, Any]:
        """Provider request body for one job."""

    def request_path(self) -> str:
        return self.path

    @abstractmethod
    def parse_refs(self, payload: Any) -> list[MediaRef]:
        """Media refs in provider order."""

    def parse_usage(self, payload: Any) -> Optional[Usage]:
        return Usage.from_payload(payload.get("usage")) if isinstance(payload, dict) else None

    async def submit(
        self,
        request: JobRequest,
        on_progress: Optional[ProgressCallback],
        token: CancellationToken,
    ) -> GenerationResult:
        self.http.require_credentials()
        handle = self.new_handle(uuid.uuid4().hex)
        started = time.monotonic()
        logger.info(
            "Submitting %s: %s",
            self.api_model,
            sanitize_prompt(request.prompt),
            extra={"job_id": handle.job_id, "provider": self.provider, "model": self.api_model},
        )

        token.raise_if_cancelled()
        emit(on_progress, f"Generating with {self.api_model}")
        payload = await self.http.post_json(self.request_path(), self.build_body(request))
        token.raise_if_cancelled()

        refs = self.parse_refs(payload)
        assets = await self.materialize_all(refs, on_progress, token)
        logger.info(
            "Generated %d image(s)",
            len(assets),
            extra={
                "job_id": handle.job_id,
                "provider": self.provider,
                "duration_ms": int((time.monotonic() - started) * 1000),
            },
        )
        return GenerationResult(handle=handle, assets=assets, usage=self.parse_usage(payload))


class ImagesApiAdapter(ImmediateBatchAdapter):
    """OpenAI-style images API (nano-banana via BLTCY)."""

    path = "/v1/images/generations"

    def build_body(self, request: JobRequest) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self.api_model,
            "prompt": request.prompt,
            "response_format": "url",
        }
        if request.aspect_ratio:
            body["aspect_ratio"] = request.aspect_ratio
        if request.size:
            body["size"] = request.size
        if request.quality:
            body["quality"] = request.quality
        if request.count > 1:
            body["n"] = request.count
        if request.reference_images:
            body["image"] = list(request.reference_images)
        return body

    def parse_refs(self, payload: Any) -> list[MediaRef]:
        return parse_images_response(payload, provider=self.provider)


class ChatCompletionAdapter(ImmediateBatchAdapter):
    """Image models exposed through the chat completions endpoint."""

    path = "/v1/chat/completions"

    def build_body(self, request: JobRequest) -> dict[str, Any]:
        content: Any = request.prompt
        if request.reference_images:
            content = [{"type": "text", "text": request.prompt}] + [
                {"type": "image_url", "image_url": {"url": image}}
                for image in request.reference_images
            ]
        return {
            "model": self.api_model,
            "messages": [{"role": "user", "content": content}],
            "stream": False,
        }

    def parse_refs(self, payload: Any) -> list[MediaRef]:
        return parse_chat_completion(payload, provider=self.provider)


class GeminiAdapter(ImmediateBatchAdapter):
    """Gemini 2.5 Flash Image (``generateContent``)."""

    def request_path(self) -> str:
        return f"/models/{self.api_model}:generateContent"

    def build_body(self, request: JobRequest) -> dict[str, Any]:
        parts: list[dict[str, Any]] = [{"text": request.prompt}]
        for image in request.reference_images:
            mime_type, data = split_data_url(image)
            parts.append({"inlineData": {"mimeType": mime_type, "data": data}})

        config: dict[str, Any] = {"responseModalities": ["IMAGE"]}
        if request.aspect_ratio:
            config["imageConfig"] = {"aspectRatio": request.aspect_ratio}
        return {"contents": [{"parts": parts}], "generationConfig": config}

    def parse_refs(self, payload: Any) -> list[MediaRef]:
        return parse_gemini_response(payload, provider=self.provider)

    def parse_usage(self, payload: Any) -> Optional[Usage]:
        return parse_gemini_usage(payload)
