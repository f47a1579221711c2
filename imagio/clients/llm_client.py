"""
Chat completions client used to turn OCR text into an image prompt.

Speaks the OpenAI-compatible ``/chat/completions`` endpoint, either as one
request or as a ``data:`` event stream decoded by the shared StreamDecoder.
The API key is optional (local servers such as Ollama run without one).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional
from urllib.parse import urlsplit, urlunsplit

import httpx

from imagio.core.config import DEFAULT_LLM_TEMPERATURE
from imagio.core.exceptions import ClassifiedError
from imagio.core.settings import LLMSettings, llm_settings
from imagio.errors.classifier import classify
from imagio.errors.codes import ErrorCode
from imagio.models.dto import Usage
from imagio.resilience.cancellation import CancellationToken
from imagio.streaming.sse import StreamDecoder, StreamFrame, iter_stream

logger = logging.getLogger(__name__)

PROVIDER_NAME = "LLM"
COMPLETIONS_PATH = "/chat/completions"

OPTIMIZE_SYSTEM_PROMPT = (
    "You turn text recognized from an image into a single vivid prompt for an "
    "image generation model. Keep the subject and mood of the text, add visual "
    "detail (composition, lighting, style), and answer with the prompt only."
)


def normalize_base_url(value: str) -> str:
    """Add a scheme if missing and drop query, fragment and trailing slashes.

    Raises:
        ValueError: empty or unparsable URL
    """
    trimmed = (value or "").strip()
    if not trimmed:
        raise ValueError("LLM base URL must not be empty")
    if not trimmed.lower().startswith(("http://", "https://")):
        trimmed = f"http://{trimmed}"

    parts = urlsplit(trimmed)
    if not parts.netloc:
        raise ValueError(f"Invalid LLM base URL: {value}")
    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme, parts.netloc, path, "", ""))


@dataclass(frozen=True)
class ChatCompletion:
    content: str
    usage: Optional[Usage]
    raw: dict[str, Any]


def extract_content(data: Any) -> Optional[str]:
    """``choices[0].message.content`` or the legacy ``choices[0].text``."""
    choices = data.get("choices") if isinstance(data, dict) else None
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    message = first.get("message")
    content = message.get("content") if isinstance(message, dict) else None
    if not isinstance(content, str):
        content = first.get("text")
    return content if isinstance(content, str) else None


def extract_delta(frame: Any) -> Optional[str]:
    """Text carried by one streamed chunk; None for role/empty deltas."""
    choices = frame.get("choices") if isinstance(frame, dict) else None
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    delta = first.get("delta") if isinstance(first, dict) else None
    content = delta.get("content") if isinstance(delta, dict) else None
    return content if isinstance(content, str) and content else None


class LLMClient:
    """
    Args:
        client: Shared async HTTP client
        settings: Base URL, key, model and timeout
    """

    def __init__(self, client: httpx.AsyncClient, settings: Optional[LLMSettings] = None):
        self._client = client
        self.settings = settings or llm_settings

    @property
    def endpoint(self) -> str:
        try:
            return normalize_base_url(self.settings.LLM_BASE_URL) + COMPLETIONS_PATH
        except ValueError as e:
            raise ClassifiedError(ErrorCode.REQUEST_FAILED, str(e), cause=e) from e

    def _headers(self, *, stream: bool = False) -> dict[str, str]:
        headers = {"Accept": "text/event-stream" if stream else "application/json"}
        api_key = self.settings.LLM_API_KEY.get_secret_value().strip()
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        return headers

    def _payload(
        self,
        messages: list[dict[str, str]],
        *,
        stream: bool,
        temperature: Optional[float],
        max_tokens: Optional[int],
        top_p: Optional[float],
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.settings.LLM_MODEL,
            "messages": messages,
            "temperature": DEFAULT_LLM_TEMPERATURE if temperature is None else temperature,
            "stream": stream,
        }
        if max_tokens is not None and max_tokens > 0:
            payload["max_tokens"] = int(round(max_tokens))
        if top_p is not None:
            payload["top_p"] = top_p
        return payload

    async def complete(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        top_p: Optional[float] = None,
    ) -> ChatCompletion:
        """
        Run one non-streaming chat completion.

        Raises:
            ClassifiedError: On any network, HTTP or payload failure.
        """
        payload = self._payload(
            messages, stream=False, temperature=temperature, max_tokens=max_tokens, top_p=top_p
        )
        try:
            response = await self._client.post(
                self.endpoint,
                json=payload,
                headers=self._headers(),
                timeout=self.settings.LLM_TIMEOUT_SECONDS,
            )
        except httpx.HTTPError as e:
            raise classify(e, provider=PROVIDER_NAME) from e

        if not response.is_success:
            raise classify(response, provider=PROVIDER_NAME)

        try:
            data = response.json()
        except ValueError as e:
            raise classify(e, provider=PROVIDER_NAME) from e

        content = extract_content(data)
        if content is None:
            raise ClassifiedError(
                ErrorCode.MALFORMED_RESPONSE,
                "LLM response missing message content",
                details={"provider": PROVIDER_NAME},
            )
        usage = Usage.from_payload(data.get("usage"))
        logger.info(
            "LLM completion received",
            extra={"provider": PROVIDER_NAME, "model": self.settings.LLM_MODEL},
        )
        return ChatCompletion(content=content.strip(), usage=usage, raw=data)

    async def stream_complete(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        top_p: Optional[float] = None,
        token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[str]:
        """Yield content deltas as they arrive."""
        payload = self._payload(
            messages, stream=True, temperature=temperature, max_tokens=max_tokens, top_p=top_p
        )
        decoder = StreamDecoder(extract_delta)
        try:
            async with self._client.stream(
                "POST",
                self.endpoint,
                json=payload,
                headers=self._headers(stream=True),
                timeout=self.settings.LLM_TIMEOUT_SECONDS,
            ) as response:
                if not response.is_success:
                    await response.aread()
                    raise classify(response, provider=PROVIDER_NAME)
                async for event in iter_stream(response.aiter_bytes(), decoder, token):
                    if isinstance(event, StreamFrame):
                        yield event.content
        except httpx.HTTPError as e:
            raise classify(e, provider=PROVIDER_NAME) from e

        logger.info(
            "LLM stream finished: %d delta(s), %d skipped",
            decoder.frames_emitted,
            decoder.frames_skipped,
            extra={"provider": PROVIDER_NAME},
        )

    @staticmethod
    def optimization_messages(ocr_text: str, instructions: Optional[str] = None) -> list[dict[str, str]]:
        """Messages asking the model to rewrite OCR text as an image prompt."""
        system = OPTIMIZE_SYSTEM_PROMPT
        if instructions:
            system = f"{system}\n\n{instructions.strip()}"
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": ocr_text},
        ]
