"""
Response parsers: provider payload -> ordered media refs.

Parsers only pick fields out of a decoded JSON body. They never fetch or
decode bytes; that is the materializer's job. A payload without the expected
fields is a MALFORMED_RESPONSE.
"""

from __future__ import annotations

import re
from typing import Any, Optional

from imagio.core.exceptions import ClassifiedError
from imagio.errors.codes import ErrorCode
from imagio.models.dto import MediaRef, Usage

_MARKDOWN_IMAGE_RE = re.compile(r"!\[.*?\]\((https?://[^)\s]+)\)", re.DOTALL)


def _malformed(message: str) -> ClassifiedError:
    return ClassifiedError(ErrorCode.MALFORMED_RESPONSE, message)


def refs_from_data_list(data: Any, *, provider: str = "Provider") -> list[MediaRef]:
    """Parse an images-API style ``data: [{url, b64_json}, ...]`` list."""
    if not isinstance(data, list) or not data:
        raise _malformed(f"{provider} API returned no images")

    refs = []
    for index, item in enumerate(data):
        if not isinstance(item, dict):
            raise _malformed(f"Image {index + 1} has an unexpected shape")
        refs.append(MediaRef(index=index, url=item.get("url") or None, b64_data=item.get("b64_json") or None))
    return refs


def parse_images_response(payload: Any, *, provider: str = "Provider") -> list[MediaRef]:
    if not isinstance(payload, dict):
        raise _malformed(f"{provider} API returned an unexpected response")
    return refs_from_data_list(payload.get("data"), provider=provider)


def _message_content(payload: dict[str, Any]) -> Optional[str]:
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        raise _malformed("Chat completion choice has an unexpected shape")
    message = first.get("message") or {}
    if not isinstance(message, dict):
        raise _malformed("Chat completion message has an unexpected shape")
    content = message.get("content") or first.get("text")
    if isinstance(content, list):
        # Multi-part content: keep the text parts in order
        content = "".join(
            part.get("text", "") for part in content if isinstance(part, dict)
        )
    return content if isinstance(content, str) else None


def parse_chat_content(content: str) -> MediaRef:
    """Interpret chat message content as a URL, markdown image, or base64."""
    content = content.strip()
    if content.startswith(("http://", "https://")):
        return MediaRef(index=0, url=content.split()[0])
    if "![" in content:
        match = _MARKDOWN_IMAGE_RE.search(content)
        if not match:
            raise _malformed("Failed to extract image URL from markdown format")
        return MediaRef(index=0, url=match.group(1))
    return MediaRef(index=0, b64_data=content)


def parse_chat_completion(payload: Any, *, provider: str = "Provider") -> list[MediaRef]:
    if not isinstance(payload, dict):
        raise _malformed(f"{provider} API returned an unexpected response")
    content = _message_content(payload)
    if not content or not content.strip():
        raise _malformed(f"{provider} API response missing message content")
    return [parse_chat_content(content)]


def parse_gemini_response(payload: Any, *, provider: str = "Gemini") -> list[MediaRef]:
    """Pick the first inline image part of the first candidate."""
    candidates = payload.get("candidates") if isinstance(payload, dict) else None
    if not candidates:
        raise _malformed(f"{provider} API returned no candidates")

    candidate = candidates[0] if isinstance(candidates, list) else None
    content = candidate.get("content") if isinstance(candidate, dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list) or not parts:
        raise _malformed(f"{provider} API response missing content parts")

    for part in parts:
        if not isinstance(part, dict):
            raise _malformed(f"{provider} API response part has an unexpected shape")
        inline = part.get("inlineData") or part.get("inline_data") or {}
        if isinstance(inline, dict) and inline.get("data"):
            return [MediaRef(index=0, b64_data=inline["data"])]
    raise _malformed(f"{provider} API response missing image data")


def parse_gemini_usage(payload: Any) -> Optional[Usage]:
    metadata = payload.get("usageMetadata") if isinstance(payload, dict) else None
    if not isinstance(metadata, dict):
        return None
    return Usage(
        prompt_tokens=metadata.get("promptTokenCount"),
        completion_tokens=metadata.get("candidatesTokenCount"),
        total_tokens=metadata.get("totalTokenCount"),
    )
