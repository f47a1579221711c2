"""Turn provider media references into locally owned assets.

A reference carries a remote URL, inline base64 bytes, or both. The URL wins
when both are present: it means the provider already persisted the asset.
Fetched or decoded bytes are MIME-sniffed and written to the media store
behind a fresh revocable handle. Nothing is cached; materializing the same
reference twice yields two independent assets.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from typing import Optional

import httpx

from imagio.core.config import DOWNLOAD_TIMEOUT_SECONDS
from imagio.core.exceptions import ClassifiedError
from imagio.core.logging_utils import sanitize_url
from imagio.errors.classifier import classify
from imagio.errors.codes import ErrorCode
from imagio.media.store import MediaStore
from imagio.models.dto import MediaAsset, MediaRef
from imagio.resilience.cancellation import CancellationToken
from imagio.utils.file_detection import detect_mime_type

logger = logging.getLogger(__name__)

_DATA_URL_RE = re.compile(r"^data:([a-z]+/[a-z0-9.+-]+);base64,(.+)$", re.IGNORECASE | re.DOTALL)


def split_data_url(payload: str) -> tuple[str, str]:
    """Split an inline payload into (mime_type, raw base64).

    Raw base64 without a data-URL prefix gets its MIME type sniffed.
    """
    match = _DATA_URL_RE.match(payload.strip())
    if match:
        return match.group(1).lower(), match.group(2)
    return detect_mime_type(decode_inline(payload)[:12]), payload.strip()


def decode_inline(payload: str) -> bytes:
    """Decode raw base64 or a ``data:...;base64,`` URL.

    Raises:
        ClassifiedError: MALFORMED_RESPONSE for undecodable or empty payloads
    """
    match = _DATA_URL_RE.match(payload.strip())
    clean = match.group(2) if match else payload
    clean = "".join(clean.split())
    try:
        data = base64.b64decode(clean, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ClassifiedError(
            ErrorCode.MALFORMED_RESPONSE,
            f"Inline image data is not valid base64: {e}",
            cause=e,
        ) from e
    if not data:
        raise ClassifiedError(ErrorCode.MALFORMED_RESPONSE, "Inline image data is empty")
    return data


class Materializer:
    """Fetches or decodes media and hands back owned assets.

    Args:
        client: Shared async HTTP client used for remote fetches
        store: Media store that allocates the revocable handles
    """

    def __init__(self, client: httpx.AsyncClient, store: MediaStore):
        self._client = client
        self.store = store

    async def materialize(
        self,
        ref: MediaRef,
        *,
        token: Optional[CancellationToken] = None,
        provider: Optional[str] = None,
    ) -> MediaAsset:
        """Produce a locally owned asset for one media reference.

        Raises:
            ClassifiedError: download or decode failure for this asset
        """
        if token is not None:
            token.raise_if_cancelled()

        if ref.url:
            data = await self._download(ref.url, provider=provider)
            if token is not None:
                token.raise_if_cancelled()
        elif ref.b64_data:
            data = decode_inline(ref.b64_data)
        else:
            raise ClassifiedError(
                ErrorCode.MALFORMED_RESPONSE,
                f"Image {ref.index + 1} missing both url and b64_json",
            )

        return self.from_bytes(data, source_url=ref.url)

    def from_bytes(self, data: bytes, *, source_url: Optional[str] = None) -> MediaAsset:
        """Wrap already available bytes into an owned asset."""
        mime_type = detect_mime_type(data[:12])
        handle = self.store.allocate(data, mime_type)
        logger.debug(
            "Materialized %d bytes as %s",
            len(data),
            mime_type,
            extra={"asset_id": handle.handle_id},
        )
        return MediaAsset(data=data, mime_type=mime_type, handle=handle, source_url=source_url)

    async def _download(self, url: str, *, provider: Optional[str]) -> bytes:
        logger.info("Downloading image from %s", sanitize_url(url), extra={"provider": provider})
        try:
            response = await self._client.get(url, timeout=DOWNLOAD_TIMEOUT_SECONDS)
        except httpx.HTTPError as e:
            raise classify(e, provider=provider) from e

        if not response.is_success:
            error = classify(response, provider=provider)
            raise ClassifiedError(
                error.code,
                f"Failed to download image: HTTP {response.status_code}",
                details=error.details,
            )
        if not response.content:
            raise ClassifiedError(
                ErrorCode.MALFORMED_RESPONSE,
                "Downloaded image is empty",
                details={"url": sanitize_url(url)},
            )
        return response.content
