"""
Centralized image type detection using magic bytes.

This module provides the ONLY image sniffing logic in the application. The
materializer and every adapter go through it.

Magic bytes reference (checked in this order):
- JPEG: 0xFFD8
- PNG:  0x89504E47 (89 P N G)
- WEBP: RIFF container, bytes 0-3 "RIFF" and bytes 8-11 "WEBP"
- GIF:  0x474946 (G I F)
Anything else falls back to PNG.
"""

from typing import Final, Literal

from imagio.core.config import DEFAULT_MIME_TYPE

MimeType = Literal["image/jpeg", "image/png", "image/webp", "image/gif"]

MIME_EXTENSIONS: Final[dict[str, str]] = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
}


def _is_webp(header: bytes) -> bool:
    return len(header) >= 12 and header[0:4] == b"RIFF" and header[8:12] == b"WEBP"


def detect_mime_type(header: bytes) -> MimeType:
    """
    Detect image MIME type from magic bytes.

    Args:
        header: First 12+ bytes of the image

    Returns:
        MIME type string; "image/png" when no signature matches

    Example:
        >>> detect_mime_type(b"\\x89PNG\\r\\n\\x1a\\n")
        'image/png'
    """
    if header.startswith(b"\xff\xd8"):
        return "image/jpeg"
    if header.startswith(b"\x89PNG"):
        return "image/png"
    if _is_webp(header):
        return "image/webp"
    if header.startswith(b"GIF"):
        return "image/gif"
    return DEFAULT_MIME_TYPE  # type: ignore[return-value]


def extension_for(mime_type: str) -> str:
    """File extension (without dot) for a sniffed MIME type."""
    return MIME_EXTENSIONS.get(mime_type, "png")
