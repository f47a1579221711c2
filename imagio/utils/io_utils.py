"""
Basic file-system utilities for locally materialized media.

Provides helpers for creating parent directories, building timestamped
filenames and writing binary payloads.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path


def ensure_parent(path: str | Path) -> None:
    """
    Ensure that the parent directory for the given path exists.

    Creates all missing parents with `exist_ok=True` and does not
    touch the file itself.

    Args:
      path: Target file path whose parent should be created.
    """
    path_obj = Path(path)
    path_obj.parent.mkdir(parents=True, exist_ok=True)


def write_bytes(path: str | Path, data: bytes) -> Path:
    """
    Write a binary payload to disk.

    Writes to a sibling temp file first and renames it into place so
    readers never observe a partially written image.

    Args:
      path: Destination file path.
      data: Bytes to persist.

    Returns:
      The destination path as a `Path` instance.
    """
    ensure_parent(path)
    target = Path(path)
    tmp = target.with_name(f".{target.name}.part")
    tmp.write_bytes(data)
    tmp.replace(target)
    return target


def timestamped_filename(prefix: str, suffix: str, extension: str) -> str:
    """
    Build a filename like ``imagio-2026-10-19T17-52-00-123456Z-ab12cd.png``.

    Args:
      prefix: Leading name component.
      suffix: Short unique component (e.g. part of a uuid).
      extension: Extension without the dot.
    """
    timestamp = (
        datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
    )
    return f"{prefix}-{timestamp}-{suffix}.{extension}"
