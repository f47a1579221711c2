"""Local media store: owned files behind revocable handles.

A LocalHandle is the local-file counterpart of a browser object URL. It
points at one file in the media directory; revoking it deletes the file.
Revocation is idempotent and never touches other handles.
"""

from __future__ import annotations

import logging
import threading
import uuid
from pathlib import Path
from typing import Optional

from imagio.core.config import MEDIA_FILENAME_PREFIX
from imagio.utils.file_detection import extension_for
from imagio.utils.io_utils import timestamped_filename, write_bytes

logger = logging.getLogger(__name__)


class LocalHandle:
    """Revocable reference to one locally materialized file."""

    def __init__(self, handle_id: str, path: Path, mime_type: str, store: "MediaStore"):
        self.handle_id = handle_id
        self.path = path
        self.mime_type = mime_type
        self._store = store
        self._revoked = False

    @property
    def revoked(self) -> bool:
        return self._revoked

    def revoke(self) -> None:
        """Delete the backing file. Safe to call more than once."""
        if self._revoked:
            return
        self._revoked = True
        self._store._forget(self)
        self.path.unlink(missing_ok=True)
        logger.debug("Revoked media handle", extra={"asset_id": self.handle_id})

    def __repr__(self) -> str:
        state = "revoked" if self._revoked else "live"
        return f"LocalHandle({self.handle_id}, {self.path.name}, {state})"


class MediaStore:
    """Allocates and tracks live handles under one directory."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self._handles: dict[str, LocalHandle] = {}
        self._lock = threading.Lock()

    def allocate(self, data: bytes, mime_type: str) -> LocalHandle:
        """Write `data` to a new file and return its handle."""
        handle_id = uuid.uuid4().hex
        filename = timestamped_filename(
            MEDIA_FILENAME_PREFIX, handle_id[:8], extension_for(mime_type)
        )
        path = write_bytes(self.root / filename, data)
        handle = LocalHandle(handle_id, path, mime_type, self)
        with self._lock:
            self._handles[handle_id] = handle
        return handle

    def get(self, handle_id: str) -> Optional[LocalHandle]:
        with self._lock:
            return self._handles.get(handle_id)

    def live_handles(self) -> list[LocalHandle]:
        with self._lock:
            return list(self._handles.values())

    def revoke_all(self) -> int:
        """Revoke every live handle. Returns how many were revoked."""
        handles = self.live_handles()
        for handle in handles:
            handle.revoke()
        return len(handles)

    def _forget(self, handle: LocalHandle) -> None:
        with self._lock:
            self._handles.pop(handle.handle_id, None)
