"""Incremental decoder for line-framed server-push event streams.

Wire format::

    : keep-alive comment
    data: {"data": [...], "usage": {...}}

    data: [DONE]

The decoder is push-driven: the caller feeds one pulled chunk at a time and
receives the events completed by that chunk. It never reads ahead. A
trailing partial line stays buffered until the next chunk (or close) ends it.
Bytes are decoded incrementally, so a chunk boundary inside a multi-byte
UTF-8 character is harmless.
"""

from __future__ import annotations

import codecs
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Optional, Union

from imagio.core.config import STREAM_DATA_PREFIX, STREAM_DONE_LINE, STREAM_DONE_PAYLOAD
from imagio.resilience.cancellation import CancellationToken

logger = logging.getLogger(__name__)

Extractor = Callable[[Any], Any]


@dataclass(frozen=True)
class StreamFrame:
    """Content extracted from one data frame."""

    content: Any


@dataclass(frozen=True)
class StreamDone:
    """Terminal signal. `sentinel_seen` is False when the transport just closed."""

    sentinel_seen: bool = True


StreamEvent = Union[StreamFrame, StreamDone]


def _identity(payload: Any) -> Any:
    return payload


class StreamDecoder:
    """Stateful line decoder for one stream.

    Args:
        extract: Maps a parsed JSON frame to the content to emit. Returning
            None skips the frame (e.g. a chat delta with no text).
        sentinel: Line that marks normal completion
    """

    def __init__(
        self,
        extract: Optional[Extractor] = None,
        *,
        sentinel: str = STREAM_DONE_LINE,
    ):
        self._extract = extract or _identity
        self._sentinel = sentinel
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._done = False
        self.frames_emitted = 0
        self.frames_skipped = 0

    @property
    def done(self) -> bool:
        return self._done

    def feed(self, chunk: bytes) -> list[StreamEvent]:
        """Consume one chunk and return the events it completes."""
        if self._done:
            return []

        self._buffer += self._decoder.decode(chunk)
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()

        events: list[StreamEvent] = []
        for line in lines:
            event = self._process_line(line)
            if event is None:
                continue
            events.append(event)
            if isinstance(event, StreamDone):
                break
        return events

    def close(self) -> list[StreamEvent]:
        """Signal transport close. Always ends with exactly one StreamDone."""
        if self._done:
            return []

        events: list[StreamEvent] = []
        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        if tail:
            event = self._process_line(tail)
            if event is not None:
                events.append(event)

        if not self._done:
            logger.warning("Stream closed without completion sentinel")
            self._done = True
            events.append(StreamDone(sentinel_seen=False))
        return events

    def _process_line(self, raw_line: str) -> Optional[StreamEvent]:
        line = raw_line.rstrip("\r")

        if not line.strip() or line.startswith(":"):
            return None

        if line == self._sentinel:
            self._done = True
            return StreamDone(sentinel_seen=True)

        if not line.startswith(STREAM_DATA_PREFIX):
            logger.debug("Ignoring unknown stream line: %.80s", line)
            return None

        data = line[len(STREAM_DATA_PREFIX):]
        if data.startswith(" "):
            data = data[1:]
        if data.strip() == STREAM_DONE_PAYLOAD:
            self._done = True
            return StreamDone(sentinel_seen=True)

        try:
            payload = json.loads(data)
            content = self._extract(payload)
        except (ValueError, KeyError, IndexError, TypeError) as e:
            self.frames_skipped += 1
            logger.warning("Failed to parse stream frame: %s", e)
            return None

        if content is None:
            return None
        self.frames_emitted += 1
        return StreamFrame(content)


async def iter_stream(
    chunks: AsyncIterator[bytes],
    decoder: StreamDecoder,
    token: Optional[CancellationToken] = None,
) -> AsyncIterator[StreamEvent]:
    """Drive `decoder` over `chunks`, pulling one chunk at a time.

    Yields frames in order and finishes with exactly one StreamDone, whether
    the sentinel arrived or the transport simply closed.

    Raises:
        ClassifiedError: CANCELLED when the token fires while waiting
    """
    token = token or CancellationToken()
    iterator = chunks.__aiter__()

    while True:
        try:
            chunk = await token.race(iterator.__anext__())
        except StopAsyncIteration:
            break
        for event in decoder.feed(chunk):
            yield event
            if isinstance(event, StreamDone):
                return

    for event in decoder.close():
        yield event
