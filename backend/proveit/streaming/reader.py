"""
StreamReader - decodes the hybrid wire format from arbitrarily chunked bytes.
"""

import codecs
import logging
from dataclasses import dataclass
from typing import AsyncIterable, AsyncIterator, List, Union

from pydantic import BaseModel

from .protocol import EVENT_PREFIX, LINE_TERMINATOR, parse_event_line

logger = logging.getLogger(__name__)


@dataclass
class NarrativeText:
    """A run of assistant prose, delivered in stream order."""
    text: str


StreamItem = Union[NarrativeText, BaseModel]


class StreamReader:
    """
    Incremental decoder for one stream.

    Bytes are decoded incrementally (a chunk may end inside a multibyte
    character), appended to a single buffer and split into complete lines;
    the trailing partial line waits for the next chunk. Control lines become
    events, other non-empty lines become NarrativeText including their
    terminator. A malformed control line is dropped without affecting the
    rest of the stream.
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._finished = False

    def feed(self, chunk: bytes) -> List[StreamItem]:
        """Consume one chunk and return the items it completes."""
        if self._finished:
            raise RuntimeError("StreamReader already finished; use a new reader per stream")
        self._buffer += self._decoder.decode(chunk)
        return self._drain_lines()

    def finish(self) -> List[StreamItem]:
        """Flush the decoder and emit any unterminated remainder as text."""
        if self._finished:
            return []
        self._finished = True
        self._buffer += self._decoder.decode(b"", final=True)
        items = self._drain_lines()
        if self._buffer:
            items.append(NarrativeText(self._buffer))
            self._buffer = ""
        return items

    async def read(self, source: AsyncIterable[bytes]) -> AsyncIterator[StreamItem]:
        """Decode an async byte source, yielding items as soon as they are complete."""
        async for chunk in source:
            for item in self.feed(chunk):
                yield item
        for item in self.finish():
            yield item

    def _drain_lines(self) -> List[StreamItem]:
        items: List[StreamItem] = []
        *lines, self._buffer = self._buffer.split(LINE_TERMINATOR)
        for line in lines:
            if line.startswith(EVENT_PREFIX):
                event = parse_event_line(line)
                if event is None:
                    logger.debug(f"Dropping malformed control line: {line[:200]!r}")
                    continue
                items.append(event)
            elif line:
                items.append(NarrativeText(line + LINE_TERMINATOR))
        return items


async def read_stream(source: AsyncIterable[bytes]) -> AsyncIterator[StreamItem]:
    """Decode one stream with a fresh reader."""
    async for item in StreamReader().read(source):
        yield item
