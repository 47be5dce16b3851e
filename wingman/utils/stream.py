"""Server-Sent-Events decoder for chat-completion streams.

Frames look like::

    data: {"choices":[{"delta":{"content":"Hi"}}]}
    data: [DONE]

Only ``data: `` lines are considered; ``[DONE]`` ends the stream for good.
"""

from __future__ import annotations

import codecs
import inspect
import json
import logging
from typing import AsyncIterable, AsyncIterator, Awaitable, Callable, Union

from wingman.schema import Done, StreamEvent, TextDelta

logger = logging.getLogger(__name__)

_DATA_PREFIX = "data: "
_DONE_SENTINEL = "[DONE]"

ChunkCallback = Callable[[str], Union[None, Awaitable[None]]]


class SSEDecoder:
    """Incremental line decoder.

    An incomplete trailing line is held until the next ``feed`` so reads that
    split a line still decode correctly.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._done = False

    @property
    def done(self) -> bool:
        return self._done

    def feed(self, text: str) -> list[StreamEvent]:
        if self._done:
            return []
        self._buffer += text
        *lines, self._buffer = self._buffer.split("\n")
        return self._decode_lines(lines)

    def flush(self) -> list[StreamEvent]:
        """Decode whatever is left once the transport has no more data."""
        if self._done:
            return []
        rest, self._buffer = self._buffer, ""
        events = self._decode_lines([rest])
        if not self._done:
            self._done = True
            events.append(Done())
        return events

    def _decode_lines(self, lines: list[str]) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        for raw in lines:
            line = raw.strip()
            if not line.startswith(_DATA_PREFIX):
                continue
            data = line[len(_DATA_PREFIX):].strip()
            if data == _DONE_SENTINEL:
                self._done = True
                events.append(Done())
                break
            content = _extract_delta(data)
            if content:
                events.append(TextDelta(content))
        return events


def _extract_delta(data: str) -> str | None:
    try:
        parsed = json.loads(data)
    except json.JSONDecodeError:
        logger.debug(f"[SSE] Skipping malformed frame: {data[:120]}")
        return None
    try:
        content = parsed["choices"][0]["delta"].get("content")
    except (KeyError, IndexError, TypeError, AttributeError):
        return None
    return content if isinstance(content, str) else None


async def iter_events(byte_chunks: AsyncIterable[bytes]) -> AsyncIterator[StreamEvent]:
    """Decode a chunked body into stream events as the bytes arrive."""
    decoder = SSEDecoder()
    utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
    async for chunk in byte_chunks:
        for event in decoder.feed(utf8.decode(chunk)):
            yield event
            if isinstance(event, Done):
                return
    for event in decoder.feed(utf8.decode(b"", final=True)):
        yield event
        if isinstance(event, Done):
            return
    for event in decoder.flush():
        yield event


async def iter_text_deltas(byte_chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """Lazy, single-pass sequence of text deltas."""
    async for event in iter_events(byte_chunks):
        if isinstance(event, TextDelta):
            yield event.text


async def decode_stream(byte_chunks: AsyncIterable[bytes], on_chunk: ChunkCallback | None = None) -> str:
    """Consume the stream, invoking ``on_chunk`` per delta; returns the full text."""
    parts: list[str] = []
    async for text in iter_text_deltas(byte_chunks):
        parts.append(text)
        if on_chunk is not None:
            result = on_chunk(text)
            if inspect.isawaitable(result):
                await result
    return "".join(parts)
