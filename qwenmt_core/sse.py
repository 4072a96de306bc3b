"""
Incremental decoder for the upstream server-push event stream.

Chunks may split lines (and multi-byte characters) anywhere. Only complete
``data:`` lines are decoded; the trailing fragment is kept until the next
chunk. ``data: [DONE]`` ends the sequence. A line whose payload is not a JSON
object is skipped.
"""

from __future__ import annotations

import codecs
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator, Mapping
from dataclasses import dataclass, field
from typing import Any, cast

__all__ = [
    "DONE_SENTINEL",
    "EVENT_PREFIX",
    "EventStreamDecoder",
    "StreamEvent",
    "iter_events",
]

EVENT_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"

MSG_PROCESS_COMPLETED = "process_completed"
MSG_UNEXPECTED_ERROR = "unexpected_error"

log = logging.getLogger("qwenmt_core.sse")


@dataclass(frozen=True)
class StreamEvent:
    """One decoded push event, discriminated by ``msg``."""

    msg: str | None
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def is_completed(self) -> bool:
        return self.msg == MSG_PROCESS_COMPLETED

    @property
    def is_unexpected_error(self) -> bool:
        return self.msg == MSG_UNEXPECTED_ERROR

    @property
    def output(self) -> Mapping[str, Any]:
        out = self.payload.get("output")
        return cast("Mapping[str, Any]", out) if isinstance(out, Mapping) else {}

    @property
    def message(self) -> str | None:
        msg = self.payload.get("message")
        return msg if isinstance(msg, str) else None

    def output_error(self) -> str | None:
        """The ``output.error`` string of a completion event, if any. An empty string still counts."""
        err = self.output.get("error")
        return err if isinstance(err, str) else None

    def output_text(self) -> str | None:
        """The first ``output.data`` entry when it is a non-empty string."""
        data = self.output.get("data")
        if isinstance(data, list) and data:
            first = cast("list[Any]", data)[0]
            if isinstance(first, str) and first:
                return first
        return None


class EventStreamDecoder:
    """Line-buffering push-event parser. Feed chunks, collect events."""

    def __init__(self, encoding: str = "utf-8") -> None:
        self._buffer = ""
        self._finished = False
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")

    @property
    def finished(self) -> bool:
        """True once the sentinel terminator has been seen."""
        return self._finished

    def feed(self, chunk: str | bytes) -> list[StreamEvent]:
        if self._finished:
            return []
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._buffer += chunk
        *lines, self._buffer = self._buffer.split("\n")
        return self._parse_lines(lines)

    def close(self) -> list[StreamEvent]:
        """Flush whatever is left once the underlying stream has ended."""
        if self._finished:
            return []
        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        return self._parse_lines([tail]) if tail else []

    def _parse_lines(self, lines: list[str]) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        for line in lines:
            event = self._parse_line(line)
            if self._finished:
                break
            if event is not None:
                events.append(event)
        return events

    def _parse_line(self, line: str) -> StreamEvent | None:
        line = line.rstrip("\r")
        if not line.startswith(EVENT_PREFIX):
            return None
        raw = line[len(EVENT_PREFIX):].strip()
        if raw == DONE_SENTINEL:
            self._finished = True
            return None
        try:
            obj = json.loads(raw)
        except ValueError:
            log.debug("Skipping unparsable event line", extra={"line": raw[:200]})
            return None
        if not isinstance(obj, dict):
            log.debug("Skipping non-object event payload", extra={"line": raw[:200]})
            return None
        payload = cast("dict[str, Any]", obj)
        msg = payload.get("msg")
        return StreamEvent(msg=msg if isinstance(msg, str) else None, payload=payload)


async def iter_events(chunks: AsyncIterable[str | bytes]) -> AsyncIterator[StreamEvent]:
    """Lazily decode ``chunks`` into events until the sentinel or end of stream."""
    decoder = EventStreamDecoder()
    async for chunk in chunks:
        for event in decoder.feed(chunk):
            yield event
        if decoder.finished:
            return
    for event in decoder.close():
        yield event
