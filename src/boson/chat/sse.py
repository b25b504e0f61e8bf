"""Incremental decoder for ``text/event-stream`` completion responses.

Bytes are decoded into a rolling text buffer. Only newline-terminated lines
are parsed; the trailing fragment waits for more input, so a record split
across network chunks is never parsed half-received. Each ``data: `` line
holds one JSON record whose first choice carries content and reasoning
deltas. ``data: [DONE]`` and malformed records are dropped without stopping
the stream.
"""

from __future__ import annotations

import codecs
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterable, AsyncIterator, Literal, Optional

from ..logging import log_event

DATA_PREFIX = "data: "
DONE_PAYLOAD = "[DONE]"

# When both are present, thinking_content wins over reasoning.
REASONING_FIELDS = ("thinking_content", "reasoning")


@dataclass(frozen=True, slots=True)
class StreamDelta:
    """One incremental fragment from the stream."""

    kind: Literal["content", "reasoning"]
    text: str


def extract_deltas(record: Any) -> list[StreamDelta]:
    """Pull the content and reasoning deltas out of one decoded record."""
    if not isinstance(record, dict):
        return []
    choices = record.get("choices")
    if not isinstance(choices, list) or not choices:
        return []
    choice = choices[0]
    if not isinstance(choice, dict):
        return []
    delta = choice.get("delta")
    if not isinstance(delta, dict):
        return []

    deltas: list[StreamDelta] = []
    content = delta.get("content")
    if isinstance(content, str):
        deltas.append(StreamDelta("content", content))

    for field_name in REASONING_FIELDS:
        reasoning = delta.get(field_name)
        if isinstance(reasoning, str) and reasoning:
            deltas.append(StreamDelta("reasoning", reasoning))
            break

    return deltas


class SSEDecoder:
    """Chunk-boundary-insensitive decoder from response bytes to deltas."""

    def __init__(self, encoding: str = "utf-8", *, request_id: Optional[str] = None):
        self.request_id = request_id
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""
        self.skipped_records = 0

    def feed(self, chunk: bytes | str) -> list[StreamDelta]:
        """Consume one received chunk and return deltas from completed lines."""
        text = chunk if isinstance(chunk, str) else self._decoder.decode(chunk)
        self._buffer += text
        *lines, self._buffer = self._buffer.split("\n")

        deltas: list[StreamDelta] = []
        for line in lines:
            deltas.extend(self._parse_line(line))
        return deltas

    def flush(self) -> list[StreamDelta]:
        """Parse whatever is left after end of input (final line without newline)."""
        self._buffer += self._decoder.decode(b"", final=True)
        remainder, self._buffer = self._buffer, ""
        if not remainder.strip():
            return []
        return self._parse_line(remainder.rstrip())

    def _parse_line(self, line: str) -> list[StreamDelta]:
        line = line.rstrip("\r")
        if not line.startswith(DATA_PREFIX):
            return []
        payload = line[len(DATA_PREFIX):]
        if payload.strip() == DONE_PAYLOAD:
            return []
        try:
            record = json.loads(payload)
        except ValueError:
            self.skipped_records += 1
            log_event(
                "stream_record_skipped",
                level=logging.DEBUG,
                request_id=self.request_id,
                reason="invalid_json",
            )
            return []
        return extract_deltas(record)


async def iter_deltas(
    chunks: AsyncIterable[bytes], decoder: SSEDecoder | None = None
) -> AsyncIterator[StreamDelta]:
    """Yield deltas from an async byte stream until it is exhausted."""
    decoder = decoder or SSEDecoder()
    async for chunk in chunks:
        for delta in decoder.feed(chunk):
            yield delta
    for delta in decoder.flush():
        yield delta
