"""Decode model output into typed stream events.

Two framing layers are involved: SSE ``data:`` payloads carry Gemini response
envelopes (framed with one :class:`JSONFramer`), and the model text inside
those envelopes is itself a partial NDJSON stream of podcast events (framed
with a second one). A single malformed frame is logged and dropped; it never
aborts the stream.
"""

import json
import logging
from typing import AsyncIterator, Iterable

from pydantic import ValidationError

from echoforge.core.framer import DEFAULT_MAX_BUFFER_BYTES, JSONFramer
from echoforge.core.sse import SSEDataAccumulator
from echoforge.models.events import StreamEvent, parse_event
from echoforge.models.gemini import GenerateContentResponse

logger = logging.getLogger(__name__)

MAX_LOGGED_CHARS = 8_192
SSE_DONE_MARKER = "[DONE]"


def clip(text: str, limit: int = MAX_LOGGED_CHARS) -> str:
    """Truncate long diagnostics, noting the original length."""
    if len(text) <= limit:
        return text
    return f"{text[:limit]}\n... (truncated, total chars: {len(text)})"


def _preview(frame: bytes) -> str:
    return clip(frame.decode("utf-8", errors="replace"))


class StreamEventDecoder:
    """Frame and decode podcast events from arbitrarily chunked model text."""

    def __init__(self, max_buffer_bytes: int = DEFAULT_MAX_BUFFER_BYTES):
        self._framer = JSONFramer(max_buffer_bytes=max_buffer_bytes)
        self.decoded_event_count = 0

    def append(self, text: str) -> list[StreamEvent]:
        return self._decode(self._framer.append(text))

    def finish(self) -> list[StreamEvent]:
        events = self._decode(self._framer.append(""))
        trailing = self._framer.finish()
        if trailing is not None:
            logger.warning(
                "Model output ended with incomplete JSON:\n%s", _preview(trailing)
            )
        return events

    def _decode(self, frames: Iterable[bytes]) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        for frame in frames:
            if not frame.startswith(b"{"):
                continue
            try:
                event = parse_event(frame)
            except ValidationError as e:
                logger.warning(
                    "Dropping undecodable model output frame (%d errors):\n%s",
                    e.error_count(), _preview(frame),
                )
                continue
            self.decoded_event_count += 1
            events.append(event)
        return events


def extract_model_text(frame: bytes) -> str | None:
    """Model text carried by one Gemini response envelope frame.

    A frame may be a single response object or an array of them.

    Raises:
        ValueError: If the frame is not a valid response envelope.
    """
    data = json.loads(frame)
    envelopes = data if isinstance(data, list) else [data]
    texts = [GenerateContentResponse.model_validate(item).model_text() for item in envelopes]
    text = "".join(texts)
    return text or None


class SSEStreamDecoder:
    """SSE lines -> envelope frames -> model text -> podcast events."""

    def __init__(
        self,
        max_buffer_bytes: int = DEFAULT_MAX_BUFFER_BYTES,
        log_wire: bool = False,
    ):
        self._accumulator = SSEDataAccumulator()
        self._envelope_framer = JSONFramer(max_buffer_bytes=max_buffer_bytes)
        self._events = StreamEventDecoder(max_buffer_bytes=max_buffer_bytes)
        self._log_wire = log_wire
        self.payload_count = 0
        self.saw_done_marker = False

    @property
    def decoded_event_count(self) -> int:
        return self._events.decoded_event_count

    def feed_line(self, line: str) -> list[StreamEvent]:
        payload = self._accumulator.ingest(line)
        if payload is None:
            return []
        return self._feed_payload(payload)

    def finish(self) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        payload = self._accumulator.flush()
        if payload is not None and not self.saw_done_marker:
            events.extend(self._feed_payload(payload))

        trailing = self._envelope_framer.finish()
        if trailing is not None:
            logger.warning("SSE stream ended with incomplete JSON:\n%s", _preview(trailing))

        events.extend(self._events.finish())
        return events

    def _feed_payload(self, payload: str) -> list[StreamEvent]:
        self.payload_count += 1
        if self._log_wire:
            logger.debug("SSE payload #%d: %s", self.payload_count, clip(payload))

        if payload == SSE_DONE_MARKER:
            self.saw_done_marker = True
            return []

        events: list[StreamEvent] = []
        for frame in self._envelope_framer.append(payload):
            try:
                model_text = extract_model_text(frame)
            except (ValueError, ValidationError) as e:
                logger.warning(
                    "Skipping undecodable SSE frame (%s):\n%s", e, _preview(frame)
                )
                continue
            if model_text:
                events.extend(self._events.append(model_text))
        return events


async def iter_stream_events(
    lines: AsyncIterator[str],
    max_buffer_bytes: int = DEFAULT_MAX_BUFFER_BYTES,
    log_wire: bool = False,
) -> AsyncIterator[StreamEvent]:
    """Decode an SSE line stream into podcast events, in arrival order.

    Raises:
        BufferExceededLimit: If either framing layer overflows.
    """
    decoder = SSEStreamDecoder(max_buffer_bytes=max_buffer_bytes, log_wire=log_wire)

    async for line in lines:
        for event in decoder.feed_line(line):
            yield event
        if decoder.saw_done_marker:
            break

    for event in decoder.finish():
        yield event

    logger.debug(
        "SSE stream finished: %d payloads, %d events decoded",
        decoder.payload_count, decoder.decoded_event_count,
    )
