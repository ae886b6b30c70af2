"""Incremental extraction of complete JSON values from an append-only stream.

Upstream fragments arrive at arbitrary byte boundaries, often mid-object, so
framing happens at the byte level and tracks string/escape state: braces
inside string literals are not structural.
"""

import logging

logger = logging.getLogger(__name__)

DEFAULT_MAX_BUFFER_BYTES = 2_000_000

_OPEN = frozenset(b"{[")
_CLOSE = frozenset(b"}]")
_QUOTE = ord('"')
_BACKSLASH = ord("\\")


class BufferExceededLimit(RuntimeError):
    """The pending partial value grew past the buffer cap."""

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(
            f"JSON framer buffer exceeded limit ({size} > {limit} bytes)."
        )


class JSONFramer:
    """Split a byte stream into complete top-level JSON objects/arrays.

    Scan state survives across :meth:`append` calls, so every byte is
    examined once. After each pass the consumed prefix (complete frames and
    stray bytes between them) is dropped, leaving only an in-progress value.
    """

    def __init__(self, max_buffer_bytes: int = DEFAULT_MAX_BUFFER_BYTES):
        self.max_buffer_bytes = max_buffer_bytes
        self._buffer = bytearray()
        self._reset_scan()

    def _reset_scan(self) -> None:
        self._pos = 0
        self._depth = 0
        self._in_string = False
        self._escaping = False
        self._start: int | None = None

    def append(self, text: str | bytes) -> list[bytes]:
        chunk = text.encode("utf-8") if isinstance(text, str) else bytes(text)
        self._buffer.extend(chunk)

        if len(self._buffer) > self.max_buffer_bytes:
            size = len(self._buffer)
            self._buffer.clear()
            self._reset_scan()
            raise BufferExceededLimit(size, self.max_buffer_bytes)

        return self._scan()

    def finish(self) -> bytes | None:
        """Return leftover non-whitespace bytes (a truncated value), then clear."""
        leftover = bytes(self._buffer).strip()
        self._buffer.clear()
        self._reset_scan()
        return leftover or None

    @property
    def pending_bytes(self) -> int:
        return len(self._buffer)

    def _scan(self) -> list[bytes]:
        frames: list[bytes] = []
        buf = self._buffer
        consumed = 0
        i = self._pos

        while i < len(buf):
            byte = buf[i]

            if self._start is None:
                if byte in _OPEN:
                    self._start = i
                    self._depth = 1
                else:
                    consumed = i + 1
            elif self._in_string:
                if self._escaping:
                    self._escaping = False
                elif byte == _BACKSLASH:
                    self._escaping = True
                elif byte == _QUOTE:
                    self._in_string = False
            elif byte == _QUOTE:
                self._in_string = True
            elif byte in _OPEN:
                self._depth += 1
            elif byte in _CLOSE:
                self._depth -= 1
                if self._depth == 0:
                    frames.append(bytes(buf[self._start:i + 1]))
                    self._start = None
                    consumed = i + 1
            i += 1

        if consumed:
            del buf[:consumed]
            i -= consumed
            if self._start is not None:
                self._start -= consumed
        self._pos = i

        return frames
