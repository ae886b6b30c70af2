"""Server-Sent-Events framing: collect ``data:`` lines into event payloads."""


class SSEDataAccumulator:
    """Feed text lines one at a time; a blank line completes an event.

    Other SSE fields (``event:``, ``id:``, ``retry:``, comments) are ignored.
    Call :meth:`flush` at end of stream to recover a final event that was
    not followed by a blank line.
    """

    def __init__(self) -> None:
        self._data_lines: list[str] = []

    def ingest(self, line: str) -> str | None:
        normalized = line.strip("\r\n")

        if normalized.startswith("data:"):
            self._data_lines.append(normalized[len("data:"):].strip())
            return None

        # CRLF servers may leave a stray "\r" on the separator line
        if not normalized.strip():
            return self.flush()

        return None

    def flush(self) -> str | None:
        if not self._data_lines:
            return None
        payload = "\n".join(self._data_lines)
        self._data_lines.clear()
        return payload
