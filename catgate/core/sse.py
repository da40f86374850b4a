"""SSE (Server-Sent Events) decoding and framing utilities."""

import codecs
import json
from typing import Any, Optional

DONE_MARKER = "[DONE]"


class SSELineDecoder:
    """Incrementally split an SSE byte stream into ``data:`` payloads.

    The backend is read line by line: every line starting with ``data:``
    carries one payload, other lines (comments, ``event:``, blanks) are
    skipped. Multi-byte characters split across chunks are reassembled.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> list[str]:
        if not chunk:
            return []
        text = self._decoder.decode(chunk)
        self._buffer += text.replace("\r\n", "\n").replace("\r", "\n")

        payloads: list[str] = []
        while True:
            newline = self._buffer.find("\n")
            if newline == -1:
                break
            line = self._buffer[:newline]
            self._buffer = self._buffer[newline + 1:]
            payload = self._parse_line(line)
            if payload is not None:
                payloads.append(payload)
        return payloads

    def flush(self) -> list[str]:
        """Return the payload of a trailing line that had no newline."""
        self._buffer += self._decoder.decode(b"", final=True)
        line, self._buffer = self._buffer, ""
        payload = self._parse_line(line)
        return [payload] if payload is not None else []

    @staticmethod
    def _parse_line(line: str) -> Optional[str]:
        line = line.strip()
        if not line.startswith("data:"):
            return None
        payload = line[5:].strip()
        return payload or None


def format_sse_event(event_type: str, data: dict[str, Any]) -> bytes:
    """Format a named SSE event (``event:`` + ``data:``)."""
    json_str = json.dumps(data, ensure_ascii=False)
    return f"event: {event_type}\ndata: {json_str}\n\n".encode("utf-8")


def format_sse_data(data: dict[str, Any] | str) -> bytes:
    """Format an unnamed SSE data frame."""
    if not isinstance(data, str):
        data = json.dumps(data, ensure_ascii=False)
    return f"data: {data}\n\n".encode("utf-8")
