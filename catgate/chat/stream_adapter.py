"""Stream adapter for converting generic events to Chat Completions chunks.

Each frame is a self-contained ``chat.completion.chunk``::

    data: {"id":"chatcmpl-x","object":"chat.completion.chunk","created":1,
           "model":"LongCat-Flash","choices":[{"index":0,
           "delta":{"role":"assistant","content":"Hel"},"finish_reason":null}]}

    data: {..., "choices":[{"index":0,"delta":{},"finish_reason":"stop"}],
           "usage":{...}}

    data: [DONE]
"""

import logging
import time
from typing import Any, AsyncIterable, AsyncIterator, Optional

from ..core.exceptions import ProxyError
from ..core.sse import DONE_MARKER, format_sse_data
from ..stream.aggregate import FALLBACK_TEXT
from ..stream.events import ContentDelta, Finish, GenericStreamEvent, RoleAnnounce, UsageUpdate
from .translator import build_error_payload, convert_finish_reason

logger = logging.getLogger("catgate")


class GenericToChatStreamAdapter:
    """Converts a generic event stream to Chat Completions SSE frames."""

    def __init__(self, completion_id: str, model: str, created: Optional[int] = None):
        self.completion_id = completion_id
        self.model = model
        self.created = created if created is not None else int(time.time())

        self.accumulated_text = ""
        self.usage: Optional[UsageUpdate] = None
        self.error: Optional[Exception] = None
        self.role_sent = False
        self.finished = False

    @property
    def text(self) -> str:
        return self.accumulated_text

    async def adapt_stream(
        self,
        events: AsyncIterable[GenericStreamEvent],
    ) -> AsyncIterator[bytes]:
        """Transform generic events into ``data:`` frames ending with ``[DONE]``."""
        try:
            async for event in events:
                for frame in self._process_event(event):
                    yield frame
        except ProxyError as exc:
            logger.warning(f"ChatStreamAdapter: stream aborted: {exc.message}")
            self.error = exc
            yield format_sse_data(build_error_payload(exc.message))
            yield format_sse_data(DONE_MARKER)
            return

        for frame in self._emit_finish(None):
            yield frame
        yield format_sse_data(DONE_MARKER)

    def _process_event(self, event: GenericStreamEvent) -> list[bytes]:
        if self.finished:
            return []
        if isinstance(event, RoleAnnounce):
            if self.role_sent:
                return []
            self.role_sent = True
            return [self._emit_chunk({"role": event.role})]
        if isinstance(event, ContentDelta):
            if not event.text:
                return []
            return [self._emit_content(event.text)]
        if isinstance(event, UsageUpdate):
            self.usage = event
            return []
        if isinstance(event, Finish):
            return self._emit_finish(event.reason)
        return []

    def _emit_content(self, text: str) -> bytes:
        delta: dict[str, Any] = {"content": text}
        if not self.role_sent:
            self.role_sent = True
            delta["role"] = "assistant"
        self.accumulated_text += text
        return self._emit_chunk(delta)

    def _emit_finish(self, reason: Optional[str]) -> list[bytes]:
        if self.finished:
            return []
        frames: list[bytes] = []
        if not self.accumulated_text:
            logger.debug("ChatStreamAdapter: no content received, sending fallback text")
            frames.append(self._emit_content(FALLBACK_TEXT))
        frames.append(self._emit_chunk({}, finish_reason=convert_finish_reason(reason)))
        self.finished = True
        return frames

    def _emit_chunk(self, delta: dict[str, Any], finish_reason: Optional[str] = None) -> bytes:
        chunk: dict[str, Any] = {
            "id": self.completion_id,
            "object": "chat.completion.chunk",
            "created": self.created,
            "model": self.model,
            "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
        }
        if finish_reason is not None and self.usage is not None:
            chunk["usage"] = {
                "prompt_tokens": self.usage.prompt_tokens,
                "completion_tokens": self.usage.completion_tokens,
                "total_tokens": self.usage.total_tokens,
            }
        return format_sse_data(chunk)
