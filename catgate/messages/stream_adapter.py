"""Stream adapter for converting generic events to Anthropic Messages SSE.

The client always receives the full envelope, in this order, no matter how
sparse the generic stream was::

    event: message_start
    data: {"type":"message_start","message":{...}}

    event: content_block_start
    data: {"type":"content_block_start","index":0,"content_block":{"type":"text","text":""}}

    event: content_block_delta
    data: {"type":"content_block_delta","index":0,"delta":{"type":"text_delta","text":"Hello"}}

    event: content_block_stop
    data: {"type":"content_block_stop","index":0}

    event: message_delta
    data: {"type":"message_delta","delta":{"stop_reason":"end_turn"},"usage":{...}}

    event: message_stop
    data: {"type":"message_stop"}

A stream with no content gets a single fallback text delta. A pipeline
failure ends the stream with ``event: error``.
"""

import logging
from typing import AsyncIterable, AsyncIterator, Optional

from ..core.exceptions import ProxyError
from ..core.sse import format_sse_event
from ..stream.aggregate import FALLBACK_TEXT
from ..stream.events import ContentDelta, Finish, GenericStreamEvent, RoleAnnounce, UsageUpdate
from .translator import _convert_stop_reason, build_error_payload

logger = logging.getLogger("catgate")


class GenericToMessagesStreamAdapter:
    """Converts a generic event stream to Anthropic Messages SSE events.

    Tracks which envelope events have been written so each is sent exactly
    once and in order.
    """

    def __init__(self, message_id: str, model: str):
        """Initialize the stream adapter.

        Args:
            message_id: The message ID to use (e.g., "msg_xxx")
            model: Model name for the response
        """
        self.message_id = message_id
        self.model = model

        self.accumulated_text = ""
        self.finish_reason: Optional[str] = None
        self.usage = UsageUpdate()
        self.error: Optional[Exception] = None

        # Envelope state
        self.message_started = False
        self.block_started = False
        self.finished = False

    @property
    def text(self) -> str:
        """Text the client actually received (fallback included)."""
        return self.accumulated_text

    async def adapt_stream(
        self,
        events: AsyncIterable[GenericStreamEvent],
    ) -> AsyncIterator[bytes]:
        """Transform generic events into Anthropic Messages SSE events.

        Args:
            events: Generic events from the translator

        Yields:
            Anthropic Messages API SSE events as bytes
        """
        try:
            async for event in events:
                for frame in self._process_event(event):
                    yield frame
        except ProxyError as exc:
            logger.warning(f"MessagesStreamAdapter: stream aborted: {exc.message}")
            self.error = exc
            yield self._emit_error(exc)
            return

        for frame in self._emit_terminal_events():
            yield frame

    def _process_event(self, event: GenericStreamEvent) -> list[bytes]:
        if self.finished:
            return []
        frames: list[bytes] = []

        if isinstance(event, RoleAnnounce):
            frames.extend(self._ensure_message_start())
        elif isinstance(event, ContentDelta):
            if event.text:
                frames.extend(self._emit_text(event.text))
        elif isinstance(event, UsageUpdate):
            self.usage = event
        elif isinstance(event, Finish):
            if event.reason:
                self.finish_reason = event.reason
            frames.extend(self._emit_terminal_events())
        return frames

    def _ensure_message_start(self) -> list[bytes]:
        if self.message_started:
            return []
        self.message_started = True
        return [self._emit_message_start()]

    def _emit_text(self, text: str) -> list[bytes]:
        frames = self._ensure_message_start()
        if not self.block_started:
            self.block_started = True
            frames.append(self._emit_content_block_start())
        self.accumulated_text += text
        frames.append(self._emit_content_block_delta(text))
        return frames

    def _emit_terminal_events(self) -> list[bytes]:
        """Close the envelope; a no-op once it is closed."""
        if self.finished:
            return []
        frames: list[bytes] = []
        if not self.accumulated_text:
            logger.debug("MessagesStreamAdapter: no content received, sending fallback text")
            frames.extend(self._emit_text(FALLBACK_TEXT))
        frames.append(self._emit_content_block_stop())
        frames.append(self._emit_message_delta(_convert_stop_reason(self.finish_reason)))
        frames.append(self._emit_message_stop())
        self.finished = True
        return frames

    def _emit_message_start(self) -> bytes:
        message = {
            "id": self.message_id,
            "type": "message",
            "role": "assistant",
            "content": [],
            "model": self.model,
            "stop_reason": None,
            "stop_sequence": None,
            "usage": {"input_tokens": self.usage.prompt_tokens, "output_tokens": 0},
        }
        return format_sse_event("message_start", {"type": "message_start", "message": message})

    def _emit_content_block_start(self) -> bytes:
        event_data = {
            "type": "content_block_start",
            "index": 0,
            "content_block": {"type": "text", "text": ""},
        }
        return format_sse_event("content_block_start", event_data)

    def _emit_content_block_delta(self, text: str) -> bytes:
        event_data = {
            "type": "content_block_delta",
            "index": 0,
            "delta": {"type": "text_delta", "text": text},
        }
        return format_sse_event("content_block_delta", event_data)

    def _emit_content_block_stop(self) -> bytes:
        return format_sse_event("content_block_stop", {"type": "content_block_stop", "index": 0})

    def _emit_message_delta(self, stop_reason: str) -> bytes:
        event_data = {
            "type": "message_delta",
            "delta": {"stop_reason": stop_reason, "stop_sequence": None},
            "usage": {
                "input_tokens": self.usage.prompt_tokens,
                "output_tokens": self.usage.completion_tokens,
            },
        }
        return format_sse_event("message_delta", event_data)

    def _emit_message_stop(self) -> bytes:
        return format_sse_event("message_stop", {"type": "message_stop"})

    def _emit_error(self, exc: ProxyError) -> bytes:
        return format_sse_event("error", build_error_payload(exc.message))
