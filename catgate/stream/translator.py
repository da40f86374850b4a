"""Translate the backend's cumulative event stream into generic delta events.

Every backend event carries the whole reply accumulated so far, not an
increment::

    data: {"content": "He", "contentStatus": "PROCESSING", "lastOne": false, ...}
    data: {"content": "Hello", "contentStatus": "PROCESSING", "lastOne": false, ...}
    data: {"content": "Hello!", "contentStatus": "FINISHED", "lastOne": true,
           "tokenInfo": {"promptTokens": 3, "completionTokens": 2, "totalTokens": 5,
                         "hasTokens": true}, ...}

The translator reconstructs the deltas (``"He"``, ``"llo"``, ``"!"``) and a
single terminal ``Finish``. Cumulative semantics never leave this module.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterable, AsyncIterator, Optional

from ..core.exceptions import MalformedUpstreamEvent
from ..core.sse import DONE_MARKER, SSELineDecoder
from .events import ContentDelta, Finish, GenericStreamEvent, RoleAnnounce, UsageUpdate

logger = logging.getLogger("catgate")

STATUS_PROCESSING = "PROCESSING"
STATUS_FINISHED = "FINISHED"


class CumulativeStreamTranslator:
    """Stateful translator for one backend response.

    Args:
        stream: When False, content is coalesced and delivered once at the
            end (one ``ContentDelta`` carrying the whole reply) instead of
            incrementally.
    """

    def __init__(self, stream: bool = True) -> None:
        self.stream = stream
        self.accumulated_text = ""
        self.finish_reason: Optional[str] = None
        self.usage: Optional[UsageUpdate] = None
        self.model: Optional[str] = None
        self.completed = False

        self._decoder = SSELineDecoder()
        # Last cumulative text the backend reported
        self._backend_text = ""
        self._role_announced = False
        self._finish_emitted = False
        self._events_seen = 0

    async def translate(
        self, byte_stream: AsyncIterable[bytes]
    ) -> AsyncIterator[GenericStreamEvent]:
        """Consume backend bytes until completion and yield generic events."""
        pending: list[GenericStreamEvent] = []

        async for chunk in byte_stream:
            for event in self.feed_bytes(chunk):
                if self.stream:
                    yield event
                else:
                    pending.append(event)
            if self.completed:
                break

        if not self.completed:
            for payload in self._decoder.flush():
                pending_events = self._feed_payload(payload)
                if self.stream:
                    for event in pending_events:
                        yield event
                else:
                    pending.extend(pending_events)

        tail = self.finish()
        if self.stream:
            for event in tail:
                yield event
        else:
            for event in coalesce(pending + tail):
                yield event

    def feed_bytes(self, chunk: bytes) -> list[GenericStreamEvent]:
        """Feed raw backend bytes; returns the events they complete."""
        events: list[GenericStreamEvent] = []
        for payload in self._decoder.feed(chunk):
            if self.completed:
                break
            events.extend(self._feed_payload(payload))
        return events

    def _feed_payload(self, payload: str) -> list[GenericStreamEvent]:
        if payload == DONE_MARKER:
            logger.debug("Translator: backend sent [DONE]")
            self.completed = True
            return []
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise MalformedUpstreamEvent(
                f"failed to parse backend event: {exc}", raw=payload[:200]
            ) from exc
        if not isinstance(data, dict):
            raise MalformedUpstreamEvent(
                "backend event is not a JSON object", raw=payload[:200]
            )
        return self.feed_event(data)

    def feed_event(self, data: dict[str, Any]) -> list[GenericStreamEvent]:
        """Apply one parsed backend event and return the generic events it yields."""
        if self.completed:
            return []
        self._events_seen += 1
        events: list[GenericStreamEvent] = []

        choice = _first_choice(data)
        delta = choice.get("delta") if isinstance(choice.get("delta"), dict) else {}
        status = data.get("contentStatus")
        completed = bool(data.get("lastOne")) or status == STATUS_FINISHED

        model = data.get("model")
        if not self.model and isinstance(model, str) and model:
            self.model = model

        explicit_reason = choice.get("finishReason")
        if isinstance(explicit_reason, str) and explicit_reason:
            self.finish_reason = explicit_reason
        elif completed and not self.finish_reason:
            self.finish_reason = "stop"

        if delta.get("role") and status == STATUS_PROCESSING and not self._role_announced:
            self._role_announced = True
            events.append(RoleAnnounce())

        text = self._delta_text(delta, data.get("content"))
        if text:
            self.accumulated_text += text
            events.append(ContentDelta(text))

        usage = _parse_usage(data.get("tokenInfo"))
        if usage is not None and usage != self.usage:
            self.usage = usage
            events.append(usage)

        if completed:
            self.completed = True
            events.extend(self.finish())

        return events

    def _delta_text(self, delta: dict[str, Any], cumulative: Any) -> str:
        explicit = delta.get("content")
        if isinstance(explicit, str) and explicit:
            if isinstance(cumulative, str) and cumulative:
                self._backend_text = cumulative
            else:
                self._backend_text += explicit
            return explicit
        if not isinstance(cumulative, str) or not cumulative:
            return ""
        previous, self._backend_text = self._backend_text, cumulative
        if cumulative.startswith(previous):
            return cumulative[len(previous):]
        # Resent or shortened text: pass it through whole rather than drop it
        logger.debug(
            f"Translator: cumulative text diverged ({len(cumulative)} chars vs "
            f"{len(previous)} previously reported), emitting it in full"
        )
        return cumulative

    def finish(self) -> list[GenericStreamEvent]:
        """Return the terminal ``Finish`` if it has not been emitted yet."""
        if self._finish_emitted:
            return []
        self._finish_emitted = True
        if not self.accumulated_text:
            logger.debug(f"Translator: stream ended with no content after {self._events_seen} events")
        return [Finish(self.finish_reason or "stop")]


def coalesce(events: list[GenericStreamEvent]) -> list[GenericStreamEvent]:
    """Collapse a full event list into one aggregated sequence.

    Keeps the first role announcement, joins all content into one delta,
    keeps the last usage and the last finish.
    """
    role = next((e for e in events if isinstance(e, RoleAnnounce)), None)
    text = "".join(e.text for e in events if isinstance(e, ContentDelta))
    usage = next((e for e in reversed(events) if isinstance(e, UsageUpdate)), None)
    finish = next((e for e in reversed(events) if isinstance(e, Finish)), Finish("stop"))

    result: list[GenericStreamEvent] = []
    if role is not None:
        result.append(role)
    if text:
        result.append(ContentDelta(text))
    if usage is not None:
        result.append(usage)
    result.append(finish)
    return result


def _first_choice(data: dict[str, Any]) -> dict[str, Any]:
    choices = data.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        return choices[0]
    return {}


def _parse_usage(token_info: Any) -> Optional[UsageUpdate]:
    if not isinstance(token_info, dict) or not token_info.get("hasTokens"):
        return None
    return UsageUpdate(
        prompt_tokens=int(token_info.get("promptTokens") or 0),
        completion_tokens=int(token_info.get("completionTokens") or 0),
        total_tokens=int(token_info.get("totalTokens") or 0),
    )
