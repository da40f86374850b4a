"""Aggregation of generic events for non-streaming responses."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import AsyncIterable, Optional

from .events import ContentDelta, Finish, GenericStreamEvent, UsageUpdate

# Shown when the backend produced no content at all
FALLBACK_TEXT = "I apologize, but I'm unable to process your request at the moment."


@dataclass
class StreamAggregate:
    """Everything a single non-streaming response needs."""

    text: str = ""
    finish_reason: Optional[str] = None
    usage: UsageUpdate = field(default_factory=UsageUpdate)

    @property
    def content(self) -> str:
        return self.text or FALLBACK_TEXT

    def apply(self, event: GenericStreamEvent) -> None:
        if isinstance(event, ContentDelta):
            self.text += event.text
        elif isinstance(event, Finish) and event.reason:
            self.finish_reason = event.reason
        elif isinstance(event, UsageUpdate):
            self.usage = event


async def aggregate_events(events: AsyncIterable[GenericStreamEvent]) -> StreamAggregate:
    """Join content in arrival order; keep the last finish reason and usage."""
    aggregate = StreamAggregate()
    async for event in events:
        aggregate.apply(event)
    return aggregate
