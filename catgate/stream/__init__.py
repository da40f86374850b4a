"""Backend stream translation: cumulative events -> generic delta events."""

from .aggregate import FALLBACK_TEXT, StreamAggregate, aggregate_events
from .events import ContentDelta, Finish, GenericStreamEvent, RoleAnnounce, UsageUpdate
from .relay import StreamRelay, relay_pipeline
from .translator import CumulativeStreamTranslator, coalesce

__all__ = [
    "FALLBACK_TEXT",
    "ContentDelta",
    "CumulativeStreamTranslator",
    "Finish",
    "GenericStreamEvent",
    "RoleAnnounce",
    "StreamAggregate",
    "StreamRelay",
    "UsageUpdate",
    "aggregate_events",
    "coalesce",
    "relay_pipeline",
]
