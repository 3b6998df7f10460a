"""Read-only providers of source message rows and hub events."""

from chat_ingest.sources.source_interface import HubEventProvider, SourceRowProvider
from chat_ingest.sources.types import ChatCursor, EvolutionMessageRow, HubEvent, MessageMeta, TimeBounds

__all__ = [
    "ChatCursor",
    "EvolutionMessageRow",
    "HubEvent",
    "HubEventProvider",
    "MessageMeta",
    "SourceRowProvider",
    "TimeBounds",
]
