"""Provider interfaces consumed by the ingestion driver."""

from abc import ABC, abstractmethod
from collections.abc import Iterator
from datetime import datetime

from chat_ingest.sources.types import ChatCursor, EvolutionMessageRow, HubEvent, MessageMeta, TimeBounds


class SourceRowProvider(ABC):
    """Ordered, cursor-paginated access to source message rows."""

    @abstractmethod
    def discover_conversation_ids(self, limit: int) -> list[str]:
        """Return up to ``limit`` distinct conversation ids."""

    @abstractmethod
    def read_batch(
        self,
        chat_id: str,
        cursor: ChatCursor,
        limit: int,
        bounds: TimeBounds | None = None,
    ) -> list[EvolutionMessageRow]:
        """Return the next rows strictly after ``cursor`` in (timestamp, id) order."""

    @abstractmethod
    def latest_message_meta(self, chat_id: str) -> MessageMeta | None:
        """Return the position of the most recent row of a conversation."""

    @abstractmethod
    def nth_recent_boundary(self, chat_id: str, depth: int) -> MessageMeta | None:
        """Return the row ``depth`` places back from the most recent one."""


class HubEventProvider(ABC):
    """Time-ordered access to hub events."""

    @abstractmethod
    def iter_events(self, since: datetime, until: datetime) -> Iterator[HubEvent]:
        """Yield events with ``since <= created < until`` ordered by creation time."""

    @abstractmethod
    def count_events(self) -> int:
        """Return the number of stored hub events."""
