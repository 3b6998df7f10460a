"""Typed source records and pagination values independent of any database."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True, slots=True)
class ChatCursor:
    """High-water mark of ingestion progress within one conversation.

    Rows are consumed in ``(timestamp, natural id)`` order; the cursor names the
    last consumed row so the next read starts strictly after it.
    """

    last_ts_seconds: int | None = None
    last_message_id: str | None = None

    @property
    def is_initial(self) -> bool:
        return self.last_ts_seconds is None

    def advance(self, ts_seconds: int, message_id: str) -> ChatCursor:
        """Return the cursor positioned at the given row."""

        return ChatCursor(last_ts_seconds=ts_seconds, last_message_id=message_id)

    def precedes(self, ts_seconds: int, message_id: str) -> bool:
        """Return whether a row sorts strictly after this cursor."""

        if self.last_ts_seconds is None:
            return True
        if ts_seconds != self.last_ts_seconds:
            return ts_seconds > self.last_ts_seconds
        if self.last_message_id is None:
            return False
        return message_id > self.last_message_id


@dataclass(frozen=True, slots=True)
class TimeBounds:
    """Inclusive epoch-second window; ``None`` leaves that side open."""

    since_seconds: int | None = None
    until_seconds: int | None = None

    def contains(self, ts_seconds: int) -> bool:
        if self.since_seconds is not None and ts_seconds < self.since_seconds:
            return False
        if self.until_seconds is not None and ts_seconds > self.until_seconds:
            return False
        return True


@dataclass(frozen=True, slots=True)
class MessageMeta:
    """Position of one source row, used by range filter probes."""

    ts_seconds: int
    message_id: str


@dataclass(slots=True)
class EvolutionMessageRow:
    """One row of the Evolution ``Message`` table."""

    id: str
    key: dict[str, Any] = field(default_factory=dict)
    push_name: str | None = None
    participant: str | None = None
    message_type: str = ""
    message: dict[str, Any] | None = None
    context_info: Any = None
    source: str | None = None
    message_timestamp: int | None = None
    instance_id: str = ""
    ordering_id: str | None = None

    @property
    def natural_id(self) -> str:
        """Provider message id, falling back to the row id.

        Rows read from the database carry ``ordering_id``, the exact value the
        keyset predicate compares against, so the cursor never drifts from it.
        """

        if self.ordering_id is not None:
            return self.ordering_id
        key_id = self.key.get("id") if isinstance(self.key, dict) else None
        if isinstance(key_id, str) or (isinstance(key_id, int) and not isinstance(key_id, bool)):
            return str(key_id)
        return str(self.id)


@dataclass(slots=True)
class HubEvent:
    """One event envelope from the hub message store."""

    id: str
    created: datetime | None
    payload: dict[str, Any] = field(default_factory=dict)
