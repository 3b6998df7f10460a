"""Two-phase upsert of per-conversation aggregates.

Phase 1 inserts the aggregate with its defaults only when it does not exist
yet; uniqueness on ``(tenant_id, chat_id)`` makes the existence check atomic
with the insert. Phase 2 applies the additive counters, extends the
``first_ts``/``last_ts`` bounds and moves the cursor. The phases are separate
statements because the defaults and the increments touch the same fields.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import case, select, update
from sqlalchemy.orm import Session

from chat_ingest.db.errors import translate_db_errors
from chat_ingest.errors import AggregateStateError
from chat_ingest.mapping.mapper import CHANNEL
from chat_ingest.models.conversation import ConversationAggregate
from chat_ingest.services.dialect import upsert_insert
from chat_ingest.sources.types import ChatCursor
from chat_ingest.timeutils import utc_now_iso

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AggregateDelta:
    """Changes contributed by one processed batch."""

    tenant_id: str
    chat_id: str
    cursor: ChatCursor | None = None
    imported_count: int = 0
    first_ts_iso: str | None = None
    last_ts_iso: str | None = None


def upsert_conversation_aggregate(db: Session, delta: AggregateDelta, *, now_iso: str | None = None) -> bool:
    """Apply a batch delta to its conversation aggregate.

    Returns whether phase 1 created the aggregate. Must run inside the same
    transaction as the batch's message writes.
    """

    now = now_iso or utc_now_iso()
    with translate_db_errors("target.upsert_conversation"):
        created = _insert_defaults(db, delta, now)
        _apply_increment(db, delta, now)
    logger.debug(
        "conversation.aggregate_upserted chat_id=%s created=%s imported=%d cursor=%s",
        delta.chat_id,
        created,
        delta.imported_count,
        delta.cursor,
    )
    return created


def get_existing_cursor(db: Session, tenant_id: str, chat_id: str) -> ChatCursor | None:
    """Return the persisted cursor of a conversation, or ``None`` when it has no aggregate."""

    with translate_db_errors("target.get_existing_cursor"):
        row = db.execute(
            select(
                ConversationAggregate.cursor_last_ts_seconds,
                ConversationAggregate.cursor_last_message_id,
            ).where(
                ConversationAggregate.tenant_id == tenant_id,
                ConversationAggregate.chat_id == chat_id,
            )
        ).first()
    if row is None:
        return None
    return ChatCursor(last_ts_seconds=row.cursor_last_ts_seconds, last_message_id=row.cursor_last_message_id)


def _insert_defaults(db: Session, delta: AggregateDelta, now: str) -> bool:
    stmt = (
        upsert_insert(db, ConversationAggregate)
        .values(
            tenant_id=delta.tenant_id,
            chat_id=delta.chat_id,
            schema_version=1,
            version=1,
            state="active",
            created_at=now,
            last_activity_at=delta.last_ts_iso,
            participants={"userIds": [], "agentIds": [], "botIds": []},
            connections=[{"channel": CHANNEL, "providerConversationId": delta.chat_id}],
            memory={},
            cursor_last_ts_seconds=None,
            cursor_last_message_id=None,
            cursor_updated_at=None,
            cursor_imported_count=0,
            message_count=0,
            participant_count=0,
            first_ts=delta.first_ts_iso,
            last_ts=delta.last_ts_iso,
            top_senders=[],
        )
        .on_conflict_do_nothing(index_elements=["tenant_id", "chat_id"])
    )
    return db.execute(stmt).rowcount == 1


def _apply_increment(db: Session, delta: AggregateDelta, now: str) -> None:
    agg = ConversationAggregate
    values: dict[str, object] = {
        "message_count": agg.message_count + delta.imported_count,
        "cursor_imported_count": agg.cursor_imported_count + delta.imported_count,
    }
    if delta.cursor is not None:
        values["cursor_last_ts_seconds"] = delta.cursor.last_ts_seconds
        values["cursor_last_message_id"] = delta.cursor.last_message_id
        values["cursor_updated_at"] = now
    if delta.first_ts_iso is not None:
        values["first_ts"] = case(
            (agg.first_ts.is_(None), delta.first_ts_iso),
            (agg.first_ts > delta.first_ts_iso, delta.first_ts_iso),
            else_=agg.first_ts,
        )
    if delta.last_ts_iso is not None:
        values["last_ts"] = case(
            (agg.last_ts.is_(None), delta.last_ts_iso),
            (agg.last_ts < delta.last_ts_iso, delta.last_ts_iso),
            else_=agg.last_ts,
        )
        values["last_activity_at"] = case(
            (agg.last_activity_at.is_(None), delta.last_ts_iso),
            (agg.last_activity_at < delta.last_ts_iso, delta.last_ts_iso),
            else_=agg.last_activity_at,
        )
    result = db.execute(
        update(agg)
        .where(agg.tenant_id == delta.tenant_id, agg.chat_id == delta.chat_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise AggregateStateError(
            f"Conversation aggregate {delta.tenant_id}/{delta.chat_id} is missing; "
            "defaults must exist before increments are applied."
        )
