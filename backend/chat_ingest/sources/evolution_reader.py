"""Cursor-paginated reader over the Evolution ``Message`` table."""

from __future__ import annotations

from collections.abc import Callable
from typing import TypeVar

from sqlalchemy import and_, or_, select
from sqlalchemy.engine import Connection, Engine, RowMapping

from chat_ingest.db.errors import translate_db_errors
from chat_ingest.sources.source_interface import SourceRowProvider
from chat_ingest.sources.tables import evolution_messages, natural_id, remote_jid
from chat_ingest.sources.types import ChatCursor, EvolutionMessageRow, MessageMeta, TimeBounds

T = TypeVar("T")

_ts = evolution_messages.c.messageTimestamp


class EvolutionMessageReader(SourceRowProvider):
    """SQLAlchemy implementation of the source row provider."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def discover_conversation_ids(self, limit: int) -> list[str]:
        stmt = (
            select(remote_jid.label("chat_id"))
            .where(remote_jid.is_not(None), remote_jid != "")
            .distinct()
            .order_by(remote_jid.asc())
            .limit(limit)
        )
        rows = self._run("discover_conversation_ids", lambda conn: conn.execute(stmt).scalars().all())
        return [str(chat_id) for chat_id in rows if chat_id]

    def read_batch(
        self,
        chat_id: str,
        cursor: ChatCursor,
        limit: int,
        bounds: TimeBounds | None = None,
    ) -> list[EvolutionMessageRow]:
        conditions = [remote_jid == chat_id]
        if cursor.last_ts_seconds is not None:
            if cursor.last_message_id is None:
                conditions.append(_ts > cursor.last_ts_seconds)
            else:
                conditions.append(
                    or_(
                        _ts > cursor.last_ts_seconds,
                        and_(_ts == cursor.last_ts_seconds, natural_id > cursor.last_message_id),
                    )
                )
        if bounds is not None:
            if bounds.since_seconds is not None:
                conditions.append(_ts >= bounds.since_seconds)
            if bounds.until_seconds is not None:
                conditions.append(_ts <= bounds.until_seconds)
        stmt = (
            select(evolution_messages, natural_id.label("ordering_id"))
            .where(*conditions)
            .order_by(_ts.asc(), natural_id.asc())
            .limit(limit)
        )
        rows = self._run("read_batch", lambda conn: conn.execute(stmt).mappings().all())
        return [_row_from_mapping(row) for row in rows]

    def latest_message_meta(self, chat_id: str) -> MessageMeta | None:
        return self._recent_meta(chat_id, offset=0)

    def nth_recent_boundary(self, chat_id: str, depth: int) -> MessageMeta | None:
        if depth <= 0:
            return None
        # Fewer than depth + 1 rows yields no boundary: import from the beginning.
        return self._recent_meta(chat_id, offset=depth)

    def _recent_meta(self, chat_id: str, *, offset: int) -> MessageMeta | None:
        stmt = (
            select(_ts.label("ts_seconds"), natural_id.label("message_id"))
            .where(remote_jid == chat_id)
            .order_by(_ts.desc(), natural_id.desc())
            .offset(offset)
            .limit(1)
        )
        row = self._run("recent_meta", lambda conn: conn.execute(stmt).first())
        if row is None:
            return None
        return MessageMeta(ts_seconds=int(row.ts_seconds), message_id=str(row.message_id))

    def _run(self, operation: str, work: Callable[[Connection], T]) -> T:
        with translate_db_errors(f"source.{operation}"):
            with self._engine.connect() as conn:
                return work(conn)


def _row_from_mapping(row: RowMapping) -> EvolutionMessageRow:
    return EvolutionMessageRow(
        id=str(row["id"]),
        key=row["key"] if isinstance(row["key"], dict) else {},
        push_name=row["pushName"],
        participant=row["participant"],
        message_type=row["messageType"] or "",
        message=row["message"] if isinstance(row["message"], dict) else None,
        context_info=row["contextInfo"],
        source=row["source"],
        message_timestamp=row["messageTimestamp"],
        instance_id=row["instanceId"] or "",
        ordering_id=str(row["ordering_id"]),
    )
