"""Conversation aggregate model."""

from typing import Any

from sqlalchemy import BigInteger, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from chat_ingest.models.base import Base, IdMixin
from chat_ingest.models.document_type import DOCUMENT_COLUMN_TYPE


class ConversationAggregate(Base, IdMixin):
    """Per-conversation rollup with the persisted import cursor.

    Timestamps are ISO-8601 UTC strings so min/max comparisons work as plain
    string comparisons on every backend.
    """

    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint("tenant_id", "chat_id", name="u_conversations_tenant_chat"),
        Index("i_conversations_last_ts", "last_ts"),
    )

    tenant_id: Mapped[str] = mapped_column(String(128), nullable=False)
    chat_id: Mapped[str] = mapped_column(String(255), nullable=False)
    schema_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    state: Mapped[str] = mapped_column(String(16), nullable=False, default="active")
    created_at: Mapped[str] = mapped_column(String(32), nullable=False)
    last_activity_at: Mapped[str | None] = mapped_column(String(32), nullable=True)
    participants: Mapped[dict[str, Any]] = mapped_column(DOCUMENT_COLUMN_TYPE, nullable=False)
    connections: Mapped[list[dict[str, Any]]] = mapped_column(DOCUMENT_COLUMN_TYPE, nullable=False)
    memory: Mapped[dict[str, Any]] = mapped_column(DOCUMENT_COLUMN_TYPE, nullable=False)
    cursor_last_ts_seconds: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    cursor_last_message_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cursor_updated_at: Mapped[str | None] = mapped_column(String(32), nullable=True)
    cursor_imported_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    message_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    participant_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    first_ts: Mapped[str | None] = mapped_column(String(32), nullable=True)
    last_ts: Mapped[str | None] = mapped_column(String(32), nullable=True)
    top_senders: Mapped[list[dict[str, Any]]] = mapped_column(DOCUMENT_COLUMN_TYPE, nullable=False)

    def to_document(self) -> dict[str, Any]:
        """Return the aggregate in its document layout."""

        return {
            "schemaVersion": self.schema_version,
            "tenantId": self.tenant_id,
            "chatId": self.chat_id,
            "version": self.version,
            "state": self.state,
            "createdAt": self.created_at,
            "lastActivityAt": self.last_activity_at,
            "participants": self.participants,
            "connections": self.connections,
            "memory": self.memory,
            "cursor": {
                "last_ts_seconds": self.cursor_last_ts_seconds,
                "last_message_id": self.cursor_last_message_id,
                "updated_at": self.cursor_updated_at,
                "imported_count": self.cursor_imported_count,
            },
            "message_count": self.message_count,
            "participant_count": self.participant_count,
            "first_ts": self.first_ts,
            "last_ts": self.last_ts,
            "top_senders": self.top_senders,
        }
