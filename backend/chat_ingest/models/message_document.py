"""Canonical message document model."""

from typing import Any

from sqlalchemy import Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from chat_ingest.models.base import Base, CreatedAtMixin, IdMixin
from chat_ingest.models.document_type import DOCUMENT_COLUMN_TYPE


class MessageDocument(Base, IdMixin, CreatedAtMixin):
    """Stored canonical message keyed by its provider-scoped natural key."""

    __tablename__ = "messages"
    __table_args__ = (
        UniqueConstraint("channel_id", "source_message_id", name="u_messages_channel_source_message"),
        Index("i_messages_chat_ts", "chat_id", "ts_iso"),
    )

    source_message_id: Mapped[str] = mapped_column(String(255), nullable=False)
    channel_id: Mapped[str] = mapped_column(String(255), nullable=False)
    chat_id: Mapped[str] = mapped_column(String(255), nullable=False)
    tenant_id: Mapped[str] = mapped_column(String(128), nullable=False)
    sender_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    instance_id: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    contact_id: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    ts_iso: Mapped[str] = mapped_column(String(32), nullable=False)
    canonical: Mapped[dict[str, Any]] = mapped_column(DOCUMENT_COLUMN_TYPE, nullable=False)
