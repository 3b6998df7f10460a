"""Read access to ingested conversations and their canonical messages."""

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from chat_ingest.models.conversation import ConversationAggregate
from chat_ingest.models.message_document import MessageDocument
from chat_ingest.services.validation import validate_conversation

logger = logging.getLogger(__name__)


def get_conversation_document(db: Session, tenant_id: str, chat_id: str) -> dict[str, Any] | None:
    """Return the aggregate document of a conversation, if it was ever ingested."""

    aggregate = db.scalar(
        select(ConversationAggregate).where(
            ConversationAggregate.tenant_id == tenant_id,
            ConversationAggregate.chat_id == chat_id,
        )
    )
    if aggregate is None:
        return None
    document = aggregate.to_document()
    result = validate_conversation(document)
    if not result.valid:
        logger.warning("conversation.document_invalid chat_id=%s errors=%s", chat_id, result.errors)
    return document


def list_canonical_messages(
    db: Session,
    tenant_id: str,
    chat_id: str,
    *,
    limit: int = 100,
    offset: int = 0,
) -> list[dict[str, Any]]:
    """Return canonical message documents of a conversation ordered by creation time."""

    stmt = (
        select(MessageDocument.canonical)
        .where(MessageDocument.tenant_id == tenant_id, MessageDocument.chat_id == chat_id)
        .order_by(MessageDocument.ts_iso.asc(), MessageDocument.id.asc())
        .limit(limit)
        .offset(offset)
    )
    return list(db.scalars(stmt).all())
