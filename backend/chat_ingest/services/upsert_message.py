"""Idempotent natural-key writes of canonical message documents."""

from dataclasses import dataclass
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from chat_ingest.db.errors import translate_db_errors
from chat_ingest.mapping.types import HelperProjection
from chat_ingest.models.message_document import MessageDocument
from chat_ingest.services.dialect import upsert_insert

NATURAL_KEY_COLUMNS = ("channel_id", "source_message_id")


@dataclass(frozen=True, slots=True)
class UpsertOutcome:
    """Whether a write created a new document or changed an existing one."""

    inserted: int = 0
    updated: int = 0


def upsert_message(db: Session, document: dict[str, Any], helper: HelperProjection) -> UpsertOutcome:
    """Insert a message document if absent, else overwrite its canonical fields.

    Keying fields are written once on insert; ``canonical`` and ``ts_iso``
    always reflect the latest delivery. Repeated delivery of the same source
    row converges to one document.
    """

    with translate_db_errors("target.upsert_message"):
        insert_stmt = (
            upsert_insert(db, MessageDocument)
            .values(
                source_message_id=helper.natural_id,
                channel_id=helper.channel_id,
                chat_id=helper.chat_id,
                tenant_id=document["tenantId"],
                sender_id=helper.sender_id,
                instance_id=helper.instance_id,
                contact_id=helper.contact_id,
                ts_iso=helper.ts_iso,
                canonical=document,
            )
            .on_conflict_do_nothing(index_elements=list(NATURAL_KEY_COLUMNS))
        )
        if db.execute(insert_stmt).rowcount == 1:
            return UpsertOutcome(inserted=1)

        existing = db.execute(
            select(MessageDocument.id, MessageDocument.canonical, MessageDocument.ts_iso).where(
                MessageDocument.channel_id == helper.channel_id,
                MessageDocument.source_message_id == helper.natural_id,
            )
        ).one()
        if existing.canonical == document and existing.ts_iso == helper.ts_iso:
            return UpsertOutcome()
        db.execute(
            update(MessageDocument)
            .where(MessageDocument.id == existing.id)
            .values(canonical=document, ts_iso=helper.ts_iso)
            .execution_options(synchronize_session=False)
        )
        return UpsertOutcome(updated=1)
