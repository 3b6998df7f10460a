"""Table definitions for the read-only source stores.

These tables belong to other systems. They are declared on their own metadata
so the target store bootstrap never creates or touches them.
"""

from sqlalchemy import Column, DateTime, Integer, MetaData, String, Table, cast, func

from chat_ingest.models.document_type import DOCUMENT_COLUMN_TYPE

source_metadata = MetaData()

evolution_messages = Table(
    "Message",
    source_metadata,
    Column("id", String(255), primary_key=True),
    Column("key", DOCUMENT_COLUMN_TYPE, nullable=False),
    Column("pushName", String(255), nullable=True),
    Column("participant", String(255), nullable=True),
    Column("messageType", String(100), nullable=False),
    Column("message", DOCUMENT_COLUMN_TYPE, nullable=True),
    Column("contextInfo", DOCUMENT_COLUMN_TYPE, nullable=True),
    Column("source", String(100), nullable=True),
    Column("messageTimestamp", Integer, nullable=False),
    Column("instanceId", String(255), nullable=False),
)

hub_metadata = MetaData()

hub_messages = Table(
    "hub_messages",
    hub_metadata,
    Column("id", String(255), primary_key=True),
    Column("created", DateTime(timezone=True), nullable=False, index=True),
    Column("payload", DOCUMENT_COLUMN_TYPE, nullable=False),
)

remote_jid = evolution_messages.c.key["remoteJid"].as_string()
# Text on every dialect so keyset comparisons never mix numbers and strings.
natural_id = func.coalesce(cast(evolution_messages.c.key["id"].as_string(), String), evolution_messages.c.id)
