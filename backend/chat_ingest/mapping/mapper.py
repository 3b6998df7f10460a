"""Canonical mapping for row-shaped and event-shaped message providers.

``map_source_record`` dispatches on the source record type; each variant only
extracts provider fields and hands them to ``_build_document`` so both variants
converge on the same canonical shape.
"""

from __future__ import annotations

from functools import singledispatch
from typing import Any

from chat_ingest.mapping.extract import (
    coerce_seconds,
    dig,
    extract_hub_text,
    extract_text_and_caption,
    first_present,
    hub_provider_message,
    jid_user,
)
from chat_ingest.mapping.types import HelperProjection, MappedMessage, MapperContext
from chat_ingest.sources.types import EvolutionMessageRow, HubEvent
from chat_ingest.timeutils import iso_from_datetime, iso_from_seconds, utc_now

SCHEMA_VERSION = 1
CHANNEL = "whatsapp"


@singledispatch
def map_source_record(record: Any, ctx: MapperContext) -> MappedMessage:
    """Map one source record to its canonical document and helper projection."""

    raise TypeError(f"No canonical mapping registered for {type(record).__name__}")


@map_source_record.register
def map_evolution_row(row: EvolutionMessageRow, ctx: MapperContext) -> MappedMessage:
    key = row.key if isinstance(row.key, dict) else {}
    chat_id = _as_text(key.get("remoteJid"))
    natural_id = row.natural_id
    from_me = bool(key.get("fromMe"))
    sender_id = _as_text(first_present(key.get("participant"), row.participant)) or None

    created_at = _timestamp(row.message_timestamp)
    extracted = extract_text_and_caption(row.message_type, row.message)

    if from_me:
        sender = {"channelId": chat_id, "role": "bot", "displayName": None}
    else:
        sender = {
            "channelId": sender_id or chat_id,
            "role": "user",
            "displayName": row.push_name if isinstance(row.push_name, str) and row.push_name else None,
        }

    document = _build_document(
        ctx,
        message_id=natural_id,
        chat_id=chat_id,
        direction="outbound" if from_me else "inbound",
        created_at=created_at,
        sender=sender,
        text=extracted.text,
        context=row.context_info if isinstance(row.context_info, dict) else None,
        raw={
            "key": row.key,
            "message": row.message,
            "messageType": row.message_type,
            "pushName": row.push_name,
            "participant": row.participant,
            "messageTimestamp": row.message_timestamp,
            "instanceId": row.instance_id,
            "source": row.source,
        },
    )
    helper = HelperProjection(
        natural_id=natural_id,
        chat_id=chat_id,
        sender_id=sender_id,
        ts_iso=created_at,
        instance_id=row.instance_id,
        channel_id=f"{ctx.channel_prefix}:{row.instance_id}",
        contact_id=jid_user(sender_id or chat_id),
    )
    return MappedMessage(document=document, helper=helper)


@map_source_record.register
def map_hub_event(event: HubEvent, ctx: MapperContext) -> MappedMessage:
    ev = event.payload if isinstance(event.payload, dict) else {}
    provider_message = hub_provider_message(ev)

    chat_id = _as_text(
        first_present(
            dig(ev, "message", "user", "sessionId"),
            dig(ev, "session", "sessionId"),
            dig(ev, "message", "user", "externalId"),
        )
    )
    natural_id = _as_text(first_present(dig(ev, "message", "id"), dig(provider_message, "id"), event.id))
    created_at = _timestamp(
        first_present(dig(ev, "message", "timestamp"), dig(provider_message, "timestamp"))
    )
    extracted = extract_hub_text(ev)

    inbound = "USER" in _as_text(ev.get("type")).upper()
    wa_id = _as_text(
        first_present(
            dig(ev, "message", "user", "waId"),
            dig(ev, "from", "userId"),
            dig(ev, "session", "user", "waId"),
        )
    )
    display_name = first_present(
        dig(ev, "message", "user", "name"),
        dig(ev, "rawMessage", "entry", 0, "changes", 0, "value", "contacts", 0, "profile", "name"),
    )
    if inbound:
        sender = {
            "channelId": wa_id or chat_id,
            "role": "user",
            "displayName": display_name if isinstance(display_name, str) else None,
        }
    else:
        sender = {"channelId": chat_id, "role": "bot", "displayName": None}

    session = ev.get("session")
    document = _build_document(
        ctx,
        message_id=natural_id,
        chat_id=chat_id,
        direction="inbound" if inbound else "outbound",
        created_at=created_at,
        sender=sender,
        text=extracted.text,
        context=session if isinstance(session, dict) else None,
        raw=ev,
    )
    instance_id = _as_text(first_present(dig(ev, "from", "instance"), dig(ev, "message", "user", "sessionId")))
    source_type = _as_text(dig(ev, "from", "type")) or "wa"
    helper = HelperProjection(
        natural_id=natural_id,
        chat_id=chat_id,
        sender_id=wa_id or None,
        ts_iso=created_at,
        instance_id=instance_id,
        channel_id=f"hub:{source_type}:{instance_id or 'unknown'}",
        contact_id=wa_id,
    )
    return MappedMessage(document=document, helper=helper)


def _build_document(
    ctx: MapperContext,
    *,
    message_id: str,
    chat_id: str,
    direction: str,
    created_at: str,
    sender: dict[str, Any],
    text: str,
    context: dict[str, Any] | None,
    raw: Any,
) -> dict[str, Any]:
    return {
        "schemaVersion": SCHEMA_VERSION,
        "tenantId": ctx.tenant_id,
        "messageId": message_id,
        "chatId": chat_id,
        "correlationId": None,
        "causationMessageId": None,
        "channel": CHANNEL,
        "direction": direction,
        "type": "message",
        "origin": "provider",
        "createdAt": created_at,
        "sender": sender,
        "recipients": [],
        "content": {"text": text},
        "context": context,
        "raw": raw,
        "derived": [],
    }


def _timestamp(value: Any) -> str:
    """Return the ISO string of a source timestamp in seconds.

    Wall-clock time is used only when the source timestamp is missing or unusable.
    """

    seconds = coerce_seconds(value)
    if seconds is not None:
        try:
            return iso_from_seconds(seconds)
        except (OverflowError, OSError, ValueError):
            pass
    return iso_from_datetime(utc_now())


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)
