"""Windowed ingestion of hub events.

Hub events are read for a trailing window of days, mapped with the event
variant of the canonical mapper and validated. A dry run only summarizes what
would be written; otherwise events are written in pages, each page one target
transaction. Hub writes never move the row-source import cursor.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from time import perf_counter
from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from chat_ingest.errors import ConfigurationError, ValidationError
from chat_ingest.mapping import MappedMessage, MapperContext, map_source_record
from chat_ingest.services.upsert_conversation import AggregateDelta, upsert_conversation_aggregate
from chat_ingest.services.upsert_message import upsert_message
from chat_ingest.services.validation import require_valid_message
from chat_ingest.sources.source_interface import HubEventProvider
from chat_ingest.timeutils import utc_now

logger = logging.getLogger(__name__)

SAMPLE_SIZE = 3


@dataclass(slots=True)
class HubChatSummary:
    chat_id: str
    count: int = 0
    first_ts: str | None = None
    last_ts: str | None = None
    sample: list[dict[str, Any]] = field(default_factory=list)

    def observe(self, mapped: MappedMessage) -> None:
        ts_iso = mapped.helper.ts_iso
        self.count += 1
        self.first_ts = ts_iso if self.first_ts is None else min(self.first_ts, ts_iso)
        self.last_ts = ts_iso if self.last_ts is None else max(self.last_ts, ts_iso)
        if len(self.sample) < SAMPLE_SIZE:
            self.sample.append(
                {
                    "id": mapped.helper.natural_id,
                    "ts": ts_iso,
                    "role": mapped.document["sender"]["role"],
                    "text": str(mapped.document["content"].get("text") or ""),
                }
            )


@dataclass(slots=True)
class HubIngestSummary:
    since: datetime
    until: datetime
    dry_run: bool
    events_read: int = 0
    skipped_invalid: int = 0
    imported: int = 0
    updated: int = 0
    interrupted: bool = False
    chats: dict[str, HubChatSummary] = field(default_factory=dict)

    @property
    def accepted(self) -> int:
        return sum(chat.count for chat in self.chats.values())


def run_hub_ingestion(
    provider: HubEventProvider,
    *,
    days: int,
    tenant_id: str,
    dry_run: bool = True,
    target_sessions: sessionmaker[Session] | None = None,
    batch_size: int = 500,
    now: datetime | None = None,
    stop_event: threading.Event | None = None,
) -> HubIngestSummary:
    """Map, validate and optionally write hub events created in ``[now - days, now)``.

    A set ``stop_event`` ends the run before the next event; events already
    accepted are still written.
    """

    if days <= 0:
        raise ConfigurationError("Hub ingestion needs a positive number of days.")
    if not dry_run and target_sessions is None:
        raise ConfigurationError("Hub ingestion writes need a target store.")

    started = perf_counter()
    until = now or utc_now()
    summary = HubIngestSummary(since=until - timedelta(days=days), until=until, dry_run=dry_run)
    ctx = MapperContext(tenant_id=tenant_id)
    logger.info(
        "hub.ingest_started since=%s until=%s dry_run=%s",
        summary.since.isoformat(),
        summary.until.isoformat(),
        dry_run,
    )

    page: list[MappedMessage] = []
    for event in provider.iter_events(summary.since, summary.until):
        if stop_event is not None and stop_event.is_set():
            summary.interrupted = True
            logger.info("hub.ingest_interrupted events=%d", summary.events_read)
            break
        summary.events_read += 1
        mapped = map_source_record(event, ctx)
        try:
            require_valid_message(mapped.document, mapped.helper.natural_id)
        except ValidationError as exc:
            summary.skipped_invalid += 1
            logger.warning("hub.event_invalid event_id=%s message_id=%s errors=%s", event.id, exc.natural_id, exc.errors)
            continue

        chat_id = mapped.helper.chat_id
        summary.chats.setdefault(chat_id, HubChatSummary(chat_id=chat_id)).observe(mapped)
        if dry_run:
            logger.info(
                "hub.dry_run_message chat_id=%s message_id=%s ts=%s role=%s",
                chat_id,
                mapped.helper.natural_id,
                mapped.helper.ts_iso,
                mapped.document["sender"]["role"],
            )
            continue

        page.append(mapped)
        if len(page) >= batch_size:
            _write_page(target_sessions, page, tenant_id, summary)
            page = []

    if page:
        _write_page(target_sessions, page, tenant_id, summary)

    for chat in summary.chats.values():
        logger.info(
            "hub.chat_summary chat_id=%s count=%d first_ts=%s last_ts=%s sample=%s",
            chat.chat_id,
            chat.count,
            chat.first_ts,
            chat.last_ts,
            chat.sample,
        )
    logger.info(
        "hub.ingest_completed chats=%d events=%d accepted=%d skipped_invalid=%d imported=%d updated=%d "
        "interrupted=%s dry_run=%s elapsed_ms=%.2f",
        len(summary.chats),
        summary.events_read,
        summary.accepted,
        summary.skipped_invalid,
        summary.imported,
        summary.updated,
        summary.interrupted,
        dry_run,
        (perf_counter() - started) * 1000.0,
    )
    return summary


def _write_page(
    target_sessions: sessionmaker[Session],
    page: list[MappedMessage],
    tenant_id: str,
    summary: HubIngestSummary,
) -> None:
    by_chat: dict[str, list[MappedMessage]] = {}
    for mapped in page:
        by_chat.setdefault(mapped.helper.chat_id, []).append(mapped)

    inserted_total = 0
    updated_total = 0
    with target_sessions() as db, db.begin():
        for chat_id, messages in by_chat.items():
            inserted = 0
            for mapped in messages:
                outcome = upsert_message(db, mapped.document, mapped.helper)
                inserted += outcome.inserted
                updated_total += outcome.updated
            ts_values = [mapped.helper.ts_iso for mapped in messages]
            upsert_conversation_aggregate(
                db,
                AggregateDelta(
                    tenant_id=tenant_id,
                    chat_id=chat_id,
                    imported_count=inserted,
                    first_ts_iso=min(ts_values),
                    last_ts_iso=max(ts_values),
                ),
            )
            inserted_total += inserted

    summary.imported += inserted_total
    summary.updated += updated_total
    logger.info("hub.page_written messages=%d chats=%d imported=%d", len(page), len(by_chat), inserted_total)
