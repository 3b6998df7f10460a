"""Incremental ingestion driver.

Each conversation moves through resuming -> bounding -> paging/flushing ->
done. A batch is mapped and validated in memory, then its message writes and
aggregate update are committed in one target transaction; only after that
commit does the cursor move. A failing batch is discarded whole and re-read by
the next run.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from time import perf_counter

from sqlalchemy.orm import Session, sessionmaker

from chat_ingest.errors import IngestError, ValidationError
from chat_ingest.mapping import MappedMessage, MapperContext, map_source_record
from chat_ingest.schemas.filters import RangeFilterPolicy
from chat_ingest.services.range_filter import compute_bounds
from chat_ingest.services.upsert_conversation import (
    AggregateDelta,
    get_existing_cursor,
    upsert_conversation_aggregate,
)
from chat_ingest.services.upsert_message import upsert_message
from chat_ingest.services.validation import require_valid_message
from chat_ingest.sources.source_interface import SourceRowProvider
from chat_ingest.sources.types import ChatCursor, EvolutionMessageRow

logger = logging.getLogger(__name__)


class ConversationPhase(str, Enum):
    RESUMING = "resuming"
    BOUNDING = "bounding"
    PAGING = "paging"
    FLUSHING = "flushing"
    DONE = "done"
    FAILED = "failed"
    INTERRUPTED = "interrupted"


@dataclass(frozen=True, slots=True)
class IngestOptions:
    """Run-wide ingestion parameters."""

    tenant_id: str
    batch_size: int = 2000
    dry_run: bool = False
    channel_prefix: str = "ev:cloud"
    discovery_limit: int = 10000
    max_workers: int = 1


@dataclass(slots=True)
class ConversationIngestResult:
    """Per-conversation outcome reported to the caller."""

    chat_id: str
    phase: ConversationPhase = ConversationPhase.RESUMING
    batches: int = 0
    rows_read: int = 0
    accepted: int = 0
    imported: int = 0
    updated: int = 0
    skipped_invalid: int = 0
    cursor: ChatCursor = field(default_factory=ChatCursor)
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.phase is ConversationPhase.FAILED


@dataclass(slots=True)
class IngestRunSummary:
    """Run-level totals across conversations."""

    dry_run: bool
    conversations: list[ConversationIngestResult] = field(default_factory=list)

    @property
    def failed_count(self) -> int:
        return sum(1 for result in self.conversations if result.failed)

    @property
    def batches(self) -> int:
        return sum(result.batches for result in self.conversations)

    @property
    def imported(self) -> int:
        return sum(result.imported for result in self.conversations)

    @property
    def updated(self) -> int:
        return sum(result.updated for result in self.conversations)

    @property
    def skipped_invalid(self) -> int:
        return sum(result.skipped_invalid for result in self.conversations)


@dataclass(slots=True)
class _PreparedBatch:
    accepted: list[MappedMessage]
    skipped_invalid: int
    cursor: ChatCursor
    first_ts_iso: str | None
    last_ts_iso: str | None


def resolve_conversation_ids(
    reader: SourceRowProvider,
    policy: RangeFilterPolicy,
    options: IngestOptions,
    *,
    chat_id: str | None = None,
) -> list[str]:
    """Return the conversations this run will process."""

    if chat_id:
        return [chat_id]
    if policy.conversation_ids:
        return list(dict.fromkeys(policy.conversation_ids))
    return reader.discover_conversation_ids(options.discovery_limit)


def run_ingestion(
    *,
    reader: SourceRowProvider,
    target_sessions: sessionmaker[Session] | None,
    policy: RangeFilterPolicy,
    options: IngestOptions,
    chat_id: str | None = None,
    stop_event: threading.Event | None = None,
) -> IngestRunSummary:
    """Ingest every selected conversation; one failing conversation never stops the others."""

    total_started = perf_counter()
    chat_ids = resolve_conversation_ids(reader, policy, options, chat_id=chat_id)
    logger.info(
        "ingest.run_started conversations=%d policy=%s dry_run=%s workers=%d",
        len(chat_ids),
        policy.type,
        options.dry_run,
        options.max_workers,
    )

    def _one(conversation_id: str) -> ConversationIngestResult:
        return ingest_conversation(
            conversation_id,
            reader=reader,
            target_sessions=target_sessions,
            policy=policy,
            options=options,
            stop_event=stop_event,
        )

    summary = IngestRunSummary(dry_run=options.dry_run)
    if options.max_workers > 1 and len(chat_ids) > 1:
        with ThreadPoolExecutor(max_workers=options.max_workers, thread_name_prefix="ingest") as pool:
            summary.conversations = list(pool.map(_one, chat_ids))
    else:
        summary.conversations = [_one(conversation_id) for conversation_id in chat_ids]

    logger.info(
        (
            "ingest.run_completed conversations=%d failed=%d batches=%d imported=%d "
            "updated=%d skipped_invalid=%d dry_run=%s total_ms=%.2f"
        ),
        len(summary.conversations),
        summary.failed_count,
        summary.batches,
        summary.imported,
        summary.updated,
        summary.skipped_invalid,
        options.dry_run,
        (perf_counter() - total_started) * 1000.0,
    )
    return summary


def ingest_conversation(
    chat_id: str,
    *,
    reader: SourceRowProvider,
    target_sessions: sessionmaker[Session] | None,
    policy: RangeFilterPolicy,
    options: IngestOptions,
    stop_event: threading.Event | None = None,
) -> ConversationIngestResult:
    """Page through one conversation from its persisted cursor until an empty batch."""

    started = perf_counter()
    result = ConversationIngestResult(chat_id=chat_id)
    if _stop_requested(stop_event):
        result.phase = ConversationPhase.INTERRUPTED
        return result

    ctx = MapperContext(tenant_id=options.tenant_id, channel_prefix=options.channel_prefix)
    try:
        cursor = _resume_cursor(target_sessions, options.tenant_id, chat_id)
        result.cursor = cursor
        logger.debug(
            "ingest.cursor_resumed chat_id=%s initial=%s cursor_ts=%s cursor_id=%s",
            chat_id,
            cursor.is_initial,
            cursor.last_ts_seconds,
            cursor.last_message_id,
        )

        result.phase = ConversationPhase.BOUNDING
        bounds = compute_bounds(policy, chat_id, reader)

        result.phase = ConversationPhase.PAGING
        while True:
            if _stop_requested(stop_event):
                result.phase = ConversationPhase.INTERRUPTED
                break
            rows = reader.read_batch(chat_id, cursor, options.batch_size, bounds)
            if not rows:
                result.phase = ConversationPhase.DONE
                break

            prepared = _prepare_batch(rows, cursor, ctx)
            if options.dry_run or target_sessions is None:
                _log_dry_run(prepared)
            else:
                result.phase = ConversationPhase.FLUSHING
                inserted, updated = _flush_batch(target_sessions, prepared, options.tenant_id, chat_id)
                result.imported += inserted
                result.updated += updated
                result.phase = ConversationPhase.PAGING

            cursor = prepared.cursor
            result.cursor = cursor
            result.batches += 1
            result.rows_read += len(rows)
            result.accepted += len(prepared.accepted)
            result.skipped_invalid += prepared.skipped_invalid
    except IngestError as exc:
        result.phase = ConversationPhase.FAILED
        result.error = str(exc)
        logger.error(
            "ingest.conversation_failed chat_id=%s batches=%d cursor_ts=%s cursor_id=%s error=%s",
            chat_id,
            result.batches,
            result.cursor.last_ts_seconds,
            result.cursor.last_message_id,
            exc,
        )

    logger.info(
        (
            "ingest.conversation_processed chat_id=%s phase=%s batches=%d rows=%d imported=%d "
            "updated=%d skipped_invalid=%d cursor_ts=%s cursor_id=%s dry_run=%s elapsed_ms=%.2f"
        ),
        chat_id,
        result.phase.value,
        result.batches,
        result.rows_read,
        result.imported,
        result.updated,
        result.skipped_invalid,
        result.cursor.last_ts_seconds,
        result.cursor.last_message_id,
        options.dry_run,
        (perf_counter() - started) * 1000.0,
    )
    return result


def _resume_cursor(
    target_sessions: sessionmaker[Session] | None,
    tenant_id: str,
    chat_id: str,
) -> ChatCursor:
    if target_sessions is None:
        return ChatCursor()
    with target_sessions() as db:
        existing = get_existing_cursor(db, tenant_id, chat_id)
    return existing or ChatCursor()


def _prepare_batch(rows: list[EvolutionMessageRow], cursor: ChatCursor, ctx: MapperContext) -> _PreparedBatch:
    """Map and validate a batch without touching the target store."""

    accepted: list[MappedMessage] = []
    skipped = 0
    first_ts_iso: str | None = None
    last_ts_iso: str | None = None
    for row in rows:
        mapped = map_source_record(row, ctx)
        try:
            require_valid_message(mapped.document, mapped.helper.natural_id)
        except ValidationError as exc:
            skipped += 1
            logger.warning(
                "ingest.record_invalid chat_id=%s message_id=%s errors=%s",
                mapped.helper.chat_id,
                exc.natural_id,
                exc.errors,
            )
        else:
            accepted.append(mapped)
            ts_iso = mapped.helper.ts_iso
            first_ts_iso = ts_iso if first_ts_iso is None else min(first_ts_iso, ts_iso)
            last_ts_iso = ts_iso if last_ts_iso is None else max(last_ts_iso, ts_iso)
        # Invalid rows are skipped but still consumed, so they never block pagination.
        if row.message_timestamp is not None:
            cursor = cursor.advance(int(row.message_timestamp), row.natural_id)
    return _PreparedBatch(
        accepted=accepted,
        skipped_invalid=skipped,
        cursor=cursor,
        first_ts_iso=first_ts_iso,
        last_ts_iso=last_ts_iso,
    )


def _flush_batch(
    target_sessions: sessionmaker[Session],
    prepared: _PreparedBatch,
    tenant_id: str,
    chat_id: str,
) -> tuple[int, int]:
    inserted = 0
    updated = 0
    with target_sessions() as db, db.begin():
        for mapped in prepared.accepted:
            outcome = upsert_message(db, mapped.document, mapped.helper)
            inserted += outcome.inserted
            updated += outcome.updated
        upsert_conversation_aggregate(
            db,
            AggregateDelta(
                tenant_id=tenant_id,
                chat_id=chat_id,
                cursor=prepared.cursor,
                imported_count=inserted,
                first_ts_iso=prepared.first_ts_iso,
                last_ts_iso=prepared.last_ts_iso,
            ),
        )
    return inserted, updated


def _log_dry_run(prepared: _PreparedBatch) -> None:
    for mapped in prepared.accepted:
        logger.info(
            "ingest.dry_run_message chat_id=%s message_id=%s ts=%s role=%s text=%r",
            mapped.helper.chat_id,
            mapped.helper.natural_id,
            mapped.helper.ts_iso,
            mapped.document["sender"]["role"],
            mapped.document["content"].get("text"),
        )


def _stop_requested(stop_event: threading.Event | None) -> bool:
    return stop_event is not None and stop_event.is_set()
