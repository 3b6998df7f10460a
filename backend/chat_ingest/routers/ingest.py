"""Ingestion run routes."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session, sessionmaker

from chat_ingest.config import Settings, get_settings
from chat_ingest.db.dependencies import get_source_reader, get_target_sessions
from chat_ingest.errors import ConfigurationError, IngestError, TransientIOError
from chat_ingest.schemas.common import ApiResponse
from chat_ingest.schemas.ingest import ConversationResultRead, IngestRunRead, IngestRunRequest
from chat_ingest.services.ingestion import IngestOptions, IngestRunSummary, run_ingestion
from chat_ingest.sources.source_interface import SourceRowProvider


router = APIRouter(prefix="/ingest")


@router.post("/runs", response_model=ApiResponse[IngestRunRead])
def create_ingest_run(
    payload: IngestRunRequest,
    reader: SourceRowProvider = Depends(get_source_reader),
    target_sessions: sessionmaker[Session] = Depends(get_target_sessions),
    settings: Settings = Depends(get_settings),
) -> ApiResponse[IngestRunRead]:
    """Run ingestion synchronously and return per-conversation outcomes."""

    options = IngestOptions(
        tenant_id=settings.tenant_id,
        batch_size=payload.batch_size or settings.batch_size,
        dry_run=payload.dry_run,
        channel_prefix=settings.channel_prefix,
        discovery_limit=settings.discovery_limit,
        max_workers=payload.max_workers or settings.ingest_workers,
    )
    try:
        summary = run_ingestion(
            reader=reader,
            target_sessions=None if payload.dry_run else target_sessions,
            policy=payload.filter,
            options=options,
            chat_id=payload.chat_id,
        )
    except ConfigurationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except TransientIOError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except IngestError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return ApiResponse(data=_run_read(summary))


def _run_read(summary: IngestRunSummary) -> IngestRunRead:
    return IngestRunRead(
        dry_run=summary.dry_run,
        conversations=[ConversationResultRead.model_validate(result) for result in summary.conversations],
        failed_count=summary.failed_count,
        batches=summary.batches,
        imported=summary.imported,
        updated=summary.updated,
        skipped_invalid=summary.skipped_invalid,
    )
