"""Ingestion run and store health request/response schemas."""

from pydantic import BaseModel, ConfigDict, Field

from chat_ingest.schemas.filters import IncludeConversationsFilter, RangeFilterPolicy
from chat_ingest.services.ingestion import ConversationPhase


class IngestRunRequest(BaseModel):
    """Parameters of a synchronous ingestion run; unset values fall back to settings."""

    model_config = ConfigDict(extra="forbid")

    filter: RangeFilterPolicy = Field(default_factory=IncludeConversationsFilter)
    chat_id: str | None = Field(default=None, min_length=1)
    dry_run: bool = False
    batch_size: int | None = Field(default=None, ge=1)
    max_workers: int | None = Field(default=None, ge=1)


class CursorRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    last_ts_seconds: int | None
    last_message_id: str | None


class ConversationResultRead(BaseModel):
    """Outcome of one conversation within a run."""

    model_config = ConfigDict(from_attributes=True)

    chat_id: str
    phase: ConversationPhase
    batches: int
    rows_read: int
    accepted: int
    imported: int
    updated: int
    skipped_invalid: int
    cursor: CursorRead
    error: str | None


class IngestRunRead(BaseModel):
    """Run totals plus the per-conversation outcomes."""

    dry_run: bool
    conversations: list[ConversationResultRead]
    failed_count: int
    batches: int
    imported: int
    updated: int
    skipped_invalid: int


class StoreHealthRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str
    ok: bool
    latency_ms: float | None = None
    detail: str | None = None
    event_count: int | None = None
