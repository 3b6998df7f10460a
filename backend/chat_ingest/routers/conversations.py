"""Ingested conversation read routes."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from sqlalchemy.orm import Session

from chat_ingest.config import Settings, get_settings
from chat_ingest.db.dependencies import get_db
from chat_ingest.schemas.common import ApiResponse
from chat_ingest.services.conversations import get_conversation_document, list_canonical_messages


router = APIRouter(prefix="/conversations/{chat_id}")


@router.get("", response_model=ApiResponse[dict[str, Any]])
def get_conversation(
    chat_id: str = Path(..., min_length=1),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> ApiResponse[dict[str, Any]]:
    """Return the conversation aggregate document, including its import cursor."""

    document = get_conversation_document(db, settings.tenant_id, chat_id)
    if document is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return ApiResponse(data=document)


@router.get("/messages", response_model=ApiResponse[list[dict[str, Any]]])
def get_conversation_messages(
    chat_id: str = Path(..., min_length=1),
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> ApiResponse[list[dict[str, Any]]]:
    """List canonical messages of a conversation in creation order."""

    return ApiResponse(
        data=list_canonical_messages(db, settings.tenant_id, chat_id, limit=limit, offset=offset)
    )
