"""Store connectivity routes."""

from fastapi import APIRouter, Depends
from sqlalchemy.engine import Engine

from chat_ingest.db.dependencies import get_hub_provider, get_store_engines
from chat_ingest.schemas.common import ApiResponse
from chat_ingest.schemas.ingest import StoreHealthRead
from chat_ingest.services.health import check_hub, check_store
from chat_ingest.sources.source_interface import HubEventProvider


router = APIRouter(prefix="/health")


@router.get("/stores", response_model=ApiResponse[list[StoreHealthRead]])
def get_store_health(
    engines: dict[str, Engine] = Depends(get_store_engines),
    hub: HubEventProvider | None = Depends(get_hub_provider),
) -> ApiResponse[list[StoreHealthRead]]:
    """Probe every configured store."""

    results = [check_store(name, engine) for name, engine in engines.items()]
    if hub is not None:
        results.append(check_hub(hub))
    return ApiResponse(data=[StoreHealthRead.model_validate(result) for result in results])
