"""FastAPI application entrypoint."""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI

from chat_ingest.db.base import init_target_store
from chat_ingest.db.session import get_target_engine
from chat_ingest.errors import IngestError
from chat_ingest.routers import conversations, health, ingest

logger = logging.getLogger(__name__)


def _prepare_target_store() -> None:
    """Create target tables at process start so the first run does not pay for it."""

    try:
        init_target_store(get_target_engine())
    except IngestError:
        logger.exception("Target store bootstrap failed; continuing without it.")


@asynccontextmanager
async def lifespan(_: FastAPI):
    _prepare_target_store()
    yield


app = FastAPI(title="Chat Ingest API", version="0.1.0", lifespan=lifespan)

app.include_router(health.router, tags=["health"])
app.include_router(ingest.router, tags=["ingest"])
app.include_router(conversations.router, tags=["conversations"])


@app.get("/health")
def get_health() -> dict[str, str]:
    """Simple health check endpoint."""

    return {"status": "ok"}
