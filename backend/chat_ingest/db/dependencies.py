"""FastAPI dependencies for store access."""

from collections.abc import Iterator

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from chat_ingest.config import get_settings
from chat_ingest.db.session import get_hub_engine, get_source_engine, get_target_engine, get_target_sessionmaker
from chat_ingest.sources.evolution_reader import EvolutionMessageReader
from chat_ingest.sources.hub_reader import HubEventReader
from chat_ingest.sources.source_interface import HubEventProvider, SourceRowProvider


def get_db() -> Iterator[Session]:
    """Yield a target store session per request."""

    db = get_target_sessionmaker()()
    try:
        yield db
    finally:
        db.close()


def get_target_sessions() -> sessionmaker[Session]:
    """Return the target session factory used by ingestion runs."""

    return get_target_sessionmaker()


def get_source_reader() -> SourceRowProvider:
    return EvolutionMessageReader(get_source_engine())


def get_hub_provider() -> HubEventProvider | None:
    """Return the hub reader, or ``None`` when no hub store is configured."""

    if not get_settings().hub_database_url:
        return None
    return HubEventReader(get_hub_engine())


def get_store_engines() -> dict[str, Engine]:
    return {"source": get_source_engine(), "target": get_target_engine()}
