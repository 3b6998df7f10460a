"""Engine and session factories for the source, hub and target stores."""

from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from chat_ingest.config import get_settings
from chat_ingest.errors import ConfigurationError


@lru_cache
def get_engine(url: str) -> Engine:
    """Return a pooled engine per database URL."""

    return create_engine(url, future=True, pool_pre_ping=True)


def get_source_engine() -> Engine:
    return get_engine(get_settings().source_database_url)


def get_target_engine() -> Engine:
    return get_engine(get_settings().target_database_url)


def get_hub_engine() -> Engine:
    url = get_settings().hub_database_url
    if not url:
        raise ConfigurationError("HUB_DATABASE_URL is not configured.")
    return get_engine(url)


@lru_cache
def get_target_sessionmaker() -> sessionmaker[Session]:
    return sessionmaker(bind=get_target_engine(), autoflush=False, autocommit=False, future=True)
