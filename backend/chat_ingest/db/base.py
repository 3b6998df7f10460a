"""SQLAlchemy metadata registry and target store bootstrap."""

import logging

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from chat_ingest.db.errors import translate_db_errors
from chat_ingest.models import ConversationAggregate, MessageDocument
from chat_ingest.models.base import Base

logger = logging.getLogger(__name__)

__all__ = ["Base", "ConversationAggregate", "MessageDocument", "init_target_store"]


def init_target_store(engine: Engine) -> None:
    """Create target tables and their indexes when they do not exist yet.

    Existing tables are never altered.
    """

    with translate_db_errors("target.init_store"):
        existing = set(inspect(engine).get_table_names())
        Base.metadata.create_all(engine, checkfirst=True)
    for table_name in sorted(Base.metadata.tables):
        if table_name not in existing:
            logger.info("target.table_created table=%s", table_name)
