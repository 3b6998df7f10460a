"""Translation of SQLAlchemy failures into the ingestion error taxonomy."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError, SQLAlchemyError

from chat_ingest.errors import StoreError, TransientIOError

logger = logging.getLogger(__name__)


@contextmanager
def translate_db_errors(operation: str) -> Iterator[None]:
    """Re-raise connectivity failures as transient and everything else as store errors."""

    try:
        yield
    except DBAPIError as exc:
        transient = exc.connection_invalidated or isinstance(exc, (OperationalError, InterfaceError))
        logger.warning("%s_failed transient=%s error=%s", operation, transient, exc.orig)
        if transient:
            raise TransientIOError(f"{operation} failed: {exc.orig}") from exc
        raise StoreError(f"{operation} failed: {exc.orig}") from exc
    except SQLAlchemyError as exc:
        logger.warning("%s_failed transient=False error=%s", operation, exc)
        raise StoreError(f"{operation} failed: {exc}") from exc
