"""Dialect-specific insert constructs for insert-if-absent writes."""

from typing import Any

from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from chat_ingest.errors import StoreError

_INSERT_BUILDERS = {
    "postgresql": postgresql_insert,
    "sqlite": sqlite_insert,
}


def upsert_insert(db: Session, entity: Any) -> Any:
    """Return an INSERT supporting ``on_conflict_do_nothing`` for the session's backend."""

    dialect_name = db.get_bind().dialect.name
    builder = _INSERT_BUILDERS.get(dialect_name)
    if builder is None:
        raise StoreError(f"Target store dialect '{dialect_name}' does not support conflict-aware inserts.")
    return builder(entity)
