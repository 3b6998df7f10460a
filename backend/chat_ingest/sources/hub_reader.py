"""Time-ordered reader over stored hub events."""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime

from sqlalchemy import and_, func, or_, select
from sqlalchemy.engine import Engine

from chat_ingest.db.errors import translate_db_errors
from chat_ingest.sources.source_interface import HubEventProvider
from chat_ingest.sources.tables import hub_messages
from chat_ingest.sources.types import HubEvent


class HubEventReader(HubEventProvider):
    """SQLAlchemy implementation of the hub event provider.

    Events are fetched in keyset pages on ``(created, id)`` so a long window
    never holds a single cursor open for the whole run.
    """

    def __init__(self, engine: Engine, *, page_size: int = 500) -> None:
        self._engine = engine
        self._page_size = page_size

    def iter_events(self, since: datetime, until: datetime) -> Iterator[HubEvent]:
        last: tuple[datetime, str] | None = None
        while True:
            page = self._read_page(since, until, last)
            if not page:
                return
            yield from page
            tail = page[-1]
            last = (tail.created, tail.id)

    def count_events(self) -> int:
        stmt = select(func.count()).select_from(hub_messages)
        with translate_db_errors("hub.count_events"):
            with self._engine.connect() as conn:
                return int(conn.execute(stmt).scalar_one())

    def _read_page(
        self,
        since: datetime,
        until: datetime,
        last: tuple[datetime, str] | None,
    ) -> list[HubEvent]:
        created = hub_messages.c.created
        conditions = [created >= since, created < until]
        if last is not None:
            conditions.append(or_(created > last[0], and_(created == last[0], hub_messages.c.id > last[1])))
        stmt = (
            select(hub_messages)
            .where(*conditions)
            .order_by(created.asc(), hub_messages.c.id.asc())
            .limit(self._page_size)
        )
        with translate_db_errors("hub.read_page"):
            with self._engine.connect() as conn:
                rows = conn.execute(stmt).mappings().all()
        return [
            HubEvent(
                id=str(row["id"]),
                created=row["created"],
                payload=row["payload"] if isinstance(row["payload"], dict) else {},
            )
            for row in rows
        ]
