"""Tests for the hub event reader and windowed hub ingestion."""

from __future__ import annotations

import threading
import unittest
from collections.abc import Iterator
from datetime import datetime, timedelta, timezone

from sqlalchemy import create_engine, delete, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from chat_ingest.db.base import Base, init_target_store
from chat_ingest.errors import ConfigurationError
from chat_ingest.models import ConversationAggregate, MessageDocument
from chat_ingest.services.health import check_hub
from chat_ingest.services.hub_ingestion import run_hub_ingestion
from chat_ingest.sources.hub_reader import HubEventReader
from chat_ingest.sources.source_interface import HubEventProvider
from chat_ingest.sources.tables import hub_messages, hub_metadata
from chat_ingest.sources.types import HubEvent

NOW = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)


def hub_event(event_id: str, created: datetime, *, session: str = "session-1", text: str = "hello") -> dict:
    return {
        "id": event_id,
        "created": created,
        "payload": {
            "type": "USER_MESSAGE",
            "from": {"type": "wa", "instance": "hub-inst", "userId": "5511777"},
            "message": {
                "id": f"msg-{event_id}",
                "timestamp": int(created.timestamp()),
                "user": {"sessionId": session, "waId": "5511777", "name": "Bia"},
                "content": {"type": "text", "body": text},
            },
            "session": {"sessionId": session},
        },
    }


class _StoppingProvider(HubEventProvider):
    """Wraps a reader and requests a stop once `stop_after` events were handed out."""

    def __init__(self, inner: HubEventProvider, stop_event: threading.Event, stop_after: int) -> None:
        self.inner = inner
        self.stop_event = stop_event
        self.stop_after = stop_after

    def iter_events(self, since: datetime, until: datetime) -> Iterator[HubEvent]:
        for index, event in enumerate(self.inner.iter_events(since, until), start=1):
            yield event
            if index >= self.stop_after:
                self.stop_event.set()

    def count_events(self) -> int:
        return self.inner.count_events()


def _memory_engine():
    return create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


class HubIngestionTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.hub_engine = _memory_engine()
        hub_metadata.create_all(cls.hub_engine)
        cls.target_engine = _memory_engine()
        init_target_store(cls.target_engine)
        cls.SessionLocal = sessionmaker(bind=cls.target_engine, autoflush=False, autocommit=False, future=True)

    @classmethod
    def tearDownClass(cls) -> None:
        hub_metadata.drop_all(cls.hub_engine)
        Base.metadata.drop_all(cls.target_engine)
        cls.hub_engine.dispose()
        cls.target_engine.dispose()

    def setUp(self) -> None:
        with self.hub_engine.begin() as conn:
            conn.execute(delete(hub_messages))
        with self.SessionLocal() as db:
            db.execute(delete(MessageDocument))
            db.execute(delete(ConversationAggregate))
            db.commit()

    def _insert(self, *events: dict) -> None:
        with self.hub_engine.begin() as conn:
            conn.execute(hub_messages.insert(), list(events))

    def test_reader_pages_through_window_in_order(self) -> None:
        same_time = NOW - timedelta(hours=1)
        self._insert(
            hub_event("e3", same_time),
            hub_event("e1", NOW - timedelta(hours=5)),
            hub_event("e2", same_time),
            hub_event("too-old", NOW - timedelta(days=4)),
            hub_event("at-until", NOW),
        )
        reader = HubEventReader(self.hub_engine, page_size=2)

        events = list(reader.iter_events(NOW - timedelta(days=3), NOW))

        self.assertEqual([event.id for event in events], ["e1", "e2", "e3"])
        self.assertEqual(events[0].payload["message"]["id"], "msg-e1")
        self.assertEqual(reader.count_events(), 5)

    def test_dry_run_summarizes_per_chat(self) -> None:
        self._insert(
            *(hub_event(f"a{i}", NOW - timedelta(hours=10 - i), text=f"t{i}") for i in range(5)),
            hub_event("b0", NOW - timedelta(hours=2), session="session-2"),
        )

        summary = run_hub_ingestion(HubEventReader(self.hub_engine), days=3, tenant_id="t", now=NOW)

        self.assertTrue(summary.dry_run)
        self.assertEqual(summary.events_read, 6)
        self.assertEqual(summary.accepted, 6)
        chat = summary.chats["session-1"]
        self.assertEqual(chat.count, 5)
        self.assertEqual(chat.first_ts, "2024-05-10T02:00:00.000Z")
        self.assertEqual(chat.last_ts, "2024-05-10T06:00:00.000Z")
        self.assertEqual([sample["text"] for sample in chat.sample], ["t0", "t1", "t2"])
        self.assertEqual(summary.chats["session-2"].count, 1)
        with self.SessionLocal() as db:
            self.assertEqual(list(db.scalars(select(MessageDocument))), [])

    def test_write_mode_upserts_messages_and_aggregates(self) -> None:
        self._insert(*(hub_event(f"a{i}", NOW - timedelta(hours=10 - i)) for i in range(3)))
        reader = HubEventReader(self.hub_engine)

        first = run_hub_ingestion(
            reader, days=1, tenant_id="t", dry_run=False, target_sessions=self.SessionLocal, batch_size=2, now=NOW
        )
        second = run_hub_ingestion(
            reader, days=1, tenant_id="t", dry_run=False, target_sessions=self.SessionLocal, batch_size=2, now=NOW
        )

        self.assertEqual(first.imported, 3)
        self.assertEqual(second.imported, 0)
        with self.SessionLocal() as db:
            messages = list(db.scalars(select(MessageDocument)))
            aggregate = db.scalars(select(ConversationAggregate)).one()
        self.assertEqual(len(messages), 3)
        self.assertEqual({message.channel_id for message in messages}, {"hub:wa:hub-inst"})
        self.assertEqual(aggregate.chat_id, "session-1")
        self.assertEqual(aggregate.message_count, 3)
        self.assertEqual(aggregate.first_ts, "2024-05-10T02:00:00.000Z")
        self.assertEqual(aggregate.last_ts, "2024-05-10T04:00:00.000Z")
        self.assertIsNone(aggregate.cursor_last_ts_seconds)

    def test_events_without_message_id_are_stored_separately(self) -> None:
        events = [hub_event(f"a{i}", NOW - timedelta(hours=5 - i), text=f"text {i}") for i in range(2)]
        for event in events:
            del event["payload"]["message"]["id"]
        self._insert(*events)

        summary = run_hub_ingestion(
            HubEventReader(self.hub_engine),
            days=1,
            tenant_id="t",
            dry_run=False,
            target_sessions=self.SessionLocal,
            now=NOW,
        )

        self.assertEqual(summary.imported, 2)
        self.assertEqual(summary.updated, 0)
        with self.SessionLocal() as db:
            messages = list(db.scalars(select(MessageDocument).order_by(MessageDocument.source_message_id)))
            aggregate = db.scalars(select(ConversationAggregate)).one()
        self.assertEqual([message.source_message_id for message in messages], ["a0", "a1"])
        self.assertEqual([message.canonical["content"]["text"] for message in messages], ["text 0", "text 1"])
        self.assertEqual(aggregate.message_count, 2)

    def test_stop_event_ends_run_and_flushes_pending_page(self) -> None:
        self._insert(*(hub_event(f"a{i}", NOW - timedelta(hours=10 - i)) for i in range(5)))
        stop_event = threading.Event()
        provider = _StoppingProvider(HubEventReader(self.hub_engine), stop_event, stop_after=3)

        summary = run_hub_ingestion(
            provider,
            days=1,
            tenant_id="t",
            dry_run=False,
            target_sessions=self.SessionLocal,
            batch_size=2,
            now=NOW,
            stop_event=stop_event,
        )

        self.assertTrue(summary.interrupted)
        self.assertEqual(summary.events_read, 3)
        self.assertEqual(summary.imported, 3)
        with self.SessionLocal() as db:
            self.assertEqual(len(list(db.scalars(select(MessageDocument)))), 3)

    def test_invalid_arguments(self) -> None:
        reader = HubEventReader(self.hub_engine)
        with self.assertRaises(ConfigurationError):
            run_hub_ingestion(reader, days=0, tenant_id="t", now=NOW)
        with self.assertRaises(ConfigurationError):
            run_hub_ingestion(reader, days=1, tenant_id="t", dry_run=False, now=NOW)

    def test_hub_health_reports_count(self) -> None:
        self._insert(hub_event("e1", NOW))

        health = check_hub(HubEventReader(self.hub_engine))

        self.assertTrue(health.ok)
        self.assertEqual(health.event_count, 1)


if __name__ == "__main__":
    unittest.main()
