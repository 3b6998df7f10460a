"""Tests for natural-key message upserts and two-phase aggregate writes."""

from __future__ import annotations

import unittest
from unittest.mock import patch

from sqlalchemy import create_engine, delete, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from chat_ingest.db.base import Base, init_target_store
from chat_ingest.errors import AggregateStateError
from chat_ingest.mapping import MapperContext, map_source_record
from chat_ingest.models import ConversationAggregate, MessageDocument
from chat_ingest.services import upsert_conversation as upsert_conversation_module
from chat_ingest.services.upsert_conversation import (
    AggregateDelta,
    get_existing_cursor,
    upsert_conversation_aggregate,
)
from chat_ingest.services.upsert_message import upsert_message
from chat_ingest.services.validation import validate_conversation
from chat_ingest.sources.types import ChatCursor, EvolutionMessageRow

CHAT = "5511999@s.whatsapp.net"


def _mapped(message_id: str, ts: int, text: str = "Oi", *, instance: str = "inst-1"):
    row = EvolutionMessageRow(
        id=f"row-{message_id}",
        key={"remoteJid": CHAT, "id": message_id, "fromMe": False},
        message_type="conversation",
        message={"conversation": text},
        message_timestamp=ts,
        instance_id=instance,
    )
    return map_source_record(row, MapperContext(tenant_id="t"))


class _TargetStoreCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.engine = create_engine(
            "sqlite+pysqlite:///:memory:",
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        cls.SessionLocal = sessionmaker(bind=cls.engine, autoflush=False, autocommit=False, future=True)
        init_target_store(cls.engine)

    @classmethod
    def tearDownClass(cls) -> None:
        Base.metadata.drop_all(cls.engine)
        cls.engine.dispose()

    def setUp(self) -> None:
        self.db: Session = self.SessionLocal()
        self.db.execute(delete(MessageDocument))
        self.db.execute(delete(ConversationAggregate))
        self.db.commit()

    def tearDown(self) -> None:
        self.db.close()


class UpsertMessageTests(_TargetStoreCase):
    def test_repeated_delivery_converges_to_one_row(self) -> None:
        mapped = _mapped("WA-1", 100)

        first = upsert_message(self.db, mapped.document, mapped.helper)
        second = upsert_message(self.db, mapped.document, mapped.helper)
        self.db.commit()

        self.assertEqual((first.inserted, first.updated), (1, 0))
        self.assertEqual((second.inserted, second.updated), (0, 0))
        stored = list(self.db.scalars(select(MessageDocument)))
        self.assertEqual(len(stored), 1)
        self.assertEqual(stored[0].source_message_id, "WA-1")
        self.assertEqual(stored[0].channel_id, "ev:cloud:inst-1")
        self.assertEqual(stored[0].canonical, mapped.document)

    def test_changed_document_overwrites_canonical(self) -> None:
        original = _mapped("WA-1", 100, "first")
        edited = _mapped("WA-1", 100, "edited")

        upsert_message(self.db, original.document, original.helper)
        outcome = upsert_message(self.db, edited.document, edited.helper)
        self.db.commit()

        self.assertEqual((outcome.inserted, outcome.updated), (0, 1))
        stored = self.db.scalars(select(MessageDocument)).one()
        self.assertEqual(stored.canonical["content"]["text"], "edited")

    def test_natural_key_is_scoped_by_channel(self) -> None:
        one = _mapped("WA-1", 100, instance="inst-1")
        other = _mapped("WA-1", 100, instance="inst-2")

        upsert_message(self.db, one.document, one.helper)
        outcome = upsert_message(self.db, other.document, other.helper)
        self.db.commit()

        self.assertEqual(outcome.inserted, 1)
        self.assertEqual(len(list(self.db.scalars(select(MessageDocument)))), 2)


class UpsertConversationAggregateTests(_TargetStoreCase):
    def _aggregate(self) -> ConversationAggregate:
        return self.db.scalars(select(ConversationAggregate)).one()

    def test_first_batch_creates_defaults_then_increments(self) -> None:
        created = upsert_conversation_aggregate(
            self.db,
            AggregateDelta(
                tenant_id="t",
                chat_id=CHAT,
                cursor=ChatCursor(last_ts_seconds=100, last_message_id="b"),
                imported_count=2,
                first_ts_iso="2024-01-01T00:00:00.000Z",
                last_ts_iso="2024-01-01T00:05:00.000Z",
            ),
            now_iso="2024-02-01T00:00:00.000Z",
        )
        self.db.commit()

        aggregate = self._aggregate()
        self.assertTrue(created)
        self.assertEqual(aggregate.message_count, 2)
        self.assertEqual(aggregate.cursor_imported_count, 2)
        self.assertEqual((aggregate.cursor_last_ts_seconds, aggregate.cursor_last_message_id), (100, "b"))
        self.assertEqual(aggregate.cursor_updated_at, "2024-02-01T00:00:00.000Z")
        self.assertEqual(aggregate.created_at, "2024-02-01T00:00:00.000Z")
        self.assertEqual(aggregate.first_ts, "2024-01-01T00:00:00.000Z")
        self.assertEqual(aggregate.last_ts, "2024-01-01T00:05:00.000Z")
        self.assertEqual(aggregate.connections, [{"channel": "whatsapp", "providerConversationId": CHAT}])
        self.assertTrue(validate_conversation(aggregate.to_document()).valid)

    def test_bounds_only_widen_and_counters_only_grow(self) -> None:
        deltas = [
            AggregateDelta("t", CHAT, ChatCursor(100, "a"), 1, "2024-01-02T00:00:00.000Z", "2024-01-03T00:00:00.000Z"),
            AggregateDelta("t", CHAT, ChatCursor(200, "b"), 0, "2024-01-02T12:00:00.000Z", "2024-01-02T13:00:00.000Z"),
            AggregateDelta("t", CHAT, ChatCursor(300, "c"), 3, "2024-01-01T00:00:00.000Z", "2024-01-04T00:00:00.000Z"),
        ]
        created = [upsert_conversation_aggregate(self.db, delta) for delta in deltas]
        self.db.commit()

        aggregate = self._aggregate()
        self.assertEqual(created, [True, False, False])
        self.assertEqual(aggregate.message_count, 4)
        self.assertEqual(aggregate.first_ts, "2024-01-01T00:00:00.000Z")
        self.assertEqual(aggregate.last_ts, "2024-01-04T00:00:00.000Z")
        self.assertEqual(aggregate.last_activity_at, "2024-01-04T00:00:00.000Z")
        self.assertEqual(get_existing_cursor(self.db, "t", CHAT), ChatCursor(300, "c"))

    def test_batch_without_valid_messages_keeps_bounds_null(self) -> None:
        upsert_conversation_aggregate(self.db, AggregateDelta("t", CHAT, ChatCursor(100, "a")))
        self.db.commit()

        aggregate = self._aggregate()
        self.assertIsNone(aggregate.first_ts)
        self.assertIsNone(aggregate.last_ts)
        self.assertEqual(aggregate.message_count, 0)
        self.assertEqual(aggregate.cursor_last_ts_seconds, 100)

    def test_delta_without_cursor_leaves_cursor_untouched(self) -> None:
        upsert_conversation_aggregate(self.db, AggregateDelta("t", CHAT, ChatCursor(100, "a"), 1))
        upsert_conversation_aggregate(self.db, AggregateDelta("t", CHAT, None, 2, last_ts_iso="2024-01-01T00:00:00.000Z"))
        self.db.commit()

        aggregate = self._aggregate()
        self.assertEqual(aggregate.message_count, 3)
        self.assertEqual((aggregate.cursor_last_ts_seconds, aggregate.cursor_last_message_id), (100, "a"))

    def test_missing_defaults_raise_aggregate_state_error(self) -> None:
        with patch.object(upsert_conversation_module, "_insert_defaults", return_value=False):
            with self.assertRaises(AggregateStateError):
                upsert_conversation_aggregate(self.db, AggregateDelta("t", CHAT, ChatCursor(100, "a"), 1))
        self.db.rollback()

    def test_unknown_conversation_has_no_cursor(self) -> None:
        self.assertIsNone(get_existing_cursor(self.db, "t", "missing"))

    def test_tenants_are_isolated(self) -> None:
        upsert_conversation_aggregate(self.db, AggregateDelta("t1", CHAT, ChatCursor(100, "a"), 1))
        upsert_conversation_aggregate(self.db, AggregateDelta("t2", CHAT, ChatCursor(200, "b"), 5))
        self.db.commit()

        self.assertEqual(get_existing_cursor(self.db, "t1", CHAT), ChatCursor(100, "a"))
        self.assertEqual(get_existing_cursor(self.db, "t2", CHAT), ChatCursor(200, "b"))


if __name__ == "__main__":
    unittest.main()
