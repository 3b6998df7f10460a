"""Tests for the HTTP ingestion, conversation and health routes."""

from __future__ import annotations

import unittest

from fastapi.testclient import TestClient
from sqlalchemy import create_engine, delete
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from chat_ingest.config import Settings, get_settings
from chat_ingest.db.base import Base, init_target_store
from chat_ingest.db.dependencies import (
    get_db,
    get_hub_provider,
    get_source_reader,
    get_store_engines,
    get_target_sessions,
)
from chat_ingest.main import app
from chat_ingest.models import ConversationAggregate, MessageDocument
from chat_ingest.sources.evolution_reader import EvolutionMessageReader
from chat_ingest.sources.tables import evolution_messages, source_metadata

CHAT = "5511999@s.whatsapp.net"


def source_row(message_id: str, ts: int, text: str) -> dict:
    return {
        "id": f"row-{message_id}",
        "key": {"remoteJid": CHAT, "id": message_id, "fromMe": message_id.startswith("out")},
        "pushName": "Ana",
        "participant": None,
        "messageType": "conversation",
        "message": {"conversation": text},
        "contextInfo": None,
        "source": "android",
        "messageTimestamp": ts,
        "instanceId": "inst-1",
    }


def _memory_engine():
    return create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


class ApiRouteTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.source_engine = _memory_engine()
        source_metadata.create_all(cls.source_engine)
        cls.target_engine = _memory_engine()
        init_target_store(cls.target_engine)
        cls.SessionLocal = sessionmaker(bind=cls.target_engine, autoflush=False, autocommit=False, future=True)
        cls.settings = Settings(_env_file=None, tenant_id="t", batch_size=2)

        def _get_db():
            db = cls.SessionLocal()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = _get_db
        app.dependency_overrides[get_target_sessions] = lambda: cls.SessionLocal
        app.dependency_overrides[get_source_reader] = lambda: EvolutionMessageReader(cls.source_engine)
        app.dependency_overrides[get_settings] = lambda: cls.settings
        app.dependency_overrides[get_store_engines] = lambda: {
            "source": cls.source_engine,
            "target": cls.target_engine,
        }
        app.dependency_overrides[get_hub_provider] = lambda: None
        cls.client = TestClient(app)

    @classmethod
    def tearDownClass(cls) -> None:
        app.dependency_overrides.clear()
        source_metadata.drop_all(cls.source_engine)
        Base.metadata.drop_all(cls.target_engine)
        cls.source_engine.dispose()
        cls.target_engine.dispose()

    def setUp(self) -> None:
        with self.source_engine.begin() as conn:
            conn.execute(delete(evolution_messages))
            conn.execute(
                evolution_messages.insert(),
                [source_row("b", 200, "second"), source_row("a", 100, "first"), source_row("out-c", 300, "reply")],
            )
        with self.SessionLocal() as db:
            db.execute(delete(MessageDocument))
            db.execute(delete(ConversationAggregate))
            db.commit()

    def test_health(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_store_health(self) -> None:
        response = self.client.get("/health/stores")

        self.assertEqual(response.status_code, 200)
        stores = {store["name"]: store for store in response.json()["data"]}
        self.assertEqual(set(stores), {"source", "target"})
        self.assertTrue(all(store["ok"] for store in stores.values()))

    def test_ingest_run_then_read_conversation(self) -> None:
        response = self.client.post("/ingest/runs", json={"filter": {"type": "include"}})

        self.assertEqual(response.status_code, 200)
        run = response.json()["data"]
        self.assertEqual(run["imported"], 3)
        self.assertEqual(run["failed_count"], 0)
        self.assertEqual(run["conversations"][0]["phase"], "done")
        self.assertEqual(run["conversations"][0]["batches"], 2)
        self.assertEqual(run["conversations"][0]["cursor"], {"last_ts_seconds": 300, "last_message_id": "out-c"})

        conversation = self.client.get(f"/conversations/{CHAT}")
        self.assertEqual(conversation.status_code, 200)
        document = conversation.json()["data"]
        self.assertEqual(document["message_count"], 3)
        self.assertEqual(document["cursor"]["imported_count"], 3)
        self.assertEqual(document["tenantId"], "t")

        messages = self.client.get(f"/conversations/{CHAT}/messages")
        self.assertEqual(messages.status_code, 200)
        texts = [message["content"]["text"] for message in messages.json()["data"]]
        self.assertEqual(texts, ["first", "second", "reply"])
        self.assertEqual(messages.json()["data"][2]["direction"], "outbound")

    def test_dry_run_does_not_write(self) -> None:
        response = self.client.post("/ingest/runs", json={"dry_run": True, "chat_id": CHAT})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["conversations"][0]["accepted"], 3)
        self.assertEqual(response.json()["data"]["imported"], 0)
        self.assertEqual(self.client.get(f"/conversations/{CHAT}").status_code, 404)

    def test_invalid_filter_is_rejected(self) -> None:
        response = self.client.post("/ingest/runs", json={"filter": {"type": "relative-days", "days": 0}})
        self.assertEqual(response.status_code, 422)

        response = self.client.post("/ingest/runs", json={"batch_size": 0})
        self.assertEqual(response.status_code, 422)

    def test_unknown_conversation(self) -> None:
        self.assertEqual(self.client.get("/conversations/missing").status_code, 404)
        self.assertEqual(self.client.get("/conversations/missing/messages").json(), {"data": []})


if __name__ == "__main__":
    unittest.main()
