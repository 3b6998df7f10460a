"""Connectivity probes for the source, target and hub stores."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from time import perf_counter

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from chat_ingest.errors import IngestError
from chat_ingest.sources.source_interface import HubEventProvider

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class StoreHealth:
    name: str
    ok: bool
    latency_ms: float | None = None
    detail: str | None = None
    event_count: int | None = None


def check_store(name: str, engine: Engine) -> StoreHealth:
    """Run ``SELECT 1`` against a store and report reachability."""

    started = perf_counter()
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("health.store_unreachable store=%s error=%s", name, exc)
        return StoreHealth(name=name, ok=False, detail=str(exc))
    return StoreHealth(name=name, ok=True, latency_ms=(perf_counter() - started) * 1000.0)


def check_hub(provider: HubEventProvider) -> StoreHealth:
    """Count stored hub events; a failing count marks the hub unhealthy."""

    started = perf_counter()
    try:
        total = provider.count_events()
    except IngestError as exc:
        logger.warning("health.hub_unreachable error=%s", exc)
        return StoreHealth(name="hub", ok=False, detail=str(exc))
    logger.info("health.hub_counted events=%d", total)
    return StoreHealth(name="hub", ok=True, latency_ms=(perf_counter() - started) * 1000.0, event_count=total)
