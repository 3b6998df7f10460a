"""Timestamp conversions shared by the mapper, range filter and upsert engine.

All document timestamps are rendered as UTC ISO-8601 strings with millisecond
precision and a ``Z`` suffix, so they order correctly as plain strings.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone


def iso_from_datetime(value: datetime) -> str:
    """Render a datetime as a millisecond-precision UTC ISO string."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def iso_from_seconds(seconds: int) -> str:
    """Render epoch seconds as an ISO string."""

    return iso_from_datetime(datetime.fromtimestamp(seconds, tz=timezone.utc))


def seconds_from_datetime(value: datetime) -> int:
    """Convert a datetime to whole epoch seconds, flooring fractions."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return math.floor(value.timestamp())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    return iso_from_datetime(utc_now())
