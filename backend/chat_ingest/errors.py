"""Ingestion error hierarchy.

Mapping never raises. Validation failures are recoverable per record, store
failures end the current conversation, configuration failures end the run
before any conversation is touched.
"""

from __future__ import annotations

from typing import Any


class IngestError(RuntimeError):
    """Base class for ingestion failures surfaced to the caller."""


class TransientIOError(IngestError):
    """Raised when the source or target store is temporarily unreachable."""


class StoreError(IngestError):
    """Raised when a source read or target write fails for a non-transient reason."""


class AggregateStateError(StoreError):
    """Raised when an aggregate increment finds no aggregate to apply to."""


class ConfigurationError(IngestError):
    """Raised for missing or invalid settings and range filter parameters."""


class ValidationError(IngestError):
    """Raised when a mapped record does not match the canonical schema."""

    def __init__(self, natural_id: str, errors: list[dict[str, Any]]) -> None:
        self.natural_id = natural_id
        self.errors = errors
        summary = ", ".join(f"{error['loc']}: {error['msg']}" for error in errors[:3])
        super().__init__(f"Record {natural_id or '<missing id>'} failed validation: {summary}")
