"""Typed mapper outputs independent of persistence."""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class MapperContext:
    """Per-run values the mapper stamps onto every record."""

    tenant_id: str
    channel_prefix: str = "ev:cloud"


@dataclass(frozen=True, slots=True)
class HelperProjection:
    """Keying and cursor fields derived from, but not stored in, the canonical record."""

    natural_id: str
    chat_id: str
    sender_id: str | None
    ts_iso: str
    instance_id: str
    channel_id: str
    contact_id: str


@dataclass(slots=True)
class MappedMessage:
    """Canonical document plus its helper projection."""

    document: dict[str, Any]
    helper: HelperProjection


@dataclass(frozen=True, slots=True)
class ExtractedText:
    """Displayable text of a message; ``message_type`` is set for non-text placeholders."""

    text: str
    message_type: str | None = None
