"""Pure field extraction helpers for provider payloads.

Every helper here accepts arbitrary JSON-like input and never raises.
"""

from __future__ import annotations

from typing import Any

from chat_ingest.mapping.types import ExtractedText

_CAPTIONED_MEDIA_KEYS = ("imageMessage", "videoMessage", "documentMessage")


def dig(value: Any, *path: str | int) -> Any:
    """Follow dict keys and list indexes, returning ``None`` on any miss."""

    current = value
    for step in path:
        if isinstance(step, int):
            if not isinstance(current, list) or not -len(current) <= step < len(current):
                return None
            current = current[step]
        else:
            if not isinstance(current, dict):
                return None
            current = current.get(step)
    return current


def first_text(*candidates: Any) -> str | None:
    """Return the first candidate that is a non-empty string."""

    for candidate in candidates:
        if isinstance(candidate, str) and candidate:
            return candidate
    return None


def first_present(*candidates: Any) -> Any:
    """Return the first truthy candidate, mirroring ``a || b || c``."""

    for candidate in candidates:
        if candidate:
            return candidate
    return None


def non_text_placeholder(message_type: str | None) -> str:
    return f"[non-text:{message_type or 'unknown'}]"


def extract_text_and_caption(message_type: str | None, message: Any) -> ExtractedText:
    """Pick displayable text from an Evolution message payload.

    Precedence: plain conversation body, extended text body, media caption,
    then a placeholder tagged with the original message type.
    """

    if message_type == "conversation":
        text = first_text(dig(message, "conversation"))
        if text:
            return ExtractedText(text=text)
    text = first_text(
        dig(message, "extendedTextMessage", "text"),
        *(dig(message, key, "caption") for key in _CAPTIONED_MEDIA_KEYS),
    )
    if text:
        return ExtractedText(text=text)
    return ExtractedText(text=non_text_placeholder(message_type), message_type=message_type or "unknown")


def hub_provider_message(event: Any) -> Any:
    """Return the provider webhook message nested in a hub event, if any."""

    return dig(event, "rawMessage", "entry", 0, "changes", 0, "value", "messages", 0)


def extract_hub_text(event: Any) -> ExtractedText:
    """Pick displayable text from a hub event envelope.

    Precedence: hub content body, provider text body, provider image caption,
    then a placeholder tagged with the provider message type.
    """

    provider_message = hub_provider_message(event)
    text = first_text(
        dig(event, "message", "content", "body"),
        dig(provider_message, "text", "body"),
        dig(provider_message, "image", "caption"),
    )
    if text:
        return ExtractedText(text=text)
    message_type = first_text(
        dig(provider_message, "type"),
        dig(event, "message", "content", "type"),
        dig(event, "message", "type"),
    )
    return ExtractedText(text=non_text_placeholder(message_type), message_type=message_type or "unknown")


def jid_user(jid: str | None) -> str:
    """Return the user part of a WhatsApp JID (``12345@s.whatsapp.net`` -> ``12345``)."""

    if not jid:
        return ""
    return jid.split("@", 1)[0]


def coerce_seconds(value: Any) -> int | None:
    """Return whole epoch seconds for numeric or numeric-string input."""

    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if value == value and abs(value) != float("inf") else None
    if isinstance(value, str):
        try:
            return int(float(value.strip()))
        except (ValueError, OverflowError):
            return None
    if isinstance(value, dict) and "low" in value:
        # protobuf Long serialized as {"low": ..., "high": ..., "unsigned": ...}
        low = coerce_seconds(value.get("low"))
        high = coerce_seconds(value.get("high")) or 0
        if low is None:
            return None
        return (high << 32) + (low & 0xFFFFFFFF)
    return None
