"""Canonical document schemas used to validate mapper output.

Every object level forbids unknown keys so that mapper drift is rejected
instead of being silently stored.
"""

from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Channel = Literal[
    "whatsapp",
    "telegram",
    "instagram",
    "twilio_sms",
    "twilio_rcs",
    "chatwoot",
    "email",
    "webhook",
    "system",
    "other",
]
ParticipantRole = Literal["user", "agent", "bot", "system"]
DerivedKind = Literal["asr", "ocr", "nlp", "moderation", "translation", "summary", "tagging", "other"]
ConversationState = Literal["virgin", "active", "inactive", "closed", "archived"]


def _check_iso_datetime(value: str) -> str:
    # A date alone is not a date-time.
    if len(value) <= 10 or value[10] not in "Tt ":
        raise ValueError("must be an ISO-8601 date-time")
    candidate = value[:-1] + "+00:00" if value[-1] in "Zz" else value
    try:
        datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ValueError("must be an ISO-8601 date-time") from exc
    return value


IsoDateTime = Annotated[str, AfterValidator(_check_iso_datetime)]


class _Document(BaseModel):
    model_config = ConfigDict(extra="forbid", alias_generator=to_camel)


class Participant(_Document):
    channel_id: str
    role: ParticipantRole
    display_name: str | None = None


class DerivedEntry(_Document):
    source: str
    kind: DerivedKind
    ts: IsoDateTime
    data: Any
    meta: dict[str, Any] | None = None


class CanonicalMessage(_Document):
    """Provider-agnostic message document."""

    schema_version: Literal[1]
    tenant_id: str
    message_id: str = Field(min_length=1)
    chat_id: str
    correlation_id: str | None = None
    causation_message_id: str | None = None
    channel: Channel
    direction: Literal["inbound", "outbound"]
    type: Literal["message", "status", "system"]
    origin: Literal["provider", "internal"]
    created_at: IsoDateTime
    sender: Participant
    recipients: list[Participant]
    content: dict[str, Any]
    context: dict[str, Any] | None = None
    raw: Any
    derived: list[DerivedEntry]


class _SnakeDocument(BaseModel):
    model_config = ConfigDict(extra="forbid")


class ConversationParticipants(_Document):
    user_ids: list[str]
    agent_ids: list[str]
    bot_ids: list[str]


class ConversationConnection(_Document):
    channel: Channel
    provider_conversation_id: str


class ConversationCursor(_SnakeDocument):
    last_ts_seconds: int | None
    last_message_id: str | None
    updated_at: IsoDateTime | None
    imported_count: int


class TopSender(_SnakeDocument):
    contact_id: str
    count: int


class ConversationDocument(BaseModel):
    """Per-conversation rollup document.

    Top-level keys mix camelCase identity fields with snake_case statistics,
    matching the stored document layout.
    """

    model_config = ConfigDict(extra="forbid")

    schemaVersion: Literal[1]
    tenantId: str
    chatId: str
    version: int
    state: ConversationState
    createdAt: IsoDateTime
    lastActivityAt: IsoDateTime | None
    participants: ConversationParticipants
    connections: list[ConversationConnection]
    memory: dict[str, Any]
    cursor: ConversationCursor
    message_count: int
    participant_count: int
    first_ts: IsoDateTime | None
    last_ts: IsoDateTime | None
    top_senders: list[TopSender]
