"""ORM models package exports."""

from chat_ingest.models.conversation import ConversationAggregate
from chat_ingest.models.message_document import MessageDocument

__all__ = ["ConversationAggregate", "MessageDocument"]
