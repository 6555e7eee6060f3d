from __future__ import annotations

from dataclasses import dataclass

from chat_engine.domain.entities.conversation import Conversation
from chat_engine.domain.entities.message import Message
from chat_engine.domain.entities.participant import Participant


@dataclass(frozen=True, slots=True)
class ConversationView:
    conversation: Conversation
    last_message: Message | None
    created: bool = False


@dataclass(frozen=True, slots=True)
class ConversationSummary:
    conversation_key: str
    counterpart: Participant
    last_message: Message
    message_count: int
    unread_count: int


@dataclass(frozen=True, slots=True)
class ResolvedConversation:
    status: str  # "valid" | "resolved"
    original: str
    conversation_key: str
