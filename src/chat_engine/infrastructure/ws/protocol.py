"""WebSocket message envelope models.

Envelope field names are ``type``/``data``; payload keys are camelCase on the wire.
"""
from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from chat_engine.domain.entities.conversation import Conversation
from chat_engine.domain.entities.message import Message


class InboundType(StrEnum):
    JOIN = "join"
    LEAVE = "leave"
    SEND_MESSAGE = "send-message"
    TYPING = "typing"
    MARK_READ = "mark-read"
    PING = "ping"


class OutboundType(StrEnum):
    JOINED = "joined"
    MESSAGE_RECEIVED = "message-received"
    MESSAGE_SENT_ACK = "message-sent-ack"
    TYPING_CHANGED = "typing-changed"
    MESSAGES_MARKED_READ = "messages-marked-read"
    ERROR = "error"
    PONG = "pong"


class WsInbound(BaseModel):
    """Client → Server."""

    type: str
    data: dict[str, Any] = {}


class WsOutbound(BaseModel):
    """Server → Client."""

    type: str
    data: dict[str, Any] = {}


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# -- inbound payloads ----------------------------------------------------------


class JoinPayload(CamelModel):
    conversation_key: str = Field(min_length=1)


class SendMessagePayload(CamelModel):
    conversation_key: str = Field(min_length=1)
    text: str | None = None
    image_url: str | None = None


class TypingPayload(CamelModel):
    conversation_key: str = Field(min_length=1)
    is_typing: bool


class MarkReadPayload(CamelModel):
    conversation_key: str = Field(min_length=1)
    message_ids: list[UUID] = Field(min_length=1, max_length=500)


# -- outbound payloads ---------------------------------------------------------


class ParticipantPayload(CamelModel):
    id: str
    role: str
    display_name: str


class JoinedPayload(CamelModel):
    conversation_key: str
    participants: list[ParticipantPayload]

    @classmethod
    def from_conversation(cls, conversation: Conversation) -> JoinedPayload:
        return cls(
            conversation_key=conversation.key,
            participants=[
                ParticipantPayload(id=p.id, role=p.role.value, display_name=p.display_name)
                for p in (conversation.client, conversation.professional)
            ],
        )


class MessagePayload(CamelModel):
    id: UUID
    conversation_key: str
    sender_id: str
    recipient_id: str
    text: str | None = None
    image_url: str | None = None
    status: str
    created_at: datetime
    delivered_at: datetime | None = None
    read_at: datetime | None = None

    @classmethod
    def from_message(cls, message: Message) -> MessagePayload:
        return cls(
            id=message.id,
            conversation_key=message.conversation_key,
            sender_id=message.sender_id,
            recipient_id=message.recipient_id,
            text=message.text,
            image_url=message.image_url,
            status=message.status.value,
            created_at=message.created_at,
            delivered_at=message.delivered_at,
            read_at=message.read_at,
        )


class TypingChangedPayload(CamelModel):
    conversation_key: str
    user_id: str
    is_typing: bool


class MessagesMarkedReadPayload(CamelModel):
    conversation_key: str
    reader_id: str
    message_ids: list[UUID]


class ErrorPayload(CamelModel):
    code: str
    message: str
    retry_after_seconds: int | None = None
    recovery: dict[str, str] | None = None


def encode(event_type: str, payload: CamelModel | None = None) -> str:
    data = payload.wire() if payload is not None else {}
    return WsOutbound(type=event_type, data=data).model_dump_json()
