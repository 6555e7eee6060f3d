from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from chat_engine.domain.entities.message import Message


class SendMessageRequest(BaseModel):
    text: str | None = None
    image_url: str | None = None


class MarkReadRequest(BaseModel):
    message_ids: list[UUID] = Field(min_length=1, max_length=500)


class MarkReadResponse(BaseModel):
    conversation_key: str
    message_ids: list[UUID]


class MessageResponse(BaseModel):
    id: UUID
    conversation_key: str
    sender_id: str
    recipient_id: str
    text: str | None
    image_url: str | None
    status: str
    created_at: datetime
    delivered_at: datetime | None = None
    read_at: datetime | None = None

    model_config = {"from_attributes": True}

    @classmethod
    def from_entity(cls, message: Message) -> MessageResponse:
        return cls.model_validate(message, from_attributes=True)
