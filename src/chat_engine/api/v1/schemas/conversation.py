from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from chat_engine.api.v1.schemas.message import MessageResponse
from chat_engine.application.dto.conversation import ConversationSummary, ConversationView
from chat_engine.domain.entities.participant import Participant


class OpenOrCreateRequest(BaseModel):
    client_id: str
    professional_id: str


class ParticipantResponse(BaseModel):
    id: str
    role: str
    display_name: str

    @classmethod
    def from_entity(cls, participant: Participant) -> ParticipantResponse:
        return cls(
            id=participant.id,
            role=participant.role.value,
            display_name=participant.display_name,
        )


class ConversationResponse(BaseModel):
    conversation_key: str
    client: ParticipantResponse
    professional: ParticipantResponse
    last_message: MessageResponse | None = None
    created: bool = False

    @classmethod
    def from_view(cls, view: ConversationView) -> ConversationResponse:
        conv = view.conversation
        return cls(
            conversation_key=conv.key,
            client=ParticipantResponse.from_entity(conv.client),
            professional=ParticipantResponse.from_entity(conv.professional),
            last_message=(
                MessageResponse.from_entity(view.last_message) if view.last_message else None
            ),
            created=view.created,
        )


class ConversationSummaryResponse(BaseModel):
    conversation_key: str
    counterpart: ParticipantResponse
    last_message: MessageResponse
    message_count: int
    unread_count: int
    last_activity_at: datetime

    @classmethod
    def from_summary(cls, summary: ConversationSummary) -> ConversationSummaryResponse:
        return cls(
            conversation_key=summary.conversation_key,
            counterpart=ParticipantResponse.from_entity(summary.counterpart),
            last_message=MessageResponse.from_entity(summary.last_message),
            message_count=summary.message_count,
            unread_count=summary.unread_count,
            last_activity_at=summary.last_message.created_at,
        )


class ResolveResponse(BaseModel):
    status: str
    original: str
    conversation_key: str

    model_config = {"from_attributes": True}
