from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from chat_engine.domain.entities.message import Message
from chat_engine.domain.entities.participant import Participant
from chat_engine.domain.errors import InvalidPairingError
from chat_engine.domain.value_objects.conversation_key import canonical_key
from chat_engine.domain.value_objects.enums import UserRole


@dataclass(frozen=True, slots=True)
class Conversation:
    """A validated client/professional pairing. Not persisted as a row."""

    key: str
    client: Participant
    professional: Participant

    @classmethod
    def pair(cls, a: Participant, b: Participant) -> Conversation:
        key = canonical_key(a.id, b.id)
        roles = {a.role, b.role}
        if roles != {UserRole.CLIENT, UserRole.PROFESSIONAL}:
            raise InvalidPairingError(
                "A conversation must be between a client and a professional"
            )
        client, professional = (a, b) if a.role == UserRole.CLIENT else (b, a)
        return cls(key=key, client=client, professional=professional)

    def participant(self, user_id: str) -> Participant:
        if user_id == self.client.id:
            return self.client
        if user_id == self.professional.id:
            return self.professional
        raise ValueError(f"{user_id!r} is not a participant of {self.key!r}")

    def counterpart(self, user_id: str) -> Participant:
        return self.professional if user_id == self.client.id else self.client


@dataclass(frozen=True, slots=True)
class ConversationActivity:
    """Per-user aggregate over the message log for one conversation."""

    conversation_key: str
    counterpart_id: str
    last_message: Message
    message_count: int
    unread_count: int

    @property
    def last_activity_at(self) -> datetime:
        return self.last_message.created_at
