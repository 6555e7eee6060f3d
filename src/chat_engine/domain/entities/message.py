from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from uuid import UUID

from chat_engine.domain.value_objects.enums import MessageStatus


@dataclass(frozen=True, slots=True)
class Message:
    id: UUID
    conversation_key: str
    sender_id: str
    recipient_id: str
    text: str | None
    image_url: str | None
    status: MessageStatus
    created_at: datetime
    delivered_at: datetime | None = None
    read_at: datetime | None = None

    @property
    def preview(self) -> str:
        if self.text:
            return self.text if len(self.text) <= 100 else self.text[:97] + "..."
        return "[Image]"

    def with_status(self, status: MessageStatus, at: datetime) -> Message:
        """Return a copy advanced to ``status``; never moves backwards."""
        if not self.status.can_advance_to(status):
            return self
        if status == MessageStatus.DELIVERED:
            return replace(self, status=status, delivered_at=at)
        return replace(
            self,
            status=status,
            delivered_at=self.delivered_at or at,
            read_at=at,
        )
