from __future__ import annotations

from dataclasses import dataclass

from chat_engine.domain.entities.message import Message


@dataclass(frozen=True, slots=True)
class SendMessageDTO:
    conversation_key: str
    text: str | None = None
    image_url: str | None = None


@dataclass(frozen=True, slots=True)
class MessagePage:
    items: list[Message]
    next_cursor: str | None = None
