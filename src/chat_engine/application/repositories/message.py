from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol
from uuid import UUID

from chat_engine.application.dto.message import MessagePage
from chat_engine.domain.entities.conversation import ConversationActivity
from chat_engine.domain.entities.message import Message


class MessageReader(Protocol):
    async def list_messages(
        self,
        conversation_key: str,
        *,
        cursor: str | None = None,
        limit: int = 50,
    ) -> MessagePage:
        """Oldest first, ordered by (created_at, id).

        ``next_cursor`` is set when a full page was returned.
        """
        ...

    async def search(
        self, conversation_key: str, query: str, *, limit: int = 20,
    ) -> list[Message]: ...

    async def last_message(self, conversation_key: str) -> Message | None: ...

    async def latest_between(self, user_a: str, user_b: str) -> Message | None: ...

    async def latest_involving(self, user_id: str) -> Message | None: ...

    async def list_activity(
        self, user_id: str, *, limit: int = 50,
    ) -> list[ConversationActivity]:
        """One entry per conversation the user took part in, most recent first."""
        ...


class MessageWriter(Protocol):
    async def create(self, message: Message) -> Message: ...

    async def mark_delivered(
        self, message_ids: Sequence[UUID], at: datetime,
    ) -> list[UUID]:
        """Advance ``sent`` messages to ``delivered``. Returns the ids that changed."""
        ...

    async def mark_read(
        self,
        conversation_key: str,
        reader_id: str,
        message_ids: Sequence[UUID],
        at: datetime,
    ) -> list[UUID]:
        """Mark as read the given messages addressed to ``reader_id``.

        Messages already read, sent by the reader, or outside the conversation
        are left untouched. Returns the ids that changed.
        """
        ...
