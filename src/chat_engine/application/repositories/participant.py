from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from chat_engine.domain.entities.notification_preference import NotificationPreference
from chat_engine.domain.entities.participant import Participant


class ParticipantDirectory(Protocol):
    """Read-only view over the marketplace user directory."""

    async def get(self, user_id: str) -> Participant | None: ...

    async def get_many(self, user_ids: Iterable[str]) -> dict[str, Participant]: ...

    async def get_preferences(self, user_id: str) -> NotificationPreference | None: ...
