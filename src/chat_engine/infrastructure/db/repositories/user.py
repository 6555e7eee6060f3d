from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from chat_engine.domain.entities.notification_preference import NotificationPreference
from chat_engine.domain.entities.participant import Participant
from chat_engine.infrastructure.db.mappers import user as mapper
from chat_engine.infrastructure.db.models.user import UserModel


class UserDirectoryRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, user_id: str) -> Participant | None:
        model = await self._session.get(UserModel, user_id)
        return mapper.model_to_participant(model) if model else None

    async def get_many(self, user_ids: Iterable[str]) -> dict[str, Participant]:
        ids = list(set(user_ids))
        if not ids:
            return {}
        result = await self._session.execute(select(UserModel).where(UserModel.id.in_(ids)))
        return {m.id: mapper.model_to_participant(m) for m in result.scalars().all()}

    async def get_preferences(self, user_id: str) -> NotificationPreference | None:
        model = await self._session.get(UserModel, user_id)
        return mapper.model_to_preference(model) if model else None
