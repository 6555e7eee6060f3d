from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from types import TracebackType
from typing import Self

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chat_engine.application.uow import UoWFactory
from chat_engine.infrastructure.db.repositories.message import (
    MessageReaderRepo,
    MessageWriterRepo,
)
from chat_engine.infrastructure.db.repositories.user import UserDirectoryRepo


class SqlAlchemyUoW:
    """Concrete Unit-of-Work backed by a single AsyncSession."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self.messages = MessageReaderRepo(session)
        self.messages_w = MessageWriterRepo(session)
        self.participants = UserDirectoryRepo(session)

    async def flush(self) -> None:
        await self._session.flush()

    async def commit(self) -> None:
        await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            await self.rollback()


def sqlalchemy_uow_factory(sessionmaker: async_sessionmaker[AsyncSession]) -> UoWFactory:
    """One session per unit of work, closed when the block exits."""

    @asynccontextmanager
    async def factory() -> AsyncIterator[SqlAlchemyUoW]:
        async with sessionmaker() as session:
            async with SqlAlchemyUoW(session) as uow:
                yield uow

    return factory
