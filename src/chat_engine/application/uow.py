from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Callable, Protocol

from chat_engine.application.repositories.message import MessageReader, MessageWriter
from chat_engine.application.repositories.participant import ParticipantDirectory


class UnitOfWork(Protocol):
    messages: MessageReader
    messages_w: MessageWriter
    participants: ParticipantDirectory

    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...
    async def flush(self) -> None: ...


UoWFactory = Callable[[], AbstractAsyncContextManager[UnitOfWork]]
