"""Ephemeral per-conversation presence: typing indicators and read receipts."""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Awaitable, Callable
from uuid import UUID

from chat_engine.application.ports.clock import Clock, SystemClock
from chat_engine.application.uow import UoWFactory
from chat_engine.services import read_state_service

logger = logging.getLogger(__name__)

TypingListener = Callable[[str, str, bool], Awaitable[Any]]
ReadListener = Callable[[str, str, list[UUID]], Awaitable[Any]]


@dataclass(slots=True)
class TypingState:
    is_typing: bool = False
    updated_at: float = 0.0
    generation: int = 0
    timer: asyncio.Task[None] | None = None


class PresenceTracker:
    """Typing flags expire on their own after ``timeout_seconds`` without renewal.

    Every mutation of a (conversation, user) entry runs under that entry's lock.
    A pending expiry only clears the flag if no renewal happened since it was
    scheduled, which is tracked through ``TypingState.generation``.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float,
        uow_factory: UoWFactory,
        on_typing_changed: TypingListener,
        on_messages_read: ReadListener,
        clock: Clock | None = None,
        time_fn: Callable[[], float] = time.time,
    ) -> None:
        self._timeout = timeout_seconds
        self._uow_factory = uow_factory
        self._on_typing_changed = on_typing_changed
        self._on_messages_read = on_messages_read
        self._clock = clock or SystemClock()
        self._time = time_fn
        self._typing: dict[tuple[str, str], TypingState] = {}
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}
        self._lock_users: dict[tuple[str, str], int] = {}

    # -- typing ---------------------------------------------------------

    async def set_typing(self, conversation_key: str, user_id: str, is_typing: bool) -> None:
        entry_key = (conversation_key, user_id)
        async with self._entry_lock(entry_key):
            state = self._typing.setdefault(entry_key, TypingState())
            was_typing = state.is_typing
            state.generation += 1
            state.updated_at = self._time()
            _cancel(state.timer)
            state.timer = None
            state.is_typing = is_typing

            if is_typing:
                state.timer = asyncio.create_task(
                    self._expire(entry_key, state.generation),
                    name=f"typing-timeout-{conversation_key}-{user_id}",
                )
            else:
                del self._typing[entry_key]

            if was_typing != is_typing:
                await self._emit_typing(conversation_key, user_id, is_typing)

    def is_typing(self, conversation_key: str, user_id: str) -> bool:
        state = self._typing.get((conversation_key, user_id))
        return bool(state and state.is_typing)

    def typing_users(self, conversation_key: str) -> list[str]:
        return [
            user_id for (key, user_id), state in self._typing.items()
            if key == conversation_key and state.is_typing
        ]

    async def clear_user(self, user_id: str) -> None:
        """Drop every typing flag held by ``user_id`` (used on disconnect)."""
        keys = [key for key, uid in list(self._typing) if uid == user_id]
        for conversation_key in keys:
            await self.set_typing(conversation_key, user_id, False)

    async def _expire(self, entry_key: tuple[str, str], generation: int) -> None:
        await asyncio.sleep(self._timeout)
        async with self._entry_lock(entry_key):
            state = self._typing.get(entry_key)
            if state is None or state.generation != generation or not state.is_typing:
                return
            state.timer = None
            del self._typing[entry_key]
            conversation_key, user_id = entry_key
            logger.debug("Typing expired: conversation=%s user=%s", conversation_key, user_id)
            await self._emit_typing(conversation_key, user_id, False)

    async def _emit_typing(self, conversation_key: str, user_id: str, is_typing: bool) -> None:
        try:
            await self._on_typing_changed(conversation_key, user_id, is_typing)
        except Exception:
            logger.exception("typing-changed listener failed for %s", conversation_key)

    @asynccontextmanager
    async def _entry_lock(self, entry_key: tuple[str, str]) -> AsyncIterator[None]:
        """Hold the entry lock; it is discarded once idle and the entry is gone."""
        lock = self._locks.setdefault(entry_key, asyncio.Lock())
        self._lock_users[entry_key] = self._lock_users.get(entry_key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            users = self._lock_users[entry_key] - 1
            if users == 0 and entry_key not in self._typing:
                del self._lock_users[entry_key]
                del self._locks[entry_key]
            else:
                self._lock_users[entry_key] = users

    # -- read receipts --------------------------------------------------

    async def mark_read(
        self,
        conversation_key: str,
        user_id: str,
        message_ids: Sequence[UUID],
    ) -> list[UUID]:
        """Mark messages read for their recipient. Re-marking is a no-op."""
        async with self._uow_factory() as uow:
            changed = await read_state_service.mark_read(
                conversation_key, user_id, message_ids, uow, clock=self._clock,
            )
        if changed:
            await self._on_messages_read(conversation_key, user_id, changed)
        return changed

    async def aclose(self) -> None:
        timers = [s.timer for s in self._typing.values() if s.timer is not None]
        for timer in timers:
            timer.cancel()
        await asyncio.gather(*timers, return_exceptions=True)
        self._typing.clear()


def _cancel(task: asyncio.Task[None] | None) -> None:
    if task is not None and not task.done():
        task.cancel()
