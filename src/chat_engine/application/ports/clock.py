from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Default wall-clock implementation."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ConversationClock:
    """Hands out creation timestamps that never go backwards within a conversation.

    Two senders writing to the same conversation may race; the store orders by
    ``(created_at, id)``, so each new timestamp is clamped to be strictly after
    the previous one handed out for that key.
    """

    _TICK = timedelta(microseconds=1)

    def __init__(self, clock: Clock | None = None, *, max_keys: int = 10_000) -> None:
        self._clock = clock or SystemClock()
        self._last: dict[str, datetime] = {}
        self._max_keys = max_keys

    def next_timestamp(self, conversation_key: str) -> datetime:
        now = self._clock.now()
        last = self._last.get(conversation_key)
        if last is not None and now <= last:
            now = last + self._TICK
        if conversation_key not in self._last and len(self._last) >= self._max_keys:
            self._last.pop(next(iter(self._last)))
        self._last[conversation_key] = now
        return now
