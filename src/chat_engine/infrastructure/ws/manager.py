"""In-process registry of live channel sessions."""
from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class OutboundSink(Protocol):
    @property
    def user_id(self) -> str: ...

    def enqueue(self, raw: str) -> None: ...


class ConnectionManager:
    """Tracks sessions per user and which sessions joined which conversation.

    A session is joined to at most one conversation at a time.
    """

    def __init__(self) -> None:
        self._by_user: dict[str, set[OutboundSink]] = {}
        self._joined: dict[str, set[OutboundSink]] = {}
        self._session_key: dict[OutboundSink, str] = {}

    def register(self, session: OutboundSink) -> None:
        self._by_user.setdefault(session.user_id, set()).add(session)
        logger.debug("WS registered: %s (users=%d)", session.user_id, len(self._by_user))

    def unregister(self, session: OutboundSink) -> None:
        self.leave(session)
        sessions = self._by_user.get(session.user_id)
        if sessions:
            sessions.discard(session)
            if not sessions:
                del self._by_user[session.user_id]
        logger.debug("WS unregistered: %s", session.user_id)

    def join(self, session: OutboundSink, conversation_key: str) -> None:
        self.leave(session)
        self._joined.setdefault(conversation_key, set()).add(session)
        self._session_key[session] = conversation_key

    def leave(self, session: OutboundSink) -> str | None:
        key = self._session_key.pop(session, None)
        if key is None:
            return None
        members = self._joined.get(key)
        if members:
            members.discard(session)
            if not members:
                del self._joined[key]
        return key

    def joined_sessions(
        self, conversation_key: str, user_id: str | None = None,
    ) -> list[OutboundSink]:
        members = self._joined.get(conversation_key, set())
        return [s for s in members if user_id is None or s.user_id == user_id]

    def is_joined(self, conversation_key: str, user_id: str) -> bool:
        return bool(self.joined_sessions(conversation_key, user_id))

    def has_sessions(self, user_id: str) -> bool:
        return bool(self._by_user.get(user_id))

    def send_to_conversation(
        self,
        conversation_key: str,
        raw: str,
        *,
        user_id: str | None = None,
        exclude_user: str | None = None,
    ) -> int:
        """Queue ``raw`` on every matching joined session. Returns how many got it."""
        sent = 0
        for session in self.joined_sessions(conversation_key, user_id):
            if exclude_user is not None and session.user_id == exclude_user:
                continue
            session.enqueue(raw)
            sent += 1
        return sent

    @property
    def stats(self) -> dict[str, int]:
        return {
            "users": len(self._by_user),
            "sessions": sum(len(s) for s in self._by_user.values()),
            "active_conversations": len(self._joined),
        }
