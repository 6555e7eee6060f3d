"""Shared test fixtures."""
from __future__ import annotations

import asyncio
import json
import uuid
from collections.abc import Iterable, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Callable
from uuid import UUID

import jwt
import pytest
from fastapi import WebSocketDisconnect

from chat_engine.application.dto.message import MessagePage
from chat_engine.application.dto.principal import Principal
from chat_engine.application.ports.notifications import DeliveryError
from chat_engine.config import settings
from chat_engine.domain.entities.conversation import ConversationActivity
from chat_engine.domain.entities.message import Message
from chat_engine.domain.entities.notification_preference import NotificationPreference
from chat_engine.domain.entities.participant import Participant
from chat_engine.domain.value_objects.conversation_key import canonical_key
from chat_engine.domain.value_objects.enums import MessageStatus, OperationClass, UserRole
from chat_engine.infrastructure.auth.hs256_verifier import HS256Verifier
from chat_engine.infrastructure.db.repositories._cursor import decode_cursor, encode_cursor
from chat_engine.infrastructure.rate_limit.memory_store import InMemoryRateLimitStore
from chat_engine.infrastructure.storage.signed_url import HmacUploadUrlSigner
from chat_engine.runtime import ChatRuntime
from chat_engine.services.notification_dispatcher import NotificationDispatcher
from chat_engine.services.rate_limiter import RateLimiter, RateLimitRule

CLIENT_ID = "0b0e6a4e-3f7c-4d1e-9a51-6b1f0e2c1a01"
PRO_ID = "7c9d2f10-8e4b-4a7a-b2c3-d4e5f6a7b802"
OTHER_CLIENT_ID = "c1d2e3f4-0000-4000-8000-000000000003"
OTHER_PRO_ID = "d4c3b2a1-0000-4000-8000-000000000004"

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_participant(
    user_id: str,
    role: UserRole,
    *,
    name: str = "",
    email: str | None = None,
) -> Participant:
    return Participant(id=user_id, role=role, display_name=name or user_id[:8], email=email)


def make_principal(participant: Participant) -> Principal:
    return Principal(
        user_id=participant.id, role=participant.role, display_name=participant.display_name,
    )


def make_message(
    sender_id: str = CLIENT_ID,
    recipient_id: str = PRO_ID,
    *,
    text: str | None = "hello",
    image_url: str | None = None,
    created_at: datetime | None = None,
    status: MessageStatus = MessageStatus.SENT,
) -> Message:
    return Message(
        id=uuid.uuid4(),
        conversation_key=canonical_key(sender_id, recipient_id),
        sender_id=sender_id,
        recipient_id=recipient_id,
        text=text,
        image_url=image_url,
        status=status,
        created_at=created_at or datetime.now(timezone.utc),
    )


def make_token(participant: Participant) -> str:
    return jwt.encode(
        {"sub": participant.id, "role": participant.role.value, "name": participant.display_name},
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )


@dataclass
class FakeMessageStore:
    """Message log implementing both the reader and writer repositories."""

    _messages: list[Message] = field(default_factory=list)
    fail_on_create: bool = False

    def _ordered(self) -> list[Message]:
        return sorted(self._messages, key=lambda m: (m.created_at, str(m.id)))

    def in_conversation(self, conversation_key: str) -> list[Message]:
        return [m for m in self._ordered() if m.conversation_key == conversation_key]

    def get(self, message_id: UUID) -> Message | None:
        return next((m for m in self._messages if m.id == message_id), None)

    def _replace(self, updated: Message) -> None:
        self._messages = [updated if m.id == updated.id else m for m in self._messages]

    # reader

    async def list_messages(
        self, conversation_key: str, *, cursor: str | None = None, limit: int = 50,
    ) -> MessagePage:
        items = self.in_conversation(conversation_key)
        if cursor:
            ts, mid = decode_cursor(cursor)
            items = [m for m in items if (m.created_at, str(m.id)) > (ts, str(mid))]
        items = items[:limit]
        next_cursor = None
        if len(items) == limit:
            next_cursor = encode_cursor(items[-1].created_at, items[-1].id)
        return MessagePage(items=items, next_cursor=next_cursor)

    async def search(self, conversation_key: str, query: str, *, limit: int = 20) -> list[Message]:
        hits = [
            m for m in reversed(self.in_conversation(conversation_key))
            if m.text and query.lower() in m.text.lower()
        ]
        return hits[:limit]

    async def last_message(self, conversation_key: str) -> Message | None:
        items = self.in_conversation(conversation_key)
        return items[-1] if items else None

    async def latest_between(self, user_a: str, user_b: str) -> Message | None:
        items = [
            m for m in self._ordered()
            if {m.sender_id, m.recipient_id} == {user_a, user_b}
        ]
        return items[-1] if items else None

    async def latest_involving(self, user_id: str) -> Message | None:
        items = [m for m in self._ordered() if user_id in (m.sender_id, m.recipient_id)]
        return items[-1] if items else None

    async def list_activity(self, user_id: str, *, limit: int = 50) -> list[ConversationActivity]:
        by_key: dict[str, list[Message]] = {}
        for m in self._ordered():
            if user_id in (m.sender_id, m.recipient_id):
                by_key.setdefault(m.conversation_key, []).append(m)
        activity = []
        for key, items in by_key.items():
            last = items[-1]
            activity.append(
                ConversationActivity(
                    conversation_key=key,
                    counterpart_id=last.recipient_id if last.sender_id == user_id else last.sender_id,
                    last_message=last,
                    message_count=len(items),
                    unread_count=sum(
                        1 for m in items
                        if m.recipient_id == user_id and m.status != MessageStatus.READ
                    ),
                )
            )
        activity.sort(key=lambda a: a.last_activity_at, reverse=True)
        return activity[:limit]

    # writer

    async def create(self, message: Message) -> Message:
        if self.fail_on_create:
            raise ConnectionError("database unavailable")
        self._messages.append(message)
        return message

    async def mark_delivered(self, message_ids: Sequence[UUID], at: datetime) -> list[UUID]:
        changed = []
        for mid in message_ids:
            m = self.get(mid)
            if m is not None and m.status == MessageStatus.SENT:
                self._replace(m.with_status(MessageStatus.DELIVERED, at))
                changed.append(mid)
        return changed

    async def mark_read(
        self, conversation_key: str, reader_id: str, message_ids: Sequence[UUID], at: datetime,
    ) -> list[UUID]:
        changed = []
        for mid in message_ids:
            m = self.get(mid)
            if (
                m is not None
                and m.conversation_key == conversation_key
                and m.recipient_id == reader_id
                and m.status != MessageStatus.READ
            ):
                self._replace(m.with_status(MessageStatus.READ, at))
                changed.append(mid)
        return changed


@dataclass
class FakeDirectory:
    _users: dict[str, Participant] = field(default_factory=dict)
    _preferences: dict[str, NotificationPreference] = field(default_factory=dict)

    def add(
        self, participant: Participant, preference: NotificationPreference | None = None,
    ) -> Participant:
        self._users[participant.id] = participant
        self._preferences[participant.id] = preference or NotificationPreference(
            user_id=participant.id,
        )
        return participant

    async def get(self, user_id: str) -> Participant | None:
        return self._users.get(user_id)

    async def get_many(self, user_ids: Iterable[str]) -> dict[str, Participant]:
        return {uid: self._users[uid] for uid in set(user_ids) if uid in self._users}

    async def get_preferences(self, user_id: str) -> NotificationPreference | None:
        return self._preferences.get(user_id)


@dataclass
class FakeUoW:
    messages: FakeMessageStore = field(default_factory=FakeMessageStore)
    participants: FakeDirectory = field(default_factory=FakeDirectory)
    commits: int = 0
    rollbacks: int = 0

    @property
    def messages_w(self) -> FakeMessageStore:
        return self.messages

    @property
    def _committed(self) -> bool:
        return self.commits > 0

    async def flush(self) -> None:
        pass

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1


def fake_uow_factory(uow: FakeUoW) -> Callable[[], Any]:
    @asynccontextmanager
    async def factory() -> AsyncIterator[FakeUoW]:
        yield uow

    return factory


@dataclass
class FakePushGateway:
    sent: list[dict[str, Any]] = field(default_factory=list)
    error: DeliveryError | None = None

    async def send(self, destination_token: str, title: str, body: str, data: dict[str, Any]) -> None:
        if self.error is not None:
            raise self.error
        self.sent.append({"token": destination_token, "title": title, "body": body, "data": data})


@dataclass
class FakeEmailGateway:
    sent: list[dict[str, str]] = field(default_factory=list)
    error: DeliveryError | None = None

    async def send(self, to_address: str, subject: str, html_body: str, text_body: str) -> None:
        if self.error is not None:
            raise self.error
        self.sent.append(
            {"to": to_address, "subject": subject, "html": html_body, "text": text_body}
        )


class FakeWebSocket:
    """Scripted stand-in for a server-side ``fastapi.WebSocket``."""

    def __init__(self) -> None:
        self._inbox: asyncio.Queue[str | None] = asyncio.Queue()
        self.sent: list[dict[str, Any]] = []

    def feed(self, event_type: str, data: dict[str, Any] | None = None) -> None:
        self._inbox.put_nowait(json.dumps({"type": event_type, "data": data or {}}))

    def feed_raw(self, raw: str) -> None:
        self._inbox.put_nowait(raw)

    def disconnect(self) -> None:
        self._inbox.put_nowait(None)

    async def receive_text(self) -> str:
        raw = await self._inbox.get()
        if raw is None:
            raise WebSocketDisconnect(code=1000)
        return raw

    async def send_text(self, raw: str) -> None:
        self.sent.append(json.loads(raw))

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [e["data"] for e in self.sent if e["type"] == event_type]


async def eventually(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


def make_rate_limiter(
    *, message_max: int = 10, upload_max: int = 5, time_fn: Callable[[], float] | None = None,
) -> RateLimiter:
    kwargs = {"time_fn": time_fn} if time_fn else {}
    return RateLimiter(
        InMemoryRateLimitStore(**kwargs),
        {
            OperationClass.MESSAGE: RateLimitRule(message_max, 60),
            OperationClass.UPLOAD: RateLimitRule(upload_max, 300),
        },
        **kwargs,
    )


def make_runtime(
    uow: FakeUoW,
    *,
    message_max: int = 10,
    push: FakePushGateway | None = None,
    email: FakeEmailGateway | None = None,
    notify_when_online: bool = False,
    typing_timeout: float = 5.0,
) -> ChatRuntime:
    factory = fake_uow_factory(uow)
    return ChatRuntime(
        uow_factory=factory,
        verifier=HS256Verifier(settings.JWT_SECRET, settings.JWT_ALGORITHM),
        rate_limiter=make_rate_limiter(message_max=message_max),
        dispatcher=NotificationDispatcher(
            uow_factory=factory,
            push_gateway=push,
            email_gateway=email,
            notify_when_online=notify_when_online,
            app_base_url="https://app.test",
        ),
        signer=HmacUploadUrlSigner("https://storage.test", "signing-key"),
        typing_timeout_seconds=typing_timeout,
        heartbeat_seconds=3600,
    )


@pytest.fixture
def client_user() -> Participant:
    return make_participant(CLIENT_ID, UserRole.CLIENT, name="Carla", email="carla@example.com")


@pytest.fixture
def pro_user() -> Participant:
    return make_participant(PRO_ID, UserRole.PROFESSIONAL, name="Pablo", email="pablo@example.com")


@pytest.fixture
def uow(client_user, pro_user) -> FakeUoW:
    uow = FakeUoW()
    uow.participants.add(client_user)
    uow.participants.add(pro_user)
    return uow


@pytest.fixture
def client_principal(client_user) -> Principal:
    return make_principal(client_user)


@pytest.fixture
def pro_principal(pro_user) -> Principal:
    return make_principal(pro_user)


@pytest.fixture
def conversation_key() -> str:
    return canonical_key(CLIENT_ID, PRO_ID)


def seed_history(uow: FakeUoW, *messages: Message) -> list[Message]:
    for i, m in enumerate(messages):
        uow.messages._messages.append(replace(m, created_at=T0 + timedelta(seconds=i)))
    return uow.messages._ordered()
