"""Process-wide chat components and their wiring.

``build_runtime`` is the only place concrete adapters are chosen; everything else
receives its collaborators from here.
"""
from __future__ import annotations

import logging
import secrets
from collections.abc import Sequence
from typing import Any
from uuid import UUID

import httpx
import redis.asyncio as aioredis
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from chat_engine.application.dto.message import SendMessageDTO
from chat_engine.application.dto.principal import Principal
from chat_engine.application.ports.auth import TokenVerifier
from chat_engine.application.ports.clock import Clock, ConversationClock, SystemClock
from chat_engine.application.ports.storage import ImageValidator, UploadUrlSigner
from chat_engine.application.uow import UoWFactory
from chat_engine.config import Settings
from chat_engine.domain.entities.conversation import Conversation
from chat_engine.domain.entities.message import Message
from chat_engine.domain.value_objects.enums import MessageStatus, OperationClass
from chat_engine.infrastructure.auth.hs256_verifier import HS256Verifier
from chat_engine.infrastructure.auth.jwks_verifier import JWKSVerifier
from chat_engine.infrastructure.db.session import build_engine, build_sessionmaker
from chat_engine.infrastructure.db.uow import sqlalchemy_uow_factory
from chat_engine.infrastructure.notifications.fcm_push import FcmPushGateway
from chat_engine.infrastructure.notifications.sendgrid_email import SendGridEmailGateway
from chat_engine.infrastructure.rate_limit.memory_store import InMemoryRateLimitStore
from chat_engine.infrastructure.rate_limit.redis_store import RedisRateLimitStore
from chat_engine.infrastructure.storage.image_validator import StoredImageValidator
from chat_engine.infrastructure.storage.signed_url import HmacUploadUrlSigner
from chat_engine.infrastructure.ws.manager import ConnectionManager
from chat_engine.infrastructure.ws.protocol import (
    MessagePayload,
    MessagesMarkedReadPayload,
    OutboundType,
    TypingChangedPayload,
    encode,
)
from chat_engine.services import conversation_service, message_service
from chat_engine.services.notification_dispatcher import NotificationDispatcher
from chat_engine.services.presence_tracker import PresenceTracker
from chat_engine.services.rate_limiter import RateLimiter, RateLimitRule

logger = logging.getLogger(__name__)


class ChatRuntime:
    def __init__(
        self,
        *,
        uow_factory: UoWFactory,
        verifier: TokenVerifier,
        rate_limiter: RateLimiter,
        dispatcher: NotificationDispatcher,
        signer: UploadUrlSigner,
        image_validator: ImageValidator | None = None,
        clock: Clock | None = None,
        manager: ConnectionManager | None = None,
        typing_timeout_seconds: float = 5.0,
        message_max_length: int = 1000,
        heartbeat_seconds: float = 30,
        upload_ttl_seconds: int = 3600,
        upload_max_bytes: int = 5 * 1024 * 1024,
        engine: AsyncEngine | None = None,
        redis: aioredis.Redis | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.uow_factory = uow_factory
        self.verifier = verifier
        self.rate_limiter = rate_limiter
        self.dispatcher = dispatcher
        self.signer = signer
        self.image_validator = image_validator
        self.clock = clock or SystemClock()
        self.conversation_clock = ConversationClock(self.clock)
        self.manager = manager or ConnectionManager()
        self.message_max_length = message_max_length
        self.heartbeat_seconds = heartbeat_seconds
        self.upload_ttl_seconds = upload_ttl_seconds
        self.upload_max_bytes = upload_max_bytes
        self.presence = PresenceTracker(
            timeout_seconds=typing_timeout_seconds,
            uow_factory=uow_factory,
            on_typing_changed=self._broadcast_typing,
            on_messages_read=self._broadcast_read,
            clock=self.clock,
        )
        self._engine = engine
        self._redis = redis
        self._http_client = http_client

    async def authorize(self, principal: Principal, conversation_key: str) -> Conversation:
        async with self.uow_factory() as uow:
            return await conversation_service.authorize(conversation_key, principal, uow)

    async def submit_message(
        self,
        principal: Principal,
        conversation: Conversation,
        dto: SendMessageDTO,
    ) -> Message:
        """Accept, persist and fan out one message.

        Nothing is acknowledged or delivered if persistence fails.
        """
        async with self.uow_factory() as uow:
            message = await message_service.accept_message(
                conversation,
                principal,
                dto,
                uow,
                rate_limiter=self.rate_limiter,
                clock=self.conversation_clock,
                image_validator=self.image_validator,
                max_length=self.message_max_length,
            )
        logger.info(
            "Message %s accepted in %s from %s", message.id, conversation.key, principal.user_id,
        )
        return await self.fan_out(message, conversation)

    async def fan_out(self, message: Message, conversation: Conversation) -> Message:
        key = conversation.key
        self.manager.send_to_conversation(
            key,
            encode(OutboundType.MESSAGE_SENT_ACK, MessagePayload.from_message(message)),
            user_id=message.sender_id,
        )
        delivered_to = self.manager.send_to_conversation(
            key,
            encode(OutboundType.MESSAGE_RECEIVED, MessagePayload.from_message(message)),
            user_id=message.recipient_id,
        )
        if delivered_to:
            message = await self._mark_delivered(message)

        self.dispatcher.dispatch_in_background(
            message,
            conversation.participant(message.sender_id),
            recipient_online=bool(delivered_to),
        )
        return message

    async def _mark_delivered(self, message: Message) -> Message:
        now = self.clock.now()
        try:
            async with self.uow_factory() as uow:
                changed = await uow.messages_w.mark_delivered([message.id], now)
                await uow.commit()
        except Exception:
            logger.exception("Failed to mark message %s delivered", message.id)
            return message
        if changed:
            return message.with_status(MessageStatus.DELIVERED, now)
        return message

    async def _broadcast_typing(self, conversation_key: str, user_id: str, is_typing: bool) -> None:
        self.manager.send_to_conversation(
            conversation_key,
            encode(
                OutboundType.TYPING_CHANGED,
                TypingChangedPayload(
                    conversation_key=conversation_key, user_id=user_id, is_typing=is_typing,
                ),
            ),
            exclude_user=user_id,
        )

    async def _broadcast_read(
        self, conversation_key: str, reader_id: str, message_ids: Sequence[UUID],
    ) -> None:
        self.manager.send_to_conversation(
            conversation_key,
            encode(
                OutboundType.MESSAGES_MARKED_READ,
                MessagesMarkedReadPayload(
                    conversation_key=conversation_key,
                    reader_id=reader_id,
                    message_ids=list(message_ids),
                ),
            ),
        )

    async def readiness(self) -> list[str]:
        """Return a list of failing dependencies (empty when ready)."""
        errors: list[str] = []
        if self._engine is not None:
            try:
                async with self._engine.connect() as conn:
                    await conn.execute(text("SELECT 1"))
            except Exception as exc:  # noqa: BLE001
                errors.append(f"postgres: {exc}")
        if self._redis is not None:
            try:
                await self._redis.ping()
            except Exception as exc:  # noqa: BLE001
                errors.append(f"redis: {exc}")
        return errors

    def metrics(self) -> dict[str, Any]:
        limiter = self.rate_limiter.metrics
        return {
            "rate_limiter": {
                "total_checks": limiter.total_checks,
                "total_denials": limiter.total_denials,
                "denial_ratio": limiter.denial_ratio,
                "denials_by_class": limiter.denials_by_class,
            },
            "notifications": self.dispatcher.metrics,
            "connections": self.manager.stats,
        }

    async def aclose(self) -> None:
        await self.presence.aclose()
        await self.dispatcher.drain()
        if self._http_client is not None:
            await self._http_client.aclose()
        if self._redis is not None:
            await self._redis.aclose()
        if self._engine is not None:
            await self._engine.dispose()
        logger.info("Chat runtime closed")


def build_runtime(settings: Settings) -> ChatRuntime:
    engine = build_engine(settings)
    uow_factory = sqlalchemy_uow_factory(build_sessionmaker(engine))

    if settings.JWT_VERIFY_MODE == "jwks":
        if not settings.JWKS_URL:
            raise ValueError("JWKS_URL must be set when JWT_VERIFY_MODE=jwks")
        verifier: TokenVerifier = JWKSVerifier(settings.JWKS_URL)
    else:
        verifier = HS256Verifier(settings.JWT_SECRET, settings.JWT_ALGORITHM)

    redis: aioredis.Redis | None = None
    if settings.RATE_LIMIT_BACKEND == "redis":
        redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
        store: Any = RedisRateLimitStore(redis)
        logger.info("Rate limiting backed by Redis")
    else:
        store = InMemoryRateLimitStore()
    rate_limiter = RateLimiter(
        store,
        {
            OperationClass.MESSAGE: RateLimitRule(
                settings.RATE_LIMIT_MESSAGE_MAX, settings.RATE_LIMIT_MESSAGE_WINDOW_SECONDS,
            ),
            OperationClass.UPLOAD: RateLimitRule(
                settings.RATE_LIMIT_UPLOAD_MAX, settings.RATE_LIMIT_UPLOAD_WINDOW_SECONDS,
            ),
        },
    )

    http_client = httpx.AsyncClient(timeout=settings.NOTIFICATION_HTTP_TIMEOUT)
    push_gateway = None
    if settings.FCM_SERVER_KEY:
        push_gateway = FcmPushGateway(http_client, settings.FCM_ENDPOINT, settings.FCM_SERVER_KEY)
    else:
        logger.warning("FCM_SERVER_KEY not set, push notifications disabled")
    email_gateway = None
    if settings.SENDGRID_API_KEY:
        email_gateway = SendGridEmailGateway(
            http_client,
            settings.SENDGRID_ENDPOINT,
            settings.SENDGRID_API_KEY,
            from_email=settings.SENDGRID_FROM_EMAIL,
            from_name=settings.SENDGRID_FROM_NAME,
        )
    else:
        logger.warning("SENDGRID_API_KEY not set, email notifications disabled")

    dispatcher = NotificationDispatcher(
        uow_factory=uow_factory,
        push_gateway=push_gateway,
        email_gateway=email_gateway,
        notify_when_online=settings.NOTIFY_WHEN_ONLINE,
        app_base_url=settings.APP_BASE_URL,
    )

    signing_key = settings.UPLOAD_SIGNING_KEY
    if not signing_key:
        logger.warning("UPLOAD_SIGNING_KEY not set, upload URLs are valid for this process only")
        signing_key = secrets.token_hex(32)

    return ChatRuntime(
        uow_factory=uow_factory,
        verifier=verifier,
        rate_limiter=rate_limiter,
        dispatcher=dispatcher,
        signer=HmacUploadUrlSigner(settings.UPLOAD_BASE_URL, signing_key),
        image_validator=StoredImageValidator(settings.UPLOAD_BASE_URL),
        typing_timeout_seconds=settings.TYPING_TIMEOUT_SECONDS,
        message_max_length=settings.MESSAGE_MAX_LENGTH,
        heartbeat_seconds=settings.WS_HEARTBEAT_SECONDS,
        upload_ttl_seconds=settings.UPLOAD_URL_TTL_SECONDS,
        upload_max_bytes=settings.UPLOAD_MAX_BYTES,
        engine=engine,
        redis=redis,
        http_client=http_client,
    )
