"""One actor per live WebSocket connection.

Inbound events are handled strictly in arrival order by the read loop; outbound
events go through a queue drained by a single writer task, so a slow socket never
blocks fan-out from other sessions.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import pydantic
from fastapi import WebSocket, WebSocketDisconnect

from chat_engine.application.dto.message import SendMessageDTO
from chat_engine.application.dto.principal import Principal
from chat_engine.application.exceptions import AppError, NotJoinedError, RateLimitedError
from chat_engine.domain.entities.conversation import Conversation
from chat_engine.domain.errors import AmbiguousKeyError, DomainError
from chat_engine.domain.value_objects.conversation_key import parse_key
from chat_engine.infrastructure.ws.protocol import (
    ErrorPayload,
    InboundType,
    JoinedPayload,
    JoinPayload,
    MarkReadPayload,
    OutboundType,
    SendMessagePayload,
    TypingPayload,
    WsInbound,
    encode,
)

if TYPE_CHECKING:
    from chat_engine.runtime import ChatRuntime

logger = logging.getLogger(__name__)


class ConnectionState(StrEnum):
    AUTHENTICATED = "authenticated"
    JOINED = "joined"
    CLOSED = "closed"


class ChannelSession:
    def __init__(
        self,
        websocket: WebSocket,
        principal: Principal,
        runtime: ChatRuntime,
        *,
        heartbeat_seconds: float = 30,
    ) -> None:
        self.id = uuid.uuid4().hex
        self.principal = principal
        self.state = ConnectionState.AUTHENTICATED
        self.conversation: Conversation | None = None
        self._ws = websocket
        self._runtime = runtime
        self._heartbeat_seconds = heartbeat_seconds
        self._outbox: asyncio.Queue[str | None] = asyncio.Queue()

    @property
    def user_id(self) -> str:
        return self.principal.user_id

    @property
    def conversation_key(self) -> str | None:
        return self.conversation.key if self.conversation else None

    def enqueue(self, raw: str) -> None:
        if self.state != ConnectionState.CLOSED:
            self._outbox.put_nowait(raw)

    def emit(self, event_type: str, payload: Any = None) -> None:
        self.enqueue(encode(event_type, payload))

    async def run(self) -> None:
        """Serve the connection until the peer goes away. The socket must be accepted."""
        self._runtime.manager.register(self)
        writer = asyncio.create_task(self._write_loop(), name=f"ws-writer-{self.id}")
        heartbeat = asyncio.create_task(self._heartbeat(), name=f"ws-heartbeat-{self.id}")
        try:
            await self._read_loop()
        except WebSocketDisconnect:
            pass
        except Exception:
            logger.exception("WS error for %s", self.user_id)
        finally:
            heartbeat.cancel()
            await self._close()
            self._outbox.put_nowait(None)
            await asyncio.gather(writer, heartbeat, return_exceptions=True)

    # -- loops ------------------------------------------------------------

    async def _read_loop(self) -> None:
        while True:
            raw = await self._ws.receive_text()
            try:
                event = WsInbound.model_validate_json(raw)
            except pydantic.ValidationError:
                self._emit_error("invalid_payload", "Malformed event envelope")
                continue
            await self.handle(event)

    async def _write_loop(self) -> None:
        while True:
            raw = await self._outbox.get()
            if raw is None:
                return
            try:
                await self._ws.send_text(raw)
            except Exception:
                logger.debug("WS send failed for %s, stopping writer", self.user_id, exc_info=True)
                return

    async def _heartbeat(self) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_seconds)
            self.emit(OutboundType.PONG)

    # -- dispatch ---------------------------------------------------------

    async def handle(self, event: WsInbound) -> None:
        handler = self._handlers.get(event.type)
        if handler is None:
            self._emit_error("unknown_type", f"Unknown event type {event.type!r}")
            return
        try:
            await handler(self, event.data)
        except RateLimitedError as exc:
            self._emit_error(exc.code, exc.detail, retry_after_seconds=exc.retry_after_seconds)
        except AmbiguousKeyError as exc:
            self._emit_error(exc.code, exc.detail, recovery=exc.recovery)
        except (AppError, DomainError) as exc:
            self._emit_error(exc.code, exc.detail)
        except pydantic.ValidationError as exc:
            self._emit_error("validation_error", _first_error(exc))
        except Exception:
            logger.exception("Unhandled error on %s event from %s", event.type, self.user_id)
            self._emit_error("internal_error", "Something went wrong")

    async def _on_join(self, data: dict[str, Any]) -> None:
        payload = JoinPayload.model_validate(data)
        conversation = await self._runtime.authorize(self.principal, payload.conversation_key)
        if self.conversation is not None and self.conversation.key != conversation.key:
            await self._leave_current()
        self.conversation = conversation
        self.state = ConnectionState.JOINED
        self._runtime.manager.join(self, conversation.key)
        logger.info("User %s joined %s", self.user_id, conversation.key)
        self.emit(OutboundType.JOINED, JoinedPayload.from_conversation(conversation))

    async def _on_leave(self, data: dict[str, Any]) -> None:
        await self._leave_current()

    async def _on_send_message(self, data: dict[str, Any]) -> None:
        payload = SendMessagePayload.model_validate(data)
        conversation = self._require_joined(payload.conversation_key)
        await self._runtime.submit_message(
            self.principal,
            conversation,
            SendMessageDTO(
                conversation_key=conversation.key,
                text=payload.text,
                image_url=payload.image_url,
            ),
        )

    async def _on_typing(self, data: dict[str, Any]) -> None:
        payload = TypingPayload.model_validate(data)
        conversation = self._require_joined(payload.conversation_key)
        await self._runtime.presence.set_typing(conversation.key, self.user_id, payload.is_typing)

    async def _on_mark_read(self, data: dict[str, Any]) -> None:
        payload = MarkReadPayload.model_validate(data)
        conversation = self._require_joined(payload.conversation_key)
        await self._runtime.presence.mark_read(conversation.key, self.user_id, payload.message_ids)

    async def _on_ping(self, data: dict[str, Any]) -> None:
        self.emit(OutboundType.PONG)

    _handlers = {
        InboundType.JOIN: _on_join,
        InboundType.LEAVE: _on_leave,
        InboundType.SEND_MESSAGE: _on_send_message,
        InboundType.TYPING: _on_typing,
        InboundType.MARK_READ: _on_mark_read,
        InboundType.PING: _on_ping,
    }

    # -- helpers ----------------------------------------------------------

    def _require_joined(self, conversation_key: str) -> Conversation:
        if self.conversation is None:
            raise NotJoinedError("Join a conversation first")
        if parse_key(conversation_key).key != self.conversation.key:
            raise NotJoinedError(f"Not joined to {conversation_key}")
        return self.conversation

    async def _leave_current(self) -> None:
        if self.conversation is None:
            return
        key = self.conversation.key
        self._runtime.manager.leave(self)
        self.conversation = None
        if self.state != ConnectionState.CLOSED:
            self.state = ConnectionState.AUTHENTICATED
        if not self._runtime.manager.is_joined(key, self.user_id):
            await self._runtime.presence.set_typing(key, self.user_id, False)
        logger.info("User %s left %s", self.user_id, key)

    async def _close(self) -> None:
        await self._leave_current()
        self.state = ConnectionState.CLOSED
        self._runtime.manager.unregister(self)
        if not self._runtime.manager.has_sessions(self.user_id):
            await self._runtime.presence.clear_user(self.user_id)

    def _emit_error(
        self,
        code: str,
        message: str,
        *,
        retry_after_seconds: int | None = None,
        recovery: dict[str, str] | None = None,
    ) -> None:
        self.emit(
            OutboundType.ERROR,
            ErrorPayload(
                code=code,
                message=message,
                retry_after_seconds=retry_after_seconds,
                recovery=recovery,
            ),
        )


def _first_error(exc: pydantic.ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid payload"
    first = errors[0]
    where = ".".join(str(p) for p in first.get("loc", ()))
    return f"{where}: {first.get('msg', 'invalid')}" if where else first.get("msg", "invalid")
