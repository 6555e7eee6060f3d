"""``websockets``-based transport for :class:`ReconnectionManager`."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable
from urllib.parse import urlencode

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, InvalidStatus

from chat_engine.client.reconnection import AuthenticationFailedError, ChannelLostError

logger = logging.getLogger(__name__)

AUTH_FAILED_CLOSE_CODE = 4001

EventHandler = Callable[[str, dict[str, Any]], Awaitable[None] | None]


class WebSocketTransport:
    def __init__(
        self,
        url: str,
        token: str,
        *,
        on_event: EventHandler | None = None,
        open_timeout: float = 10.0,
    ) -> None:
        self._url = f"{url}?{urlencode({'token': token})}"
        self._on_event = on_event
        self._open_timeout = open_timeout
        self._ws: ClientConnection | None = None
        self._reader: asyncio.Task[None] | None = None

    async def connect(self) -> None:
        try:
            self._ws = await connect(self._url, open_timeout=self._open_timeout)
        except InvalidStatus as exc:
            if exc.response.status_code in (401, 403):
                raise AuthenticationFailedError("Server rejected the token") from exc
            raise ChannelLostError(f"Handshake failed: HTTP {exc.response.status_code}") from exc
        except (OSError, TimeoutError) as exc:
            raise ChannelLostError(str(exc)) from exc
        self._reader = asyncio.create_task(self._read_loop(self._ws), name="chat-ws-reader")

    async def join(self, conversation_key: str) -> None:
        await self.send("join", {"conversationKey": conversation_key})

    async def send(self, event_type: str, data: dict[str, Any] | None = None) -> None:
        if self._ws is None:
            raise ChannelLostError("Not connected")
        try:
            await self._ws.send(json.dumps({"type": event_type, "data": data or {}}))
        except ConnectionClosed as exc:
            raise ChannelLostError("Channel closed while sending") from exc

    async def wait_closed(self) -> None:
        if self._reader is None:
            raise ChannelLostError("Not connected")
        await asyncio.gather(self._reader, return_exceptions=True)
        ws = self._ws
        if ws is not None and ws.close_code == AUTH_FAILED_CLOSE_CODE:
            raise AuthenticationFailedError(ws.close_reason or "Authentication failed")
        raise ChannelLostError(f"Channel closed (code={ws.close_code if ws else None})")

    async def close(self) -> None:
        if self._ws is not None:
            await self._ws.close()
        if self._reader is not None:
            await asyncio.gather(self._reader, return_exceptions=True)
        self._ws = None
        self._reader = None

    async def _read_loop(self, ws: ClientConnection) -> None:
        try:
            async for raw in ws:
                try:
                    event = json.loads(raw)
                except ValueError:
                    logger.warning("Dropping non-JSON frame from chat server")
                    continue
                if self._on_event is None:
                    continue
                result = self._on_event(event.get("type", ""), event.get("data") or {})
                if result is not None:
                    await result
        except ConnectionClosed:
            pass
