"""Client-side channel supervision: reconnect with capped exponential backoff.

The manager owns a :class:`ChannelTransport` and keeps it connected until
``close()`` is called, authentication is rejected, or ``max_attempts``
consecutive connection attempts fail.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Awaitable, Callable, Protocol

logger = logging.getLogger(__name__)


class ChannelLostError(Exception):
    """The channel dropped or could not be established; retrying may help."""


class AuthenticationFailedError(Exception):
    """The server rejected our credentials. Retrying will not help."""


class ChannelTransport(Protocol):
    async def connect(self) -> None:
        """Open the channel. Raises ChannelLostError or AuthenticationFailedError."""
        ...

    async def join(self, conversation_key: str) -> None: ...

    async def wait_closed(self) -> None:
        """Return once the open channel has ended, for whatever reason."""
        ...

    async def close(self) -> None: ...


class ConnectionStatus(StrEnum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FAILED = "failed"
    CLOSED = "closed"


@dataclass(frozen=True, slots=True)
class BackoffPolicy:
    base_seconds: float = 1.0
    cap_seconds: float = 30.0
    max_attempts: int = 5

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (zero-based)."""
        return min(self.base_seconds * 2**attempt, self.cap_seconds)


StatusListener = Callable[[ConnectionStatus], Awaitable[None] | None]


class ReconnectionManager:
    def __init__(
        self,
        transport: ChannelTransport,
        policy: BackoffPolicy | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_status: StatusListener | None = None,
    ) -> None:
        self._transport = transport
        self._policy = policy or BackoffPolicy()
        self._sleep = sleep
        self._on_status = on_status
        self._status = ConnectionStatus.IDLE
        self._attempt = 0
        self._active_conversation: str | None = None
        self._closing = False
        self._supervisor: asyncio.Task[None] | None = None
        self.last_error: BaseException | None = None

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def attempt(self) -> int:
        """Consecutive failed attempts since the last successful connect."""
        return self._attempt

    @property
    def active_conversation(self) -> str | None:
        return self._active_conversation

    async def start(self) -> bool:
        """Connect (retrying as needed) and start watching for channel loss.

        Returns False if the manager ended up ``FAILED``.
        """
        self._closing = False
        await self._set_status(ConnectionStatus.CONNECTING)
        if not await self._connect_with_retry():
            return False
        self._supervisor = asyncio.create_task(self._supervise(), name="chat-reconnect")
        return True

    async def join(self, conversation_key: str) -> None:
        """Join now if connected; the conversation is re-joined after every reconnect."""
        self._active_conversation = conversation_key
        if self._status == ConnectionStatus.CONNECTED:
            await self._transport.join(conversation_key)

    async def close(self) -> None:
        """Explicit close. Never followed by a retry."""
        self._closing = True
        if self._supervisor is not None:
            self._supervisor.cancel()
            await asyncio.gather(self._supervisor, return_exceptions=True)
            self._supervisor = None
        await self._transport.close()
        await self._set_status(ConnectionStatus.CLOSED)

    async def wait(self) -> None:
        """Block until supervision stops (explicit close or permanent failure)."""
        if self._supervisor is not None:
            await asyncio.gather(self._supervisor, return_exceptions=True)

    async def _supervise(self) -> None:
        while self._status == ConnectionStatus.CONNECTED:
            try:
                await self._transport.wait_closed()
            except AuthenticationFailedError as exc:
                await self._fail(exc)
                return
            except ChannelLostError as exc:
                self.last_error = exc
            if self._closing:
                return
            logger.warning("Chat channel lost, reconnecting")
            await self._set_status(ConnectionStatus.RECONNECTING)
            if not await self._connect_with_retry():
                return

    async def _connect_with_retry(self) -> bool:
        self._attempt = 0
        while not self._closing:
            try:
                await self._transport.connect()
                if self._active_conversation is not None:
                    await self._transport.join(self._active_conversation)
            except AuthenticationFailedError as exc:
                await self._transport.close()
                await self._fail(exc)
                return False
            except (ChannelLostError, OSError) as exc:
                await self._transport.close()
                self.last_error = exc
                self._attempt += 1
                if self._attempt >= self._policy.max_attempts:
                    logger.error("Giving up after %d connection attempts: %s", self._attempt, exc)
                    await self._set_status(ConnectionStatus.FAILED)
                    return False
                delay = self._policy.delay_for(self._attempt - 1)
                logger.info(
                    "Connect attempt %d failed (%s), retrying in %.1fs", self._attempt, exc, delay,
                )
                await self._sleep(delay)
                continue

            self._attempt = 0
            self.last_error = None
            await self._set_status(ConnectionStatus.CONNECTED)
            return True
        return False

    async def _fail(self, exc: BaseException) -> None:
        self.last_error = exc
        logger.error("Chat authentication rejected: %s", exc)
        await self._set_status(ConnectionStatus.FAILED)

    async def _set_status(self, status: ConnectionStatus) -> None:
        if status == self._status:
            return
        self._status = status
        if self._on_status is not None:
            result = self._on_status(status)
            if result is not None:
                await result
