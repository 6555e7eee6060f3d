from __future__ import annotations

import logging

from fastapi import APIRouter, Query, WebSocket

from chat_engine.application.dto.principal import Principal
from chat_engine.infrastructure.ws.session import ChannelSession
from chat_engine.runtime import ChatRuntime

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])

AUTH_FAILED_CLOSE_CODE = 4001


async def _authenticate(runtime: ChatRuntime, token: str) -> Principal | None:
    try:
        return await runtime.verifier.verify(token)
    except Exception:
        logger.debug("WS auth failed", exc_info=True)
        return None


@router.websocket("/ws/chat")
async def ws_chat(
    websocket: WebSocket,
    token: str = Query(""),
) -> None:
    runtime: ChatRuntime = websocket.app.state.runtime
    principal = await _authenticate(runtime, token) if token else None
    if principal is None:
        await websocket.close(code=AUTH_FAILED_CLOSE_CODE, reason="Authentication failed")
        return

    await websocket.accept()
    logger.info("WS connected: %s (%s)", principal.user_id, principal.role)
    session = ChannelSession(
        websocket, principal, runtime, heartbeat_seconds=runtime.heartbeat_seconds,
    )
    await session.run()
    logger.info("WS disconnected: %s", principal.user_id)
