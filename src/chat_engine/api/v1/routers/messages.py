from __future__ import annotations

from fastapi import APIRouter, Query

from chat_engine.api.deps import CurrentPrincipal, RuntimeDep, UoWDep
from chat_engine.api.v1.schemas.common import PaginatedResponse
from chat_engine.api.v1.schemas.message import (
    MarkReadRequest,
    MarkReadResponse,
    MessageResponse,
    SendMessageRequest,
)
from chat_engine.application.dto.message import SendMessageDTO
from chat_engine.services import message_service

router = APIRouter(prefix="/api/v1/chat/conversations", tags=["messages"])


@router.get(
    "/{conversation_key}/messages",
    response_model=PaginatedResponse[MessageResponse],
)
async def list_messages(
    conversation_key: str,
    principal: CurrentPrincipal,
    uow: UoWDep,
    cursor: str | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
) -> PaginatedResponse[MessageResponse]:
    page = await message_service.list_messages(conversation_key, principal, cursor, limit, uow)
    return PaginatedResponse[MessageResponse](
        items=[MessageResponse.from_entity(m) for m in page.items],
        next_cursor=page.next_cursor,
    )


@router.get("/{conversation_key}/messages/search", response_model=list[MessageResponse])
async def search_messages(
    conversation_key: str,
    principal: CurrentPrincipal,
    uow: UoWDep,
    q: str = Query(..., min_length=1, max_length=200),
    limit: int = Query(20, ge=1, le=100),
) -> list[MessageResponse]:
    messages = await message_service.search_messages(conversation_key, principal, q, limit, uow)
    return [MessageResponse.from_entity(m) for m in messages]


@router.post(
    "/{conversation_key}/messages",
    response_model=MessageResponse,
    status_code=201,
)
async def send_message(
    conversation_key: str,
    body: SendMessageRequest,
    principal: CurrentPrincipal,
    runtime: RuntimeDep,
) -> MessageResponse:
    conversation = await runtime.authorize(principal, conversation_key)
    msg = await runtime.submit_message(
        principal,
        conversation,
        SendMessageDTO(
            conversation_key=conversation.key,
            text=body.text,
            image_url=body.image_url,
        ),
    )
    return MessageResponse.from_entity(msg)


@router.post("/{conversation_key}/read", response_model=MarkReadResponse)
async def mark_read(
    conversation_key: str,
    body: MarkReadRequest,
    principal: CurrentPrincipal,
    runtime: RuntimeDep,
) -> MarkReadResponse:
    conversation = await runtime.authorize(principal, conversation_key)
    changed = await runtime.presence.mark_read(
        conversation.key, principal.user_id, body.message_ids,
    )
    return MarkReadResponse(conversation_key=conversation.key, message_ids=changed)
