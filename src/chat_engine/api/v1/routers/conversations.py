from __future__ import annotations

from fastapi import APIRouter, Query

from chat_engine.api.deps import CurrentPrincipal, UoWDep
from chat_engine.api.v1.schemas.conversation import (
    ConversationResponse,
    ConversationSummaryResponse,
    OpenOrCreateRequest,
    ResolveResponse,
)
from chat_engine.services import conversation_service

router = APIRouter(prefix="/api/v1/chat", tags=["conversations"])


@router.post("/conversations/open-or-create", response_model=ConversationResponse)
async def open_or_create(
    body: OpenOrCreateRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> ConversationResponse:
    view = await conversation_service.open_or_create(
        principal, body.client_id, body.professional_id, uow,
    )
    return ConversationResponse.from_view(view)


@router.get("/conversations", response_model=list[ConversationSummaryResponse])
async def list_conversations(
    principal: CurrentPrincipal,
    uow: UoWDep,
    limit: int = Query(50, ge=1, le=200),
) -> list[ConversationSummaryResponse]:
    summaries = await conversation_service.list_user_conversations(principal, limit, uow)
    return [ConversationSummaryResponse.from_summary(s) for s in summaries]


@router.get("/conversations/{conversation_key}", response_model=ConversationResponse)
async def get_conversation(
    conversation_key: str,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> ConversationResponse:
    view = await conversation_service.get_conversation(conversation_key, principal, uow)
    return ConversationResponse.from_view(view)


@router.get("/resolve/{value}", response_model=ResolveResponse)
async def resolve_conversation(
    value: str,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> ResolveResponse:
    resolved = await conversation_service.resolve_conversation(value, principal, uow)
    return ResolveResponse.model_validate(resolved, from_attributes=True)
