from __future__ import annotations

import logging

from chat_engine.application.dto.conversation import (
    ConversationSummary,
    ConversationView,
    ResolvedConversation,
)
from chat_engine.application.dto.principal import Principal
from chat_engine.application.exceptions import UnauthorizedError
from chat_engine.application.policies.permissions import (
    assert_conversation_access,
    load_pairing,
)
from chat_engine.application.uow import UnitOfWork
from chat_engine.domain.entities.conversation import Conversation
from chat_engine.domain.errors import (
    AmbiguousKeyError,
    MalformedKeyError,
    UnresolvableKeyError,
)
from chat_engine.domain.value_objects.conversation_key import canonical_key, parse_key

logger = logging.getLogger(__name__)


async def open_or_create(
    principal: Principal,
    client_id: str,
    professional_id: str,
    uow: UnitOfWork,
) -> ConversationView:
    """Validate a pairing before the first message exists.

    Nothing is written: the conversation comes into being with its first message.
    """
    if principal.user_id not in (client_id, professional_id):
        raise UnauthorizedError("Caller must be one of the two participants")
    conversation = await load_pairing(client_id, professional_id, uow.participants)
    last = await uow.messages.last_message(conversation.key)
    return ConversationView(conversation=conversation, last_message=last, created=last is None)


async def get_conversation(
    conversation_key: str,
    principal: Principal,
    uow: UnitOfWork,
) -> ConversationView:
    conversation = await assert_conversation_access(
        principal, conversation_key, uow.participants,
    )
    last = await uow.messages.last_message(conversation.key)
    return ConversationView(conversation=conversation, last_message=last)


async def authorize(
    conversation_key: str,
    principal: Principal,
    uow: UnitOfWork,
) -> Conversation:
    return await assert_conversation_access(principal, conversation_key, uow.participants)


async def list_user_conversations(
    principal: Principal,
    limit: int,
    uow: UnitOfWork,
) -> list[ConversationSummary]:
    """Most recently active first."""
    activity = await uow.messages.list_activity(principal.user_id, limit=limit)
    counterparts = await uow.participants.get_many({a.counterpart_id for a in activity})

    summaries: list[ConversationSummary] = []
    for item in activity:
        counterpart = counterparts.get(item.counterpart_id)
        if counterpart is None:
            logger.debug("Skipping conversation %s: counterpart gone", item.conversation_key)
            continue
        summaries.append(
            ConversationSummary(
                conversation_key=item.conversation_key,
                counterpart=counterpart,
                last_message=item.last_message,
                message_count=item.message_count,
                unread_count=item.unread_count,
            )
        )
    summaries.sort(key=lambda s: s.last_message.created_at, reverse=True)
    return summaries


async def resolve_conversation(
    value: str,
    principal: Principal,
    uow: UnitOfWork,
) -> ResolvedConversation:
    """Recover a usable key from a single identifier or otherwise broken key.

    The value is looked up in the message history: if it is the caller's own id
    the counterpart of their latest message is used, otherwise the caller must
    have exchanged messages with that identifier.
    """
    try:
        parsed = parse_key(value)
    except (AmbiguousKeyError, MalformedKeyError):
        pass
    else:
        return ResolvedConversation(status="valid", original=value, conversation_key=parsed.key)

    candidate = value.strip()
    caller = principal.user_id
    other: str | None = None

    if candidate == caller:
        latest = await uow.messages.latest_involving(caller)
        if latest is not None:
            other = latest.recipient_id if latest.sender_id == caller else latest.sender_id
    elif candidate:
        latest = await uow.messages.latest_between(caller, candidate)
        if latest is not None:
            other = candidate

    if other is None:
        raise UnresolvableKeyError(
            "No message history links this identifier to the caller"
        )

    key = canonical_key(caller, other)
    logger.info("Resolved conversation %r to %s for %s", value, key, caller)
    return ResolvedConversation(status="resolved", original=value, conversation_key=key)
