from __future__ import annotations

import logging
import re
import uuid
from urllib.parse import urlparse

from chat_engine.application.dto.message import MessagePage, SendMessageDTO
from chat_engine.application.dto.principal import Principal
from chat_engine.application.exceptions import PersistenceError, ValidationError
from chat_engine.application.policies.permissions import assert_conversation_access
from chat_engine.application.ports.clock import ConversationClock
from chat_engine.application.ports.storage import ImageValidator
from chat_engine.application.uow import UnitOfWork
from chat_engine.domain.entities.conversation import Conversation
from chat_engine.domain.entities.message import Message
from chat_engine.domain.value_objects.enums import MessageStatus, OperationClass
from chat_engine.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

DEFAULT_MAX_LENGTH = 1000

_SCRIPT_TAG_RE = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_JS_SCHEME_RE = re.compile(r"javascript:", re.IGNORECASE)


def sanitize_text(text: str | None) -> str | None:
    if text is None:
        return None
    cleaned = _JS_SCHEME_RE.sub("", _SCRIPT_TAG_RE.sub("", text)).strip()
    return cleaned or None


def validate_content(
    text: str | None,
    image_url: str | None,
    *,
    max_length: int = DEFAULT_MAX_LENGTH,
) -> tuple[str | None, str | None]:
    """Return sanitized ``(text, image_url)`` or raise ``ValidationError``.

    At least one of the two must be non-empty; both together is fine.
    """
    text = sanitize_text(text)
    image_url = (image_url or "").strip() or None

    if text is None and image_url is None:
        raise ValidationError("Message needs text or an image")
    if text is not None and len(text) > max_length:
        raise ValidationError(f"Message text exceeds {max_length} characters")
    if image_url is not None:
        parsed = urlparse(image_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValidationError("Image reference must be an absolute http(s) URL")
    return text, image_url


async def send_message(
    conversation: Conversation,
    sender: Principal,
    text: str | None,
    image_url: str | None,
    uow: UnitOfWork,
    *,
    clock: ConversationClock,
) -> Message:
    """Persist an already-validated message. The message is not acknowledged
    to anyone unless this returns."""
    now = clock.next_timestamp(conversation.key)
    msg = Message(
        id=uuid.uuid4(),
        conversation_key=conversation.key,
        sender_id=sender.user_id,
        recipient_id=conversation.counterpart(sender.user_id).id,
        text=text,
        image_url=image_url,
        status=MessageStatus.SENT,
        created_at=now,
    )
    try:
        msg = await uow.messages_w.create(msg)
        await uow.commit()
    except Exception as exc:
        logger.exception("Failed to persist message in %s", conversation.key)
        await uow.rollback()
        raise PersistenceError("Message could not be stored") from exc
    return msg


async def accept_message(
    conversation: Conversation,
    sender: Principal,
    dto: SendMessageDTO,
    uow: UnitOfWork,
    *,
    rate_limiter: RateLimiter,
    clock: ConversationClock,
    image_validator: ImageValidator | None = None,
    max_length: int = DEFAULT_MAX_LENGTH,
) -> Message:
    """Rate-limit, validate and persist one outgoing message.

    Shared by the realtime channel and the REST endpoint.
    """
    await rate_limiter.enforce(OperationClass.MESSAGE, sender.user_id)
    text, image_url = validate_content(dto.text, dto.image_url, max_length=max_length)
    if image_url is not None and image_validator is not None:
        await image_validator.validate(image_url)
    return await send_message(conversation, sender, text, image_url, uow, clock=clock)


async def list_messages(
    conversation_key: str,
    principal: Principal,
    cursor: str | None,
    limit: int,
    uow: UnitOfWork,
) -> MessagePage:
    conversation = await assert_conversation_access(
        principal, conversation_key, uow.participants,
    )
    return await uow.messages.list_messages(conversation.key, cursor=cursor, limit=limit)


async def search_messages(
    conversation_key: str,
    principal: Principal,
    query: str,
    limit: int,
    uow: UnitOfWork,
) -> list[Message]:
    query = query.strip()
    if len(query) < 2:
        raise ValidationError("Search query must be at least 2 characters")
    conversation = await assert_conversation_access(
        principal, conversation_key, uow.participants,
    )
    return await uow.messages.search(conversation.key, query, limit=limit)
