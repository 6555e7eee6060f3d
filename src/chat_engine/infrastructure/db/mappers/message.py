from __future__ import annotations

from chat_engine.domain.entities.message import Message
from chat_engine.domain.value_objects.enums import MessageStatus
from chat_engine.infrastructure.db.models.message import MessageModel


def model_to_entity(model: MessageModel) -> Message:
    return Message(
        id=model.id,
        conversation_key=model.conversation_key,
        sender_id=model.sender_id,
        recipient_id=model.recipient_id,
        text=model.text,
        image_url=model.image_url,
        status=MessageStatus(model.status),
        created_at=model.created_at,
        delivered_at=model.delivered_at,
        read_at=model.read_at,
    )


def entity_to_model(entity: Message) -> MessageModel:
    return MessageModel(
        id=entity.id,
        conversation_key=entity.conversation_key,
        sender_id=entity.sender_id,
        recipient_id=entity.recipient_id,
        text=entity.text,
        image_url=entity.image_url,
        status=entity.status.value,
        created_at=entity.created_at,
        delivered_at=entity.delivered_at,
        read_at=entity.read_at,
    )
