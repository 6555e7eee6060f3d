from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, case, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from chat_engine.application.dto.message import MessagePage
from chat_engine.domain.entities.conversation import ConversationActivity
from chat_engine.domain.entities.message import Message
from chat_engine.domain.value_objects.enums import MessageStatus
from chat_engine.infrastructure.db.mappers import message as mapper
from chat_engine.infrastructure.db.models.message import MessageModel
from chat_engine.infrastructure.db.repositories._cursor import decode_cursor, encode_cursor


def _involves(user_id: str):
    return or_(MessageModel.sender_id == user_id, MessageModel.recipient_id == user_id)


class MessageReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_messages(
        self,
        conversation_key: str,
        *,
        cursor: str | None = None,
        limit: int = 50,
    ) -> MessagePage:
        stmt = (
            select(MessageModel)
            .where(MessageModel.conversation_key == conversation_key)
            .order_by(MessageModel.created_at.asc(), MessageModel.id.asc())
            .limit(limit)
        )
        if cursor:
            ts, mid = decode_cursor(cursor)
            stmt = stmt.where(
                (MessageModel.created_at > ts)
                | ((MessageModel.created_at == ts) & (MessageModel.id > mid))
            )
        result = await self._session.execute(stmt)
        items = [mapper.model_to_entity(m) for m in result.scalars().all()]
        next_cursor = None
        if len(items) == limit:
            next_cursor = encode_cursor(items[-1].created_at, items[-1].id)
        return MessagePage(items=items, next_cursor=next_cursor)

    async def search(
        self, conversation_key: str, query: str, *, limit: int = 20,
    ) -> list[Message]:
        stmt = (
            select(MessageModel)
            .where(
                MessageModel.conversation_key == conversation_key,
                func.lower(MessageModel.text).contains(query.lower(), autoescape=True),
            )
            .order_by(MessageModel.created_at.desc(), MessageModel.id.desc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def last_message(self, conversation_key: str) -> Message | None:
        return await self._latest(MessageModel.conversation_key == conversation_key)

    async def latest_between(self, user_a: str, user_b: str) -> Message | None:
        return await self._latest(
            or_(
                and_(MessageModel.sender_id == user_a, MessageModel.recipient_id == user_b),
                and_(MessageModel.sender_id == user_b, MessageModel.recipient_id == user_a),
            )
        )

    async def latest_involving(self, user_id: str) -> Message | None:
        return await self._latest(_involves(user_id))

    async def list_activity(
        self, user_id: str, *, limit: int = 50,
    ) -> list[ConversationActivity]:
        unread = case(
            (
                and_(
                    MessageModel.recipient_id == user_id,
                    MessageModel.status != MessageStatus.READ.value,
                ),
                1,
            ),
            else_=0,
        )
        stats_stmt = (
            select(
                MessageModel.conversation_key,
                func.count().label("message_count"),
                func.sum(unread).label("unread_count"),
                func.max(MessageModel.created_at).label("last_at"),
            )
            .where(_involves(user_id))
            .group_by(MessageModel.conversation_key)
            .order_by(func.max(MessageModel.created_at).desc())
            .limit(limit)
        )
        stats = (await self._session.execute(stats_stmt)).all()
        if not stats:
            return []

        keys = [row.conversation_key for row in stats]
        last_stmt = (
            select(MessageModel)
            .where(MessageModel.conversation_key.in_(keys))
            .order_by(
                MessageModel.conversation_key,
                MessageModel.created_at.desc(),
                MessageModel.id.desc(),
            )
            .distinct(MessageModel.conversation_key)
        )
        result = await self._session.execute(last_stmt)
        last_by_key = {m.conversation_key: mapper.model_to_entity(m) for m in result.scalars().all()}

        activity: list[ConversationActivity] = []
        for row in stats:
            last = last_by_key.get(row.conversation_key)
            if last is None:
                continue
            counterpart = last.recipient_id if last.sender_id == user_id else last.sender_id
            activity.append(
                ConversationActivity(
                    conversation_key=row.conversation_key,
                    counterpart_id=counterpart,
                    last_message=last,
                    message_count=int(row.message_count),
                    unread_count=int(row.unread_count or 0),
                )
            )
        return activity

    async def _latest(self, condition) -> Message | None:
        stmt = (
            select(MessageModel)
            .where(condition)
            .order_by(MessageModel.created_at.desc(), MessageModel.id.desc())
            .limit(1)
        )
        model = (await self._session.execute(stmt)).scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None


class MessageWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, message: Message) -> Message:
        model = mapper.entity_to_model(message)
        self._session.add(model)
        await self._session.flush()
        return mapper.model_to_entity(model)

    async def mark_delivered(
        self, message_ids: Sequence[UUID], at: datetime,
    ) -> list[UUID]:
        if not message_ids:
            return []
        stmt = (
            update(MessageModel)
            .where(
                MessageModel.id.in_(list(message_ids)),
                MessageModel.status == MessageStatus.SENT.value,
            )
            .values(status=MessageStatus.DELIVERED.value, delivered_at=at)
            .returning(MessageModel.id)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def mark_read(
        self,
        conversation_key: str,
        reader_id: str,
        message_ids: Sequence[UUID],
        at: datetime,
    ) -> list[UUID]:
        if not message_ids:
            return []
        stmt = (
            update(MessageModel)
            .where(
                MessageModel.id.in_(list(message_ids)),
                MessageModel.conversation_key == conversation_key,
                MessageModel.recipient_id == reader_id,
                MessageModel.status != MessageStatus.READ.value,
            )
            .values(
                status=MessageStatus.READ.value,
                read_at=at,
                delivered_at=func.coalesce(MessageModel.delivered_at, at),
            )
            .returning(MessageModel.id)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())
