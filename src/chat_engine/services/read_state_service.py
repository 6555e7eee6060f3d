from __future__ import annotations

import logging
from collections.abc import Sequence
from uuid import UUID

from chat_engine.application.ports.clock import Clock, SystemClock
from chat_engine.application.uow import UnitOfWork

logger = logging.getLogger(__name__)


async def mark_read(
    conversation_key: str,
    reader_id: str,
    message_ids: Sequence[UUID],
    uow: UnitOfWork,
    *,
    clock: Clock | None = None,
) -> list[UUID]:
    """Mark the given messages read for their recipient.

    Read state is tracked per message: reading a later message says nothing
    about earlier ones. Ids that are already read, were sent by the reader or
    belong to another conversation are skipped. Returns the ids that changed.
    """
    unique_ids = list(dict.fromkeys(message_ids))
    if not unique_ids:
        return []

    now = (clock or SystemClock()).now()
    changed = await uow.messages_w.mark_read(conversation_key, reader_id, unique_ids, now)
    if changed:
        await uow.commit()
    skipped = len(unique_ids) - len(changed)
    if skipped:
        logger.debug(
            "mark_read: %d of %d ids unchanged for reader %s in %s",
            skipped, len(unique_ids), reader_id, conversation_key,
        )
    return changed
