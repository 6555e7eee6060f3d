"""Keyset cursors for message history.

A cursor names the last message of a page by its ``(created_at, id)`` sort key,
urlsafe-base64 encoded without padding.
"""
from __future__ import annotations

import base64
import binascii
from datetime import datetime
from uuid import UUID

from chat_engine.application.exceptions import ValidationError

_SEP = "|"


def encode_cursor(created_at: datetime, message_id: UUID) -> str:
    raw = f"{created_at.isoformat()}{_SEP}{message_id}"
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii").rstrip("=")


def decode_cursor(cursor: str) -> tuple[datetime, UUID]:
    """Inverse of :func:`encode_cursor`. Raises ``ValidationError`` on garbage."""
    padded = cursor + "=" * (-len(cursor) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")
        created_raw, id_raw = raw.split(_SEP, 1)
        created_at = datetime.fromisoformat(created_raw)
        message_id = UUID(id_raw)
    except (binascii.Error, UnicodeError, ValueError) as exc:
        raise ValidationError("Invalid pagination cursor") from exc
    if created_at.tzinfo is None:
        raise ValidationError("Invalid pagination cursor")
    return created_at, message_id
