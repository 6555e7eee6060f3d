from __future__ import annotations

from typing import Any

import jwt

from chat_engine.application.dto.principal import Principal
from chat_engine.domain.value_objects.enums import UserRole


def principal_from_claims(payload: dict[str, Any]) -> Principal:
    """Map verified JWT claims onto a chat principal.

    ``sub`` is the marketplace user id, ``role`` must be ``client`` or
    ``professional`` (the legacy ``cliente``/``profesional`` spellings are accepted).
    """
    subject = payload.get("sub") or payload.get("userId") or payload.get("id")
    if not subject:
        raise jwt.InvalidTokenError("Token has no subject")
    role_raw = payload.get("role", payload.get("rol"))
    role = UserRole.parse(role_raw)
    if not role.can_chat:
        raise jwt.InvalidTokenError(f"Unsupported role {role_raw!r}")
    return Principal(
        user_id=str(subject),
        role=role,
        display_name=str(payload.get("name") or payload.get("nombre") or ""),
    )
