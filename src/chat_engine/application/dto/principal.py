from __future__ import annotations

from dataclasses import dataclass

from chat_engine.domain.value_objects.enums import UserRole


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated caller identity extracted from JWT."""

    user_id: str
    role: UserRole
    display_name: str = ""
