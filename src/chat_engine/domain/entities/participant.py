from __future__ import annotations

from dataclasses import dataclass

from chat_engine.domain.value_objects.enums import UserRole


@dataclass(frozen=True, slots=True)
class Participant:
    id: str
    role: UserRole
    display_name: str
    email: str | None = None
