from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class NotificationPreference:
    user_id: str
    push_enabled: bool = True
    email_enabled: bool = True
    push_token: str | None = None
