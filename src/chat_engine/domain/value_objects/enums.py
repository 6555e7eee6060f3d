from __future__ import annotations

from enum import StrEnum


class UserRole(StrEnum):
    CLIENT = "client"
    PROFESSIONAL = "professional"
    ADMIN = "admin"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw: str | None) -> UserRole:
        """Normalize a directory or token role. Legacy Spanish spellings are accepted."""
        value = str(raw or "").strip().lower()
        value = _LEGACY_ROLES.get(value, value)
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN

    @property
    def can_chat(self) -> bool:
        return self in (UserRole.CLIENT, UserRole.PROFESSIONAL)


_LEGACY_ROLES = {
    "cliente": "client",
    "profesional": "professional",
    "administrador": "admin",
}


class MessageStatus(StrEnum):
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    def can_advance_to(self, other: MessageStatus) -> bool:
        return other.rank > self.rank


_STATUS_RANK = {
    MessageStatus.SENT: 0,
    MessageStatus.DELIVERED: 1,
    MessageStatus.READ: 2,
}


class OperationClass(StrEnum):
    MESSAGE = "message"
    UPLOAD = "upload"


class NotificationChannel(StrEnum):
    PUSH = "push"
    EMAIL = "email"


class DeliveryOutcome(StrEnum):
    DELIVERED = "delivered"
    FAILED = "failed"
    DISABLED = "disabled"
    UNAVAILABLE = "unavailable"
