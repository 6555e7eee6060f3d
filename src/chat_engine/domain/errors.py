"""Errors raised by pure domain code (no I/O involved)."""
from __future__ import annotations


class DomainError(Exception):
    code = "domain_error"
    status_code = 400

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class InvalidPairingError(DomainError):
    """Same user twice, or not exactly one client and one professional."""

    code = "invalid_pairing"


class ConversationKeyError(DomainError):
    pass


class MalformedKeyError(ConversationKeyError):
    code = "malformed_conversation_key"


class AmbiguousKeyError(ConversationKeyError):
    """The value looks like a single identifier rather than a pair.

    Callers can recover through the resolve-conversation path.
    """

    code = "ambiguous_conversation_key"

    def __init__(self, detail: str = "", *, value: str = "") -> None:
        super().__init__(detail)
        self.value = value

    @property
    def recovery(self) -> dict[str, str]:
        return {"action": "resolve", "path": f"/api/v1/chat/resolve/{self.value}"}


class UnresolvableKeyError(ConversationKeyError):
    code = "unresolvable_conversation_key"
    status_code = 404
