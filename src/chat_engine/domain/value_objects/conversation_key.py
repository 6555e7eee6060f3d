"""Order-independent conversation keys.

A conversation has no row of its own; it is identified by the unordered pair of
its two participants. Format: ``"<lower-id>:<higher-id>"``.

Keys produced before the ``:`` separator was introduced joined two UUIDs with a
dash (``"<uuid>-<uuid>"``). Those are still accepted by :func:`parse_key`.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

from chat_engine.domain.errors import (
    AmbiguousKeyError,
    InvalidPairingError,
    MalformedKeyError,
)

SEPARATOR = ":"

_UUID = r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"
_UUID_RE = re.compile(rf"^{_UUID}$", re.IGNORECASE)
_LEGACY_PAIR_RE = re.compile(rf"^({_UUID})-({_UUID})$", re.IGNORECASE)
_SINGLE_ID_RE = re.compile(r"^[A-Za-z0-9_.\-]+$")


@dataclass(frozen=True, slots=True)
class ParsedKey:
    first: str
    second: str

    @property
    def key(self) -> str:
        return f"{self.first}{SEPARATOR}{self.second}"

    def includes(self, user_id: str) -> bool:
        return user_id in (self.first, self.second)


def canonical_key(id_a: str, id_b: str) -> str:
    """Return the same key for ``(a, b)`` and ``(b, a)``."""
    return canonical_pair(id_a, id_b).key


def canonical_pair(id_a: str, id_b: str) -> ParsedKey:
    for value in (id_a, id_b):
        if not value:
            raise InvalidPairingError("Participant identifier must not be empty")
        if SEPARATOR in value:
            raise InvalidPairingError(
                f"Participant identifier must not contain {SEPARATOR!r}"
            )
    if id_a == id_b:
        raise InvalidPairingError("A conversation needs two different participants")
    first, second = sorted((id_a, id_b))
    return ParsedKey(first=first, second=second)


def parse_key(key: str) -> ParsedKey:
    """Split a key into its two participants.

    Raises :class:`AmbiguousKeyError` when the value is a single identifier
    (typically a bare UUID) and :class:`MalformedKeyError` for anything else
    that is not a pair.
    """
    value = (key or "").strip()
    if not value:
        raise MalformedKeyError("Conversation key is empty")

    if SEPARATOR in value:
        parts = value.split(SEPARATOR)
        if len(parts) != 2 or not all(parts):
            raise MalformedKeyError(
                f"Conversation key must be two identifiers joined by {SEPARATOR!r}"
            )
        return _pair_or_malformed(parts[0], parts[1])

    legacy = _LEGACY_PAIR_RE.match(value)
    if legacy:
        return _pair_or_malformed(legacy.group(1), legacy.group(2))

    if _UUID_RE.match(value) or _SINGLE_ID_RE.match(value):
        raise AmbiguousKeyError(
            "Conversation key looks like a single identifier", value=value,
        )
    raise MalformedKeyError("Unrecognized conversation key format")


def _pair_or_malformed(a: str, b: str) -> ParsedKey:
    try:
        return canonical_pair(a, b)
    except InvalidPairingError as exc:
        raise MalformedKeyError(exc.detail) from exc
