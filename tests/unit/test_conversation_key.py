from __future__ import annotations

import uuid

import pytest

from chat_engine.domain.errors import (
    AmbiguousKeyError,
    InvalidPairingError,
    MalformedKeyError,
)
from chat_engine.domain.value_objects.conversation_key import canonical_key, parse_key

A = "0b0e6a4e-3f7c-4d1e-9a51-6b1f0e2c1a01"
B = "7c9d2f10-8e4b-4a7a-b2c3-d4e5f6a7b802"


@pytest.mark.parametrize(
    "a, b",
    [
        (A, B),
        ("alice", "bob"),
        ("user-10", "user-9"),
        (str(uuid.uuid4()), str(uuid.uuid4())),
    ],
)
def test_canonical_key_is_order_independent_and_parses_back(a, b):
    key = canonical_key(a, b)

    assert key == canonical_key(b, a)
    parsed = parse_key(key)
    assert {parsed.first, parsed.second} == {a, b}
    assert parsed.key == key


def test_canonical_key_rejects_self_pairing():
    with pytest.raises(InvalidPairingError):
        canonical_key(A, A)


@pytest.mark.parametrize("a, b", [("", B), (A, ""), ("x:y", B)])
def test_canonical_key_rejects_identifiers_that_cannot_round_trip(a, b):
    with pytest.raises(InvalidPairingError):
        canonical_key(a, b)


def test_parse_key_accepts_legacy_dash_joined_uuids():
    parsed = parse_key(f"{B}-{A}")

    assert (parsed.first, parsed.second) == (A, B)
    assert parsed.key == canonical_key(A, B)


def test_parse_key_bare_uuid_is_ambiguous_with_recovery_hint():
    with pytest.raises(AmbiguousKeyError) as exc_info:
        parse_key(A)

    assert exc_info.value.code == "ambiguous_conversation_key"
    assert exc_info.value.recovery["path"].endswith(f"/resolve/{A}")


def test_parse_key_single_opaque_identifier_is_ambiguous():
    with pytest.raises(AmbiguousKeyError):
        parse_key("user_42")


@pytest.mark.parametrize(
    "value",
    ["", "   ", f"{A}:", f":{B}", f"{A}:{B}:x", f"{A}:{A}", "hello world", "<script>"],
)
def test_parse_key_malformed(value):
    with pytest.raises(MalformedKeyError):
        parse_key(value)
