from __future__ import annotations

import pytest

from chat_engine.application.policies.permissions import load_pairing
from chat_engine.domain.errors import InvalidPairingError
from chat_engine.domain.value_objects.enums import UserRole
from chat_engine.infrastructure.db.mappers.user import model_to_participant
from chat_engine.infrastructure.db.models.message import MessageModel
from chat_engine.infrastructure.db.models.user import UserModel
from tests.conftest import CLIENT_ID, FakeDirectory


def _user(user_id: str, role: str) -> UserModel:
    return UserModel(id=user_id, role=role, display_name=user_id, email=None)


def test_message_table_server_defaults():
    columns = MessageModel.__table__.c

    assert str(columns.created_at.server_default.arg) == "now()"
    assert str(columns.id.server_default.arg) == "gen_random_uuid()"
    assert columns["text"].nullable is True


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("client", UserRole.CLIENT),
        ("Profesional", UserRole.PROFESSIONAL),
        ("cliente", UserRole.CLIENT),
        ("admin", UserRole.ADMIN),
        ("moderator", UserRole.UNKNOWN),
    ],
)
def test_directory_roles_are_normalized(raw, expected):
    assert model_to_participant(_user("u1", raw)).role == expected


@pytest.mark.asyncio
async def test_admin_cannot_be_paired(client_user):
    directory = FakeDirectory()
    directory.add(client_user)
    directory.add(model_to_participant(_user("a1", "admin")))

    with pytest.raises(InvalidPairingError) as exc_info:
        await load_pairing(CLIENT_ID, "a1", directory)

    assert "admin" in exc_info.value.detail


@pytest.mark.asyncio
async def test_legacy_roles_pair_normally():
    directory = FakeDirectory()
    directory.add(model_to_participant(_user("c1", "cliente")))
    directory.add(model_to_participant(_user("p1", "profesional")))

    conversation = await load_pairing("p1", "c1", directory)

    assert conversation.client.id == "c1"
    assert conversation.professional.id == "p1"
