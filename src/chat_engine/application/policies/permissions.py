from __future__ import annotations

from chat_engine.application.dto.principal import Principal
from chat_engine.application.exceptions import NotFoundError, UnauthorizedError
from chat_engine.application.repositories.participant import ParticipantDirectory
from chat_engine.domain.entities.conversation import Conversation
from chat_engine.domain.errors import InvalidPairingError
from chat_engine.domain.value_objects.conversation_key import parse_key


async def load_pairing(
    id_a: str,
    id_b: str,
    participants: ParticipantDirectory,
) -> Conversation:
    """Look both users up and validate that they form a client/professional pair."""
    found = await participants.get_many([id_a, id_b])
    missing = [uid for uid in (id_a, id_b) if uid not in found]
    if missing:
        raise NotFoundError(f"Unknown participant(s): {', '.join(missing)}")
    for uid in (id_a, id_b):
        if not found[uid].role.can_chat:
            raise InvalidPairingError(
                f"Participant {uid} has role {found[uid].role.value!r}, not client or professional"
            )
    return Conversation.pair(found[id_a], found[id_b])


async def assert_conversation_access(
    principal: Principal,
    conversation_key: str,
    participants: ParticipantDirectory,
) -> Conversation:
    """Raise unless the caller is one of the two participants of a valid pairing.

    Key format errors propagate unchanged so the caller can offer recovery.
    """
    parsed = parse_key(conversation_key)
    if not parsed.includes(principal.user_id):
        raise UnauthorizedError("Not a participant of this conversation")
    return await load_pairing(parsed.first, parsed.second, participants)
