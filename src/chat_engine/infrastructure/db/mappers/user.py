from __future__ import annotations

from chat_engine.domain.entities.notification_preference import NotificationPreference
from chat_engine.domain.entities.participant import Participant
from chat_engine.domain.value_objects.enums import UserRole
from chat_engine.infrastructure.db.models.user import UserModel


def model_to_participant(model: UserModel) -> Participant:
    return Participant(
        id=model.id,
        role=UserRole.parse(model.role),
        display_name=model.display_name,
        email=model.email,
    )


def model_to_preference(model: UserModel) -> NotificationPreference:
    return NotificationPreference(
        user_id=model.id,
        push_enabled=model.push_enabled,
        email_enabled=model.email_enabled,
        push_token=model.push_token,
    )
