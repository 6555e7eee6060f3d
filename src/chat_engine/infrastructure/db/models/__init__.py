"""Importing this package registers every table on ``Base.metadata``."""
from chat_engine.infrastructure.db.models.message import MessageModel
from chat_engine.infrastructure.db.models.user import UserModel

__all__ = [
    "MessageModel",
    "UserModel",
]
