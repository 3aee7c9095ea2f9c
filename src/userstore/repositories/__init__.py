from .base_repository import BaseRepository
from .user_repository import UserRepository, UserFilter
from .conversation_repository import ConversationRepository, ConversationFilter

__all__ = [
    "BaseRepository",
    "UserRepository",
    "UserFilter",
    "ConversationRepository",
    "ConversationFilter",
]
