"""
Single import point for the ORM models.

    from userstore.models import Base, User, Conversation

Importing this package also registers every table on Base.metadata.
"""

from .base import Base, TimestampMixin
from .user import User
from .conversation import Conversation

__all__ = [
    "Base",
    "TimestampMixin",
    "User",
    "Conversation",
]
