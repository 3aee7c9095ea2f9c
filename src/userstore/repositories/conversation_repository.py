"""
Conversation repository.

Conversations only matter to the user store as rows that reference a user;
the generic operations are all they need.
"""
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from userstore.models.conversation import Conversation
from userstore.query import (
    EntityFilter,
    IntFilter,
    StringFilter,
    TimeFilter,
    ListParams,
    Pagination,
    Sort,
    check_filter_shape,
    get_column_mapping,
)
from .base_repository import BaseRepository


@dataclass
class ConversationFilter(EntityFilter):
    id: IntFilter | None = None
    title: StringFilter | None = None
    user_id: IntFilter | None = None
    created_at: TimeFilter | None = None
    updated_at: TimeFilter | None = None


check_filter_shape(ConversationFilter, get_column_mapping(Conversation))


class ConversationRepository(BaseRepository[Conversation]):

    def __init__(self, db: AsyncSession, **kwargs):
        super().__init__(Conversation, db, **kwargs)

    @classmethod
    def from_settings(cls, db: AsyncSession, settings, **kwargs) -> "ConversationRepository":
        return cls(db, **cls.limits_from_settings(settings), **kwargs)

    async def list_for_user(self, user_id: int, limit: int | None = None, offset: int = 0) -> list[Conversation]:
        """A user's conversations, oldest first."""
        return await self.get_all(
            ListParams(
                pagination=Pagination(limit=limit, offset=offset),
                sort=Sort(field="id"),
                filter=ConversationFilter(user_id=IntFilter(eq=user_id)),
            )
        )
