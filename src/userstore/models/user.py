from sqlalchemy import String, Text, Integer, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime
from typing import TYPE_CHECKING

from .base import Base, TimestampMixin

# Avoid circular import issues when using type hints for related models
if TYPE_CHECKING:
    from .conversation import Conversation


class User(TimestampMixin, Base):
    """
    SQLAlchemy model for a user account.

    Attribute names are the logical field names callers use in filters and sorts;
    the first argument of mapped_column() is the physical column when it differs
    (first_name -> firstname). The column mapping is derived from these declarations.
    """
    __tablename__ = "users"

    # never filterable or sortable, see query.columns
    __secret_fields__ = frozenset({"password"})

    # Server-assigned, immutable after creation
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Natural key: unique, stored lowercased
    email: Mapped[str] = mapped_column(String(254), unique=True, index=True, nullable=False)

    # argon2 hash, never the plaintext and never serialized (see schemas.UserRead)
    password: Mapped[str] = mapped_column(String(255), nullable=False)

    first_name: Mapped[str] = mapped_column("firstname", String(100), default="", nullable=False)
    last_name: Mapped[str] = mapped_column("lastname", String(100), default="", nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)

    # Opaque to this package; callers enforce roles before calling mutations
    role: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    status: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    language: Mapped[str | None] = mapped_column(String(10), nullable=True)
    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # --- Relationships ---

    # No ORM cascade: deleting a user that still owns conversations must fail at the
    # database (foreign key), not silently delete the conversations.
    conversations: Mapped[list["Conversation"]] = relationship(
        "Conversation",
        back_populates="user",
        passive_deletes="all",
        lazy="select",
    )

    def __repr__(self) -> str:
        # password deliberately left out
        return f"<User(id={self.id!r}, email={self.email!r})>"
