"""
User repository: the generic operations plus the user validation pipeline.

    create_user:  sanitize -> validate (UserCreate) -> hash password
                  -> uniqueness probe on email -> INSERT ... RETURNING
    update_user:  sanitize -> validate (UserUpdate) -> confirm old password
                  -> re-hash -> UPDATE ... RETURNING

The email probe in create_user is a fast path for a readable error only. Two
concurrent inserts of the same address can both pass it; the unique constraint
on users.email then rejects one of them, which surfaces as the same ConflictError.

Callers check roles/permissions before calling any mutation; nothing here does.
"""
import hmac
import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from userstore.exceptions import (
    ConflictError,
    InvalidFieldError,
    NotFoundError,
    UnauthorizedError,
    UnprocessableError,
)
from userstore.models.user import User
from userstore.query import (
    EntityFilter,
    IntFilter,
    StringFilter,
    TimeFilter,
    ListParams,
    Pagination,
    check_filter_shape,
    get_column_mapping,
)
from userstore.schemas.user import UserCreate, UserUpdate, validate_or_raise
from userstore.security.passwords import PasswordHasher
from userstore.validators.sanitize import sanitize_strings, to_lowercase
from userstore.validators.model_validators import find_readonly_kwargs
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

# Compared case-insensitively and stored lowercased
LOWERCASE_FIELDS = ("email",)


@dataclass
class UserFilter(EntityFilter):
    """One optional combinator per filterable user field. password is not filterable."""
    id: IntFilter | None = None
    email: StringFilter | None = None
    first_name: StringFilter | None = None
    last_name: StringFilter | None = None
    description: StringFilter | None = None
    role: IntFilter | None = None
    status: IntFilter | None = None
    language: StringFilter | None = None
    last_login: TimeFilter | None = None
    created_at: TimeFilter | None = None
    updated_at: TimeFilter | None = None


# a filter field without a matching model attribute fails at import, not per request
check_filter_shape(UserFilter, get_column_mapping(User))


class UserRepository(BaseRepository[User]):
    """
    Args:
        db: the caller's AsyncSession
        hasher: PasswordHasher configured with the work factor from Settings
        **kwargs: passed to BaseRepository (cache, log, default_limit, max_limit)
    """

    def __init__(self, db: AsyncSession, hasher: PasswordHasher, **kwargs):
        super().__init__(User, db, **kwargs)
        self.hasher = hasher

    @classmethod
    def from_settings(cls, db: AsyncSession, settings, **kwargs) -> "UserRepository":
        """Pagination limits and the password work factor taken from Settings."""
        kwargs.setdefault("hasher", PasswordHasher.from_settings(settings))
        return cls(db, **cls.limits_from_settings(settings), **kwargs)

    # =================================================================================================================
    # Create
    # =================================================================================================================

    async def create_user(
        self,
        email: str,
        password: str,
        first_name: str = "",
        last_name: str = "",
        description: str = "",
        **extra,
    ) -> User:
        """
        Validate and insert a new user; the stored password is the argon2 hash.

        `extra` may carry the remaining UserCreate fields (role, status,
        language, last_login).

        Raises:
            UnprocessableError: invalid email, password outside 8-99 characters, unknown field
            ConflictError: a user with this email already exists
        """
        data = sanitize_strings(
            {
                "email": email,
                "password": password,
                "first_name": first_name,
                "last_name": last_name,
                "description": description,
                **extra,
            },
            lowercase=LOWERCASE_FIELDS,
        )
        values = validate_or_raise(UserCreate, data).model_dump()
        values["password"] = self.hasher.hash(values["password"])

        existing = await self.get_all(
            ListParams(
                pagination=Pagination(limit=1),
                filter=UserFilter(email=StringFilter(eq=values["email"])),
            )
        )
        if existing:
            self.log.info("repo.create.duplicate_precheck",
                          extra={"model": self.model_name, "conflict_fields": ["email"]})
            raise ConflictError(f"User with email {values['email']} already exists", fields=["email"])

        return await self.create(**values)

    # =================================================================================================================
    # Read
    # =================================================================================================================

    async def list_users(self, params: ListParams | None = None) -> list[User]:
        return await self.get_all(params)

    async def get_by_email(self, email: str) -> User:
        """Look a user up by email (case-insensitive). NotFoundError if there is none."""
        normalized = to_lowercase(email)
        users = await self.get_all(
            ListParams(pagination=Pagination(limit=1), filter=UserFilter(email=StringFilter(eq=normalized)))
        )
        if not users:
            raise NotFoundError("User not found", fields=["email"])
        return users[0]

    def check_password(self, user: User, candidate: str) -> None:
        """UnauthorizedError unless `candidate` matches the user's stored hash."""
        self.hasher.verify(candidate, user.password)

    # =================================================================================================================
    # Update
    # =================================================================================================================

    async def update_user(
        self,
        user_id: int,
        *,
        old_hashed_password: str | None = None,
        old_password: str | None = None,
        **changes,
    ) -> User:
        """
        Validate and apply a partial update.

        Changing the password: pass the new plaintext as `password` and the
        current plaintext as `old_password`. The current one is always checked
        against the stored hash before anything is written. `old_hashed_password`,
        when given, must equal the stored hash (a caller holding a stale copy is
        refused). Passing the stored hash itself as `password` leaves it unchanged.

        Raises:
            InvalidFieldError: id, email or timestamps in `changes`
            UnprocessableError: invalid values; password change without old_password
            UnauthorizedError: old_password or old_hashed_password does not match
            NotFoundError: no user with this id
        """
        readonly = find_readonly_kwargs(User, changes, extra=LOWERCASE_FIELDS)
        if readonly:
            raise InvalidFieldError(
                f"Field(s) of User cannot be updated: {', '.join(sorted(readonly))}",
                fields=sorted(readonly),
            )

        data = sanitize_strings(changes)
        values = validate_or_raise(UserUpdate, data).model_dump(exclude_unset=True)

        new_password = values.pop("password", None)
        if new_password is not None:
            # always the stored hash; a caller-supplied one is only checked against it
            stored_hash = (await self.get_by_id(user_id)).password
            if old_hashed_password is not None and not hmac.compare_digest(
                old_hashed_password.encode(), stored_hash.encode()
            ):
                self.log.info("repo.update.stale_password_hash", extra={"model": self.model_name, "id": user_id})
                raise UnauthorizedError("Password does not match", fields=["old_password"])

            if not hmac.compare_digest(new_password.encode(), stored_hash.encode()):
                if old_password is None:
                    raise UnprocessableError("old_password is required to change the password",
                                             fields=["old_password"])
                # UnauthorizedError on mismatch; nothing has been written yet
                self.hasher.verify(old_password, stored_hash)
                values["password"] = self.hasher.hash(new_password)
                self.log.info("repo.update.password_changed", extra={"model": self.model_name, "id": user_id})

        return await self.update(user_id, **values)

    # =================================================================================================================
    # Delete
    # =================================================================================================================

    async def delete_user(self, user_id: int) -> bool:
        """
        Delete the user. A user still referenced by other rows (e.g. conversations)
        is not deleted: UnprocessableError.
        """
        return await self.delete(user_id)
