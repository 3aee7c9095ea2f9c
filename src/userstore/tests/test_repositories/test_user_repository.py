import datetime

import pytest

from userstore.config.settings import Settings
from userstore.exceptions import (
    ConflictError,
    ErrorKind,
    InvalidFieldError,
    NotFoundError,
    UnauthorizedError,
    UnprocessableError,
)
from userstore.models.user import User
from userstore.query import IntFilter, ListParams, Pagination, Sort, StringFilter, TimeFilter
from userstore.repositories.user_repository import UserFilter, UserRepository


@pytest.mark.asyncio
class TestUserRepositoryCreate:
    """
    create_user(): sanitize -> validate -> hash -> email probe -> insert.

    Fixtures used:
      - user_repository: UserRepository with a low-cost PasswordHasher.
      - sample_user_data: canonical create_user() payload.
    """

    async def test_insert_then_get_round_trip(self, user_repository: UserRepository, sample_user_data: dict):
        """
        Behavior:
          - Insert, then GetByID on the returned id.
          - Non-server fields equal the sanitized input; the password is a hash.
        """
        created = await user_repository.create_user(**sample_user_data)
        fetched = await user_repository.get_by_id(created.id)

        assert isinstance(fetched, User)
        assert fetched.email == sample_user_data["email"]
        assert fetched.first_name == sample_user_data["first_name"]
        assert fetched.last_name == sample_user_data["last_name"]
        assert fetched.description == sample_user_data["description"]
        assert fetched.password != sample_user_data["password"]
        assert user_repository.hasher.is_hash(fetched.password)
        assert isinstance(fetched.created_at, datetime.datetime)

    async def test_create_sanitizes_input(self, user_repository):
        user = await user_repository.create_user(
            email="  Ada@X.COM ",
            password="  spaced password  ",
            first_name="  Ada ",
            last_name="\tLovelace\n",
        )

        assert user.email == "ada@x.com"
        assert user.first_name == "Ada"
        assert user.last_name == "Lovelace"
        # passwords are taken as typed, surrounding spaces included
        user_repository.check_password(user, "  spaced password  ")
        with pytest.raises(UnauthorizedError):
            user_repository.check_password(user, "spaced password")

    async def test_duplicate_email_is_conflict(self, user_repository):
        """Scenario: the same address succeeds once, then fails with Conflict."""
        await user_repository.create_user(email="a@x.com", password="password-1")

        with pytest.raises(ConflictError) as exc_info:
            await user_repository.create_user(email="a@x.com", password="password-2")

        assert exc_info.value.kind is ErrorKind.CONFLICT
        assert exc_info.value.fields == ["email"]

    async def test_duplicate_email_differing_in_case_is_conflict(self, user_repository):
        await user_repository.create_user(email="a@x.com", password="password-1")

        with pytest.raises(ConflictError):
            await user_repository.create_user(email="A@X.com", password="password-2")

    async def test_unique_constraint_is_authoritative_when_probe_misses(self, user_repository, monkeypatch):
        """
        Behavior:
          - Simulate a concurrent writer: the probe sees nothing, the insert collides.
        Importance:
          - The storage constraint, not the probe, guarantees uniqueness.
        """
        await user_repository.create_user(email="race@x.com", password="password-1")

        async def probe_sees_nothing(params=None):
            return []

        monkeypatch.setattr(user_repository, "get_all", probe_sees_nothing)

        with pytest.raises(ConflictError) as exc_info:
            await user_repository.create_user(email="race@x.com", password="password-2")

        assert exc_info.value.cause is not None

    @pytest.mark.parametrize(
        "overrides, field",
        [
            ({"email": "not-an-email"}, "email"),
            ({"email": "   "}, "email"),
            ({"password": "short"}, "password"),
            ({"password": "x" * 100}, "password"),
            ({"first_name": "n" * 101}, "first_name"),
        ],
    )
    async def test_invalid_input_is_unprocessable(self, user_repository, sample_user_data, overrides, field):
        data = {**sample_user_data, **overrides}

        with pytest.raises(UnprocessableError) as exc_info:
            await user_repository.create_user(**data)

        assert field in exc_info.value.fields

    async def test_password_length_bounds_are_inclusive(self, user_repository):
        await user_repository.create_user(email="min@x.com", password="x" * 8)
        await user_repository.create_user(email="max@x.com", password="x" * 99)

    async def test_unknown_extra_field_is_unprocessable(self, user_repository, sample_user_data):
        with pytest.raises(UnprocessableError):
            await user_repository.create_user(**sample_user_data, nickname="ada")

    async def test_validation_error_does_not_echo_password(self, user_repository):
        with pytest.raises(UnprocessableError) as exc_info:
            await user_repository.create_user(email="bad", password="hunter2-secret")

        assert "hunter2-secret" not in str(exc_info.value)


@pytest.mark.asyncio
class TestUserRepositoryRead:

    async def test_get_by_id_missing_is_not_found(self, user_repository):
        """Scenario: GetByID with an id that does not exist."""
        with pytest.raises(NotFoundError) as exc_info:
            await user_repository.get_by_id(9999)

        assert exc_info.value.kind is ErrorKind.NOT_FOUND

    async def test_get_by_email_is_case_insensitive(self, user_repository, created_user):
        assert (await user_repository.get_by_email(" A@X.COM ")).id == created_user.id

    async def test_get_by_email_missing_is_not_found(self, user_repository):
        with pytest.raises(NotFoundError):
            await user_repository.get_by_email("nobody@x.com")

    async def test_check_password(self, user_repository, created_user, sample_user_data):
        user_repository.check_password(created_user, sample_user_data["password"])

        with pytest.raises(UnauthorizedError):
            user_repository.check_password(created_user, "wrong-password")


@pytest.mark.asyncio
class TestUserRepositoryList:

    async def test_pagination_over_sorted_rows(self, user_repository, multiple_users):
        """Scenario: limit=2 offset=1 over five rows by id ascending returns rows 2 and 3."""
        params = ListParams(pagination=Pagination(limit=2, offset=1), sort=Sort(field="id", direction="asc"))

        rows = await user_repository.list_users(params)

        assert [u.id for u in rows] == [multiple_users[1].id, multiple_users[2].id]

    async def test_unset_filter_returns_all_rows(self, user_repository, multiple_users):
        rows = await user_repository.list_users(ListParams(filter=UserFilter(), sort=Sort(field="id")))
        assert [u.id for u in rows] == [u.id for u in multiple_users]

    async def test_descending_sort(self, user_repository, multiple_users):
        rows = await user_repository.list_users(ListParams(sort=Sort(field="first_name", direction="DESC")))
        assert [u.first_name for u in rows] == [f"user_{i}" for i in range(4, -1, -1)]

    async def test_empty_one_of_matches_nothing(self, user_repository, multiple_users):
        rows = await user_repository.list_users(ListParams(filter=UserFilter(id=IntFilter(one_of=[]))))
        assert rows == []

    async def test_one_of_and_range(self, user_repository, multiple_users):
        ids = [u.id for u in multiple_users]
        params = ListParams(
            sort=Sort(field="id"),
            filter=UserFilter(id=IntFilter(one_of=ids[:4], gt=ids[0]), role=IntFilter(eq=1)),
        )

        rows = await user_repository.list_users(params)

        # ids[1] and ids[3] have role 1; ids[0] is excluded by gt
        assert [u.id for u in rows] == [ids[1], ids[3]]

    async def test_contains_treats_wildcards_literally(self, create_user, user_repository):
        target = await create_user(description="50%_off")
        await create_user(description="500 off")

        rows = await user_repository.list_users(ListParams(filter=UserFilter(description=StringFilter(contains="0%_"))))

        assert [u.id for u in rows] == [target.id]

    async def test_is_null(self, create_user, user_repository):
        with_language = await create_user(language="en")
        without_language = await create_user()

        nulls = await user_repository.list_users(ListParams(filter=UserFilter(language=StringFilter(is_null=True))))
        not_nulls = await user_repository.list_users(
            ListParams(filter=UserFilter(language=StringFilter(is_null=False)))
        )

        assert [u.id for u in nulls] == [without_language.id]
        assert [u.id for u in not_nulls] == [with_language.id]

    async def test_time_filter(self, create_user, user_repository):
        jan = datetime.datetime(2024, 1, 15, tzinfo=datetime.timezone.utc)
        jun = datetime.datetime(2024, 6, 15, tzinfo=datetime.timezone.utc)
        early = await create_user(last_login=jan)
        await create_user(last_login=jun)

        cutoff = datetime.datetime(2024, 3, 1, tzinfo=datetime.timezone.utc)
        rows = await user_repository.list_users(ListParams(filter=UserFilter(last_login=TimeFilter(before=cutoff))))

        assert [u.id for u in rows] == [early.id]

    async def test_count_with_filter(self, user_repository, multiple_users):
        assert await user_repository.count(UserFilter(role=IntFilter(eq=0))) == 3

    async def test_sort_by_password_is_rejected(self, user_repository, multiple_users):
        with pytest.raises(InvalidFieldError) as exc_info:
            await user_repository.list_users(ListParams(sort=Sort(field="password")))

        assert exc_info.value.fields == ["password"]

    async def test_limits_from_settings(self, db_session, create_user):
        """PAGINATION_DEFAULT_LIMIT / PAGINATION_MAX_LIMIT reach the list query."""
        for _ in range(4):
            await create_user()
        settings = Settings(_env_file=None, PAGINATION_DEFAULT_LIMIT=2, PAGINATION_MAX_LIMIT=3,
                            PASSWORD_HASH_ROUNDS=1)

        repo = UserRepository.from_settings(db_session, settings)

        assert (repo.default_limit, repo.max_limit) == (2, 3)
        assert repo.hasher.rounds == 1
        assert len(await repo.list_users()) == 2
        assert len(await repo.list_users(ListParams(pagination=Pagination(limit=50)))) == 3


@pytest.mark.asyncio
class TestUserRepositoryUpdate:

    async def test_update_profile_fields(self, user_repository, created_user):
        updated = await user_repository.update_user(created_user.id, first_name="  Grace ", description="admiral")

        assert updated.first_name == "Grace"
        assert updated.description == "admiral"
        assert updated.last_name == "Lovelace"

    async def test_change_password_with_correct_old_password(self, user_repository, created_user, sample_user_data):
        old_hash = created_user.password

        updated = await user_repository.update_user(
            created_user.id,
            password="brand-new-password",
            old_password=sample_user_data["password"],
            old_hashed_password=old_hash,
        )

        assert updated.password != old_hash
        assert updated.password != "brand-new-password"
        user_repository.check_password(updated, "brand-new-password")

    async def test_change_password_loads_stored_hash_when_not_given(self, user_repository, created_user,
                                                                    sample_user_data):
        updated = await user_repository.update_user(
            created_user.id, password="brand-new-password", old_password=sample_user_data["password"]
        )

        user_repository.check_password(updated, "brand-new-password")

    async def test_wrong_old_password_is_unauthorized_and_hash_unchanged(self, user_repository, created_user):
        """Scenario: wrong previous password when changing it; the stored hash stays as it was."""
        old_hash = created_user.password

        with pytest.raises(UnauthorizedError) as exc_info:
            await user_repository.update_user(
                created_user.id,
                password="brand-new-password",
                old_password="not-the-password",
                old_hashed_password=old_hash,
            )

        assert exc_info.value.kind is ErrorKind.UNAUTHORIZED
        [row] = await user_repository.list_users(ListParams(filter=UserFilter(id=IntFilter(eq=created_user.id))))
        assert row.password == old_hash

    async def test_forged_old_hash_is_unauthorized_and_hash_unchanged(self, user_repository, hasher, created_user):
        """
        Behavior:
          - The caller hashes a password of its own choosing and passes it as
            old_hashed_password, together with the matching old_password.
          - The stored hash, not the supplied one, decides: UnauthorizedError.
        Importance:
          - Changing a password must require knowing the current one.
        """
        stored_hash = created_user.password
        forged_hash = hasher.hash("chosen-by-caller")

        with pytest.raises(UnauthorizedError):
            await user_repository.update_user(
                created_user.id,
                password="takeover-password",
                old_password="chosen-by-caller",
                old_hashed_password=forged_hash,
            )

        assert (await user_repository.get_by_id(created_user.id)).password == stored_hash
        with pytest.raises(UnauthorizedError):
            user_repository.check_password(created_user, "takeover-password")

    async def test_right_old_password_with_stale_hash_is_unauthorized(self, user_repository, hasher, created_user,
                                                                      sample_user_data):
        stored_hash = created_user.password

        with pytest.raises(UnauthorizedError):
            await user_repository.update_user(
                created_user.id,
                password="brand-new-password",
                old_password=sample_user_data["password"],
                old_hashed_password=hasher.hash(sample_user_data["password"]),
            )

        assert (await user_repository.get_by_id(created_user.id)).password == stored_hash

    async def test_password_change_without_old_password_is_unprocessable(self, user_repository, created_user):
        old_hash = created_user.password

        with pytest.raises(UnprocessableError) as exc_info:
            await user_repository.update_user(created_user.id, password="brand-new-password")

        assert exc_info.value.fields == ["old_password"]
        assert (await user_repository.get_by_id(created_user.id)).password == old_hash

    async def test_resubmitting_stored_hash_keeps_password(self, user_repository, created_user, sample_user_data):
        old_hash = created_user.password

        updated = await user_repository.update_user(
            created_user.id, password=old_hash, old_hashed_password=old_hash, first_name="Same"
        )

        assert updated.password == old_hash
        user_repository.check_password(updated, sample_user_data["password"])

    @pytest.mark.parametrize("field, value", [("email", "new@x.com"), ("id", 5), ("created_at", None)])
    async def test_immutable_fields_rejected(self, user_repository, created_user, field, value):
        with pytest.raises(InvalidFieldError) as exc_info:
            await user_repository.update_user(created_user.id, **{field: value})

        assert exc_info.value.fields == [field]

    async def test_invalid_new_password_is_unprocessable(self, user_repository, created_user, sample_user_data):
        with pytest.raises(UnprocessableError):
            await user_repository.update_user(
                created_user.id, password="short", old_password=sample_user_data["password"]
            )

    async def test_update_missing_user_is_not_found(self, user_repository):
        with pytest.raises(NotFoundError):
            await user_repository.update_user(999, first_name="Ghost")


@pytest.mark.asyncio
class TestUserRepositoryDelete:

    async def test_delete_user(self, user_repository, created_user):
        assert await user_repository.delete_user(created_user.id) is True

        with pytest.raises(NotFoundError):
            await user_repository.get_by_id(created_user.id)

    async def test_delete_referenced_user_is_unprocessable(self, user_repository, conversation_repository,
                                                          created_user):
        """Scenario: a user still referenced by a conversation is not deleted."""
        await conversation_repository.create(title="hello", user_id=created_user.id)

        with pytest.raises(UnprocessableError) as exc_info:
            await user_repository.delete_user(created_user.id)

        assert exc_info.value.kind is ErrorKind.UNPROCESSABLE
        assert (await user_repository.get_by_id(created_user.id)).id == created_user.id
        assert [c.title for c in await conversation_repository.list_for_user(created_user.id)] == ["hello"]
