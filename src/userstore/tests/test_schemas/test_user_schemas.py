import pytest

from userstore.exceptions import UnprocessableError
from userstore.schemas.user import UserCreate, UserRead, UserUpdate, validate_or_raise


class TestUserSchemas:

    def test_create_defaults(self):
        user = validate_or_raise(UserCreate, {"email": "a@x.com", "password": "password-1"})

        assert user.first_name == ""
        assert user.role == 0
        assert user.language is None

    def test_update_tracks_only_set_fields(self):
        update = validate_or_raise(UserUpdate, {"first_name": "Ada"})

        assert update.model_dump(exclude_unset=True) == {"first_name": "Ada"}

    def test_update_rejects_email(self):
        with pytest.raises(UnprocessableError) as exc_info:
            validate_or_raise(UserUpdate, {"email": "b@x.com"})

        assert exc_info.value.fields == ["email"]

    def test_errors_name_every_bad_field(self):
        with pytest.raises(UnprocessableError) as exc_info:
            validate_or_raise(UserCreate, {"email": "nope", "password": "short", "language": "x" * 11})

        assert exc_info.value.fields == ["email", "language", "password"]

    @pytest.mark.asyncio
    async def test_read_never_exposes_password(self, created_user):
        """
        Behavior:
          - UserRead built from the ORM row has no password key at all.
        Importance:
          - This is the shape handed to anything outside the repository.
        """
        dumped = UserRead.model_validate(created_user).model_dump()

        assert "password" not in dumped
        assert dumped["email"] == created_user.email
        assert dumped["first_name"] == "Ada"
