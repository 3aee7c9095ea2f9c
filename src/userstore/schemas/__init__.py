from .user import (
    PASSWORD_MIN_LENGTH,
    PASSWORD_MAX_LENGTH,
    UserCreate,
    UserUpdate,
    UserRead,
    validate_or_raise,
)

__all__ = [
    "PASSWORD_MIN_LENGTH",
    "PASSWORD_MAX_LENGTH",
    "UserCreate",
    "UserUpdate",
    "UserRead",
    "validate_or_raise",
]
