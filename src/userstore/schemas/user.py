"""
Validation schemas for user input and output.

UserCreate / UserUpdate validate what callers hand to UserRepository (after
sanitizing). UserRead is the external representation; it has no password field.
"""
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError

from userstore.exceptions import UnprocessableError

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 99


class UserCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)
    description: str = ""
    role: int = 0
    status: int = 0
    language: str | None = Field(default=None, max_length=10)
    last_login: datetime | None = None


class UserUpdate(BaseModel):
    """
    Partial update: only the fields the caller set are written (see model_fields_set).
    email and id are not part of it; changing them is rejected as an unknown field.
    """
    model_config = ConfigDict(extra="forbid")

    password: str | None = Field(default=None, min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)
    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)
    description: str | None = None
    role: int | None = None
    status: int | None = None
    language: str | None = Field(default=None, max_length=10)
    last_login: datetime | None = None


class UserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    first_name: str
    last_name: str
    description: str
    role: int
    status: int
    language: str | None = None
    last_login: datetime | None = None
    created_at: datetime
    updated_at: datetime


def validate_or_raise(schema: type[BaseModel], data: dict) -> BaseModel:
    """
    Validate `data` against `schema`; pydantic errors become UnprocessableError
    naming the offending fields. Input values are not echoed into the message.
    """
    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        fields = sorted({str(err["loc"][0]) for err in exc.errors() if err.get("loc")})
        reasons = "; ".join(f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in exc.errors())
        raise UnprocessableError(f"Invalid {schema.__name__}: {reasons}", fields=fields) from exc
