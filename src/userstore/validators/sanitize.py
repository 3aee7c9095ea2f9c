"""
Input normalization applied before validation.

Sanitize only strips incidental whitespace (and lowercases the fields listed as
case-insensitive). It never rejects input; rejecting is the schemas' job.
Applying it twice gives the same result as applying it once.
"""
from typing import Any, Iterable, Mapping

# secrets are taken byte-for-byte; leading/trailing spaces can be part of a password
SECRET_FIELDS = frozenset({"password", "old_password", "secret", "token"})


def to_uppercase(value: str | None) -> str | None:
    """Uppercase `value`, passing None through."""
    if value is None:
        return None
    return value.strip().upper()


def to_lowercase(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip().lower()


def sanitize_strings(
    values: Mapping[str, Any],
    *,
    lowercase: Iterable[str] = (),
    skip: Iterable[str] = SECRET_FIELDS,
) -> dict[str, Any]:
    """
    Return a copy of `values` with every str value trimmed.

    Keys in `lowercase` are lowercased as well; keys in `skip` are copied
    untouched. Non-string values are copied untouched.
    """
    lowercase, skip = set(lowercase), set(skip)
    cleaned: dict[str, Any] = {}
    for key, value in values.items():
        if key in skip or not isinstance(value, str):
            cleaned[key] = value
        elif key in lowercase:
            cleaned[key] = to_lowercase(value)
        else:
            cleaned[key] = value.strip()
    return cleaned
