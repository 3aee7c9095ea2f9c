"""
Error taxonomy for the repository layer.

Every error that crosses the repository boundary is a `RepositoryError` carrying one
`ErrorKind`. Callers (HTTP handlers, services, tests) switch on `kind`, never on the
storage driver's own exception types.
"""

from enum import Enum
from typing import Iterable


class ErrorKind(str, Enum):
    """Closed set of error classifications exposed to callers."""
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    UNPROCESSABLE = "unprocessable"
    UNAUTHORIZED = "unauthorized"
    INTERNAL = "internal"


# canonical repository-level exception

class RepositoryError(Exception):
    """
    Base exception for repository errors.

    - message: human-friendly message (safe to show to clients)
    - kind: one of ErrorKind; subclasses fix it, the base class defaults to INTERNAL
    - fields: optional list of field names related to the error (e.g., ['email'])
    - constraint: optional DB constraint name (for logs only)
    - cause: the underlying exception, if any. Falls back to `__cause__` so that
      `raise XError(...) from exc` is enough.
    """

    default_kind: ErrorKind = ErrorKind.INTERNAL
    default_message: str = "Repository error"

    def __init__(self, message: str | None = None, *, kind: ErrorKind | None = None,
                 fields: Iterable[str] | None = None, constraint: str | None = None,
                 cause: BaseException | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)
        self.kind = kind or self.default_kind
        self.fields = list(fields) if fields else None
        self.constraint = constraint
        self._cause = cause

    @property
    def cause(self) -> BaseException | None:
        return self._cause if self._cause is not None else self.__cause__

    def __str__(self) -> str:
        base = self.message
        parts = []
        if self.fields:
            parts.append(f"fields: {', '.join(self.fields)}")
        if self.constraint:
            parts.append(f"constraint: {self.constraint}")
        parts.append(f"kind: {self.kind.value}")
        return f"{base} ({'; '.join(parts)})"


class NotFoundError(RepositoryError):
    default_kind = ErrorKind.NOT_FOUND
    default_message = "Not found"


class ConflictError(RepositoryError):
    """Natural-key collision, from the pre-insert probe or a unique constraint."""
    default_kind = ErrorKind.CONFLICT
    default_message = "Already exists"


class UnprocessableError(RepositoryError):
    """Input failed sanitation/validation, or the row is still referenced."""
    default_kind = ErrorKind.UNPROCESSABLE
    default_message = "Unprocessable input"


class InvalidFieldError(UnprocessableError):
    """Raised when the caller names a field (kwarg, filter, sort) the model does not map."""
    default_message = "Unknown field"


class UnauthorizedError(RepositoryError):
    """A credential did not match its stored hash."""
    default_kind = ErrorKind.UNAUTHORIZED
    default_message = "Credentials do not match"


class InternalError(RepositoryError):
    default_kind = ErrorKind.INTERNAL
    default_message = "Internal error"


__all__ = [
    "ErrorKind",
    "RepositoryError",
    "NotFoundError",
    "ConflictError",
    "UnprocessableError",
    "InvalidFieldError",
    "UnauthorizedError",
    "InternalError",
]
