"""
Classify SQLAlchemy IntegrityErrors into a small set of constraint violations.

Two levels of error handling live in this package:

1. `IntegrityViolation` (this module): a technical label for *what* failed in the
   database (unique index, foreign key, NOT NULL, CHECK). Used internally only.
2. `RepositoryError` subclasses (base.py): the public taxonomy raised from
   repositories. mapper.py turns (1) into (2).

| Violation (internal)     | → | Taxonomy (external)      |
| ------------------------ | - | ------------------------ |
| `UNIQUE`                 | → | `ConflictError`          |
| `FOREIGN_KEY`            | → | `UnprocessableError`     |
| `NOT_NULL`               | → | `UnprocessableError`     |
| `CHECK`                  | → | `UnprocessableError`     |
| `UNKNOWN`                | → | `InternalError`          |
"""
import logging
from enum import Enum

from sqlalchemy.exc import IntegrityError

logger = logging.getLogger(__name__)


class IntegrityViolation(str, Enum):
    UNIQUE = "unique"
    FOREIGN_KEY = "foreign_key"
    NOT_NULL = "not_null"
    CHECK = "check"
    UNKNOWN = "unknown"


# https://www.postgresql.org/docs/current/errcodes-appendix.html
class PostgresErrorCodes(str, Enum):
    UNIQUE_VIOLATION = "23505"
    NOT_NULL_VIOLATION = "23502"
    FOREIGN_KEY_VIOLATION = "23503"
    CHECK_VIOLATION = "23514"


PGCODE_VIOLATION_MAP = {
    PostgresErrorCodes.UNIQUE_VIOLATION.value: IntegrityViolation.UNIQUE,
    PostgresErrorCodes.NOT_NULL_VIOLATION.value: IntegrityViolation.NOT_NULL,
    PostgresErrorCodes.FOREIGN_KEY_VIOLATION.value: IntegrityViolation.FOREIGN_KEY,
    PostgresErrorCodes.CHECK_VIOLATION.value: IntegrityViolation.CHECK,
}

_MESSAGE_KEYWORDS = (
    (IntegrityViolation.UNIQUE, ("unique constraint", "unique failed", "unique violation", "duplicate")),
    (IntegrityViolation.NOT_NULL, ("not null constraint", "not null", "null value in column")),
    (IntegrityViolation.FOREIGN_KEY, ("foreign key constraint", "foreign key", "is not present in table",
                                      "is still referenced")),
    (IntegrityViolation.CHECK, ("check constraint", "check failed")),
)


def _sqlstate(orig) -> str | None:
    # psycopg2 and SQLAlchemy's asyncpg adapter expose `pgcode`, psycopg 3 exposes `sqlstate`
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def _constraint_name(orig) -> str | None:
    diag = getattr(orig, "diag", None)
    if diag is not None and getattr(diag, "constraint_name", None):
        return diag.constraint_name
    # asyncpg keeps the native exception as __cause__ of the adapted one
    native = getattr(orig, "__cause__", None)
    return getattr(native, "constraint_name", None)


def _classify_from_postgres_diag(orig) -> tuple[IntegrityViolation | None, str | None]:
    """Classify using the Postgres SQLSTATE when the driver provides one."""
    code = _sqlstate(orig)
    if not code:
        return None, None

    constraint_name = _constraint_name(orig)
    violation = PGCODE_VIOLATION_MAP.get(code)

    if violation is not None:
        logger.debug("Postgres integrity diagnostic",
                     extra={"pgcode": code, "constraint_name": constraint_name})
        return violation, constraint_name

    logger.warning("Unknown Postgres integrity error code encountered",
                   extra={"pgcode": code, "constraint_name": constraint_name})
    logger.debug("Postgres orig diagnostic (raw)", extra={"orig_repr": repr(orig)})
    return IntegrityViolation.UNKNOWN, constraint_name


def _classify_from_generic_message(msg: str) -> IntegrityViolation:
    """Fallback for SQLite, MySQL and drivers without SQLSTATE."""
    normalized = (msg or "").lower()

    for violation, keywords in _MESSAGE_KEYWORDS:
        if any(keyword in normalized for keyword in keywords):
            return violation

    logger.warning("Unknown integrity error message encountered",
                   extra={"message_snippet": normalized[:200]})
    logger.debug("Unknown integrity raw message", extra={"raw": msg})
    return IntegrityViolation.UNKNOWN


def classify_integrity_error(exc: IntegrityError) -> tuple[IntegrityViolation, str | None]:
    """
    Heuristically classify a SQLAlchemy IntegrityError.

    Returns:
        (violation, constraint_name if the driver reported one)
    """
    orig = exc.orig

    violation, constraint_name = _classify_from_postgres_diag(orig)
    if violation is not None:
        return violation, constraint_name

    return _classify_from_generic_message(str(orig) if orig is not None else str(exc)), None
