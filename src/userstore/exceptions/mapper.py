import re
import logging
from contextlib import asynccontextmanager

from sqlalchemy.exc import IntegrityError, NoResultFound

from .integrity_classifier import classify_integrity_error, IntegrityViolation
from .base import (
    RepositoryError,
    ConflictError,
    NotFoundError,
    UnprocessableError,
    InternalError,
)

logger = logging.getLogger(__name__)

# -----------------------
# Column extraction helpers
# -----------------------

def _extract_columns_postgres(msg: str) -> list[str] | None:
    """
    Columns from Postgres messages:
      - 'null value in column "email" of relation "users" violates not-null constraint'
      - 'DETAIL:  Key (email)=(a@b.com) already exists.'
    """
    m = re.search(r'null value in column "(?P<col>[^"]+)"', msg, flags=re.IGNORECASE)
    if m:
        return [m.group("col")]

    m = re.search(r'key \((?P<cols>[^)]+)\)=', msg, flags=re.IGNORECASE)
    if m:
        return [c.strip().strip('"') for c in m.group("cols").split(",")]

    return None


def _extract_columns_sqlite(msg: str) -> list[str] | None:
    # 'UNIQUE constraint failed: users.email' / 'NOT NULL constraint failed: users.email'
    m = re.search(r'(?:UNIQUE|NOT NULL) constraint failed: (?P<cols>[\w.,\s]+)', msg, flags=re.IGNORECASE)
    if m:
        return [c.split('.')[-1].strip() for c in re.split(r',\s*', m.group("cols").strip())]
    return None


def _extract_columns_mysql(msg: str) -> list[str] | None:
    # "Duplicate entry 'foo' for key 'users.email'"
    m = re.search(r"Duplicate entry .* for key '?(?P<key>[^']+)'?", msg, flags=re.IGNORECASE)
    if m:
        return [m.group("key").split('.')[-1]]
    return None


def extract_columns_from_integrity(exc: IntegrityError) -> list[str] | None:
    """Best-effort extraction of column names from the DB message (Postgres, SQLite, MySQL)."""
    msg = str(exc.orig) if exc.orig is not None else str(exc)
    if not msg:
        return None

    for extractor in (_extract_columns_postgres, _extract_columns_sqlite, _extract_columns_mysql):
        cols = extractor(msg)
        if cols:
            return cols
    return None


# -----------------------
# Mapper
# -----------------------

def map_integrity_error(exc: IntegrityError, model_name: str | None = None,
                        operation: str | None = None) -> RepositoryError:
    """
    Translate an IntegrityError into the repository taxonomy.

    The caller raises the returned error `from exc`; the original stays reachable
    through `.cause`.
    """
    violation, constraint_name = classify_integrity_error(exc)
    columns = extract_columns_from_integrity(exc)
    model_part = model_name or "Record"
    context = {"model": model_part, "operation": operation, "fields": columns, "constraint": constraint_name}

    if violation is IntegrityViolation.UNIQUE:
        logger.info("mapper.duplicate_detected", extra=context)
        if columns:
            message = f"{model_part} already exists for field(s): {', '.join(columns)}"
        else:
            message = f"{model_part} already exists"
        return ConflictError(message, fields=columns, constraint=constraint_name, cause=exc)

    if violation is IntegrityViolation.FOREIGN_KEY:
        logger.info("mapper.foreign_key_violation", extra=context)
        if operation == "delete":
            message = f"{model_part} is still referenced"
        else:
            message = f"{model_part} references an entity that does not exist"
        return UnprocessableError(message, fields=columns, constraint=constraint_name, cause=exc)

    if violation is IntegrityViolation.NOT_NULL:
        logger.info("mapper.not_null_violation", extra=context)
        if columns:
            message = f"Missing required field(s): {', '.join(columns)} for {model_part}"
        else:
            message = f"Missing required field for {model_part}"
        return UnprocessableError(message, fields=columns, constraint=constraint_name, cause=exc)

    if violation is IntegrityViolation.CHECK:
        logger.debug("mapper.check_constraint_failure",
                     extra={**context, "raw": str(exc.orig) if exc.orig is not None else str(exc)})
        return UnprocessableError(f"{model_part} business rule violated (check constraint)",
                                  constraint=constraint_name, cause=exc)

    logger.warning("mapper.unknown_integrity_error", extra=context)
    logger.debug("mapper.unknown_integrity_raw",
                 extra={"model": model_part, "raw": str(exc.orig) if exc.orig is not None else str(exc)})
    return InternalError(f"{model_part} database integrity error", constraint=constraint_name, cause=exc)


# -----------------------
# Async context manager to DRY error handling in repositories
# -----------------------
@asynccontextmanager
async def db_error_handler(model_name: str | None = None, operation: str | None = None,
                           log: logging.Logger | None = None):
    """
    Classify anything raised inside the block exactly once.

    Usage:
        async with db_error_handler(self.model.__name__, "create"):
            ... DB ops ...

    - RepositoryError: already classified, re-raised untouched
    - IntegrityError: mapped through map_integrity_error()
    - NoResultFound: NotFoundError
    - anything else: InternalError (logged with stack trace)

    Rollback is not done here: repositories run mutations inside a SAVEPOINT,
    so a failed statement only discards itself.
    """
    log = log or logger
    try:
        yield
    except RepositoryError:
        raise
    except IntegrityError as exc:
        raise map_integrity_error(exc, model_name, operation) from exc
    except NoResultFound as exc:
        raise NotFoundError(f"{model_name or 'Record'} not found", cause=exc) from exc
    except Exception as exc:
        log.exception("Unexpected DB error for %s", model_name,
                      extra={"model": model_name, "operation": operation})
        raise InternalError(f"Failed to {operation or 'operate on'} {model_name or 'database'}",
                            cause=exc) from exc
