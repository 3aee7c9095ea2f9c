
# userstore/
# │
# ├── exceptions/
# │   ├── __init__.py
# │   ├── base.py                    # Error taxonomy (ErrorKind + RepositoryError subclasses)
# │   ├── integrity_classifier.py    # SQL-level / DB-specific violation labels
# │   └── mapper.py                  # Map DB-specific errors to the taxonomy

from .base import (
    ErrorKind,
    RepositoryError,
    NotFoundError,
    ConflictError,
    UnprocessableError,
    InvalidFieldError,
    UnauthorizedError,
    InternalError,
)
from .mapper import db_error_handler, map_integrity_error

__all__ = [
    "ErrorKind",
    "RepositoryError",
    "NotFoundError",
    "ConflictError",
    "UnprocessableError",
    "InvalidFieldError",
    "UnauthorizedError",
    "InternalError",
    "db_error_handler",
    "map_integrity_error",
]
