"""
Base repository providing the generic entity operations.

Model-specific repositories inherit from `BaseRepository` and add their own
validation pipeline on top (see UserRepository). Nothing here is abstract:
every method works for any mapped model with an integer `id` primary key.

Transaction rules:
  - every mutation is one INSERT/UPDATE/DELETE statement, run inside a SAVEPOINT
    (`session.begin_nested()`); a failing statement only discards itself and the
    caller's session stays usable
  - the repository never commits; the caller owns the transaction
  - errors are classified exactly once, by `db_error_handler`, into the
    RepositoryError taxonomy

Logging: structured events (`repo.<operation>.<outcome>`) with model name, ids,
keys and durations. Values are never logged, so secrets cannot leak through here.
"""
import time
import logging
from typing import TypeVar, Generic, Type, Any

from sqlalchemy import select, insert, update, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from userstore.exceptions import NotFoundError, InvalidFieldError
from userstore.exceptions.mapper import db_error_handler
from userstore.models import Base
from userstore.query import (
    DEFAULT_LIMIT,
    MAX_LIMIT,
    EntityFilter,
    ListParams,
    get_column_mapping,
    build_select,
    build_count,
)
from userstore.storage.cache import Cache
from userstore.validators.model_validators import find_unknown_model_kwargs, find_readonly_kwargs

# Type variable for the model class
ModelType = TypeVar("ModelType", bound=Base)

logger = logging.getLogger(__name__)


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class BaseRepository(Generic[ModelType]):
    """
    Generic repository for one model.

    Args:
        model: the model class (User, not User())
        db: the caller's AsyncSession
        cache: optional cache handle, kept for model repositories that want it
        log: optional logger; defaults to this module's logger
        default_limit / max_limit: page size used when a list request does not
            set one, and the upper clamp
    """

    def __init__(
        self,
        model: Type[ModelType],
        db: AsyncSession,
        *,
        cache: Cache | None = None,
        log: logging.Logger | None = None,
        default_limit: int = DEFAULT_LIMIT,
        max_limit: int = MAX_LIMIT,
    ):
        self.model = model
        self.db = db
        self.cache = cache
        self.log = log or logger
        self.default_limit = default_limit
        self.max_limit = max_limit
        # built once per model class and cached; fails fast for unmapped models
        self.columns = get_column_mapping(model)

    @staticmethod
    def limits_from_settings(settings) -> dict[str, int]:
        return {
            "default_limit": settings.PAGINATION_DEFAULT_LIMIT,
            "max_limit": settings.PAGINATION_MAX_LIMIT,
        }

    @classmethod
    def from_settings(cls, model: Type[ModelType], db: AsyncSession, settings, **kwargs) -> "BaseRepository":
        """Repository whose page size and clamp come from PAGINATION_DEFAULT_LIMIT / PAGINATION_MAX_LIMIT."""
        return cls(model, db, **cls.limits_from_settings(settings), **kwargs)

    @property
    def model_name(self) -> str:
        return self.model.__name__

    def _reject_unknown(self, operation: str, values: dict[str, Any]) -> None:
        unknown = find_unknown_model_kwargs(self.model, values)
        if unknown:
            self.log.info(
                f"repo.{operation}.invalid_fields",
                extra={"model": self.model_name, "operation": operation, "invalid_fields": sorted(unknown)},
            )
            raise InvalidFieldError(
                f"Unknown field(s) for {self.model_name}: {', '.join(sorted(unknown))}",
                fields=sorted(unknown),
            )

    # =================================================================================================================
    # Create
    # =================================================================================================================

    async def create(self, **kwargs) -> ModelType:
        """
        INSERT ... RETURNING the full row, so server-assigned values (id,
        timestamps, column defaults) are populated on the returned entity.

        Raises:
            InvalidFieldError: a key is not a column attribute of the model
            ConflictError: unique constraint violated
            UnprocessableError: NOT NULL / FK / CHECK violated
            InternalError: anything else
        """
        self.log.debug(
            "repo.create.start",
            extra={"model": self.model_name, "operation": "create", "provided_keys": sorted(kwargs)},
        )
        self._reject_unknown("create", kwargs)

        start = time.perf_counter()
        async with db_error_handler(self.model_name, "create", log=self.log):
            async with self.db.begin_nested():
                stmt = insert(self.model).values(**kwargs).returning(self.model)
                result = await self.db.execute(stmt)
                entity = result.scalar_one()

        self.log.info(
            "repo.create.success",
            extra={
                "model": self.model_name,
                "operation": "create",
                "id": entity.id,
                "duration_ms": _elapsed_ms(start),
            },
        )
        return entity

    # =================================================================================================================
    # Read
    # =================================================================================================================

    async def get_by_id(self, entity_id: int) -> ModelType:
        """Fetch one row by primary key. Zero rows is a NotFoundError, never None."""
        async with db_error_handler(self.model_name, "get", log=self.log):
            stmt = select(self.model).where(self.model.id == entity_id).limit(1)
            result = await self.db.execute(stmt)
            entity = result.scalar_one_or_none()

        if entity is None:
            self.log.info("repo.get.not_found", extra={"model": self.model_name, "id": entity_id})
            raise NotFoundError(f"{self.model_name} with ID {entity_id} not found", fields=["id"])

        self.log.debug("repo.get.success", extra={"model": self.model_name, "id": entity_id})
        return entity

    async def get_all(self, params: ListParams | None = None) -> list[ModelType]:
        """
        List rows matching `params.filter`, sorted and paginated.

        No match is an empty list, not an error. Unknown filter/sort fields,
        a negative offset or a bad direction are rejected before anything runs.
        """
        built = build_select(
            self.model,
            params,
            mapping=self.columns,
            default_limit=self.default_limit,
            max_limit=self.max_limit,
        )

        start = time.perf_counter()
        async with db_error_handler(self.model_name, "list", log=self.log):
            result = await self.db.execute(built.statement)
            entities = list(result.scalars().all())

        self.log.debug(
            "repo.list.success",
            extra={
                "model": self.model_name,
                "operation": "list",
                "predicate_count": len(built.predicates),
                "sort_column": built.sort_column,
                "limit": built.limit,
                "offset": built.offset,
                "row_count": len(entities),
                "duration_ms": _elapsed_ms(start),
            },
        )
        return entities

    async def count(self, entity_filter: EntityFilter | None = None) -> int:
        """Number of rows matching `entity_filter` (all rows when None)."""
        stmt = build_count(self.model, entity_filter, mapping=self.columns)
        async with db_error_handler(self.model_name, "count", log=self.log):
            result = await self.db.execute(stmt)
            total = result.scalar_one()

        self.log.debug("repo.count.success", extra={"model": self.model_name, "count": total})
        return total

    async def exists(self, entity_id: int) -> bool:
        async with db_error_handler(self.model_name, "exists", log=self.log):
            stmt = select(func.count()).select_from(self.model).where(self.model.id == entity_id)
            result = await self.db.execute(stmt)
            return result.scalar_one() > 0

    # =================================================================================================================
    # Update
    # =================================================================================================================

    async def update(self, entity_id: int, **kwargs) -> ModelType:
        """
        UPDATE ... WHERE id = :id RETURNING the full row.

        Only the given keys are written; None is written as NULL (filtering out
        "empty" values is the model repository's decision, not this one's).
        An empty update returns the current row unchanged.

        Raises:
            InvalidFieldError: unknown key, or a key that cannot be updated (id, timestamps)
            NotFoundError: no row with this id
            ConflictError / UnprocessableError / InternalError: as for create()
        """
        self.log.debug(
            "repo.update.start",
            extra={"model": self.model_name, "operation": "update", "id": entity_id, "provided_keys": sorted(kwargs)},
        )
        self._reject_unknown("update", kwargs)

        readonly = find_readonly_kwargs(self.model, kwargs)
        if readonly:
            raise InvalidFieldError(
                f"Field(s) of {self.model_name} cannot be updated: {', '.join(sorted(readonly))}",
                fields=sorted(readonly),
            )

        if not kwargs:
            self.log.info("repo.update.noop", extra={"model": self.model_name, "id": entity_id})
            return await self.get_by_id(entity_id)

        start = time.perf_counter()
        async with db_error_handler(self.model_name, "update", log=self.log):
            async with self.db.begin_nested():
                stmt = (
                    update(self.model)
                    .where(self.model.id == entity_id)
                    .values(**kwargs)
                    .returning(self.model)
                    # refresh an already loaded instance with the returned row
                    .execution_options(populate_existing=True)
                )
                result = await self.db.execute(stmt)
                entity = result.scalar_one_or_none()

        if entity is None:
            self.log.info("repo.update.not_found", extra={"model": self.model_name, "id": entity_id})
            raise NotFoundError(f"{self.model_name} with ID {entity_id} not found", fields=["id"])

        self.log.info(
            "repo.update.success",
            extra={
                "model": self.model_name,
                "operation": "update",
                "id": entity_id,
                "updated_keys": sorted(kwargs),
                "duration_ms": _elapsed_ms(start),
            },
        )
        return entity

    # =================================================================================================================
    # Delete
    # =================================================================================================================

    async def delete(self, entity_id: int) -> bool:
        """
        Physically delete the row.

        Returns:
            True if a row was deleted, False if there was none (deleting is idempotent)

        Raises:
            UnprocessableError: another row still references this one (foreign key)
            InternalError: anything else
        """
        start = time.perf_counter()
        async with db_error_handler(self.model_name, "delete", log=self.log):
            async with self.db.begin_nested():
                stmt = delete(self.model).where(self.model.id == entity_id)
                result = await self.db.execute(stmt)

        deleted = result.rowcount > 0
        self.log.info(
            "repo.delete.success" if deleted else "repo.delete.not_found",
            extra={"model": self.model_name, "id": entity_id, "duration_ms": _elapsed_ms(start)},
        )
        return deleted
