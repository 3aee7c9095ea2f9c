"""
Compose filter predicates, a one-column sort and limit/offset pagination into a
parameterized SELECT.

Building is pure: nothing here touches a session. Repositories execute
`BuiltQuery.statement`; tests and debugging helpers can render it with
`compile_sql()` to see the exact text and positional parameters.

Algorithm:
  1. SELECT <model> FROM <table>
  2. one bound clause per set filter slot, AND-ed in field-declaration order
  3. ORDER BY <column> ASC|DESC if a sort is requested (column resolved through
     the column mapping first; unknown or secret names are rejected)
  4. LIMIT/OFFSET (limit defaulted and clamped, negative offset rejected)
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from sqlalchemy import Select, select, func, and_, false
from sqlalchemy.dialects import postgresql
from sqlalchemy.sql.elements import ColumnElement

from userstore.exceptions import UnprocessableError, InternalError
from .columns import ColumnMapping, get_column_mapping
from .filters import EntityFilter, Operator, Predicate

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50
MAX_LIMIT = 100


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"

    @classmethod
    def parse(cls, value: "SortDirection | str") -> "SortDirection":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnprocessableError(f"Invalid sort direction '{value}'", fields=["direction"]) from None


@dataclass
class Pagination:
    """Limit/offset pagination. `limit=None` (or <= 0) means the default page size."""
    limit: int | None = None
    offset: int = 0

    def resolve(self, default_limit: int = DEFAULT_LIMIT, max_limit: int = MAX_LIMIT) -> tuple[int, int]:
        # bool is an int subclass but never a meaningful page bound
        if self.limit is not None and (not isinstance(self.limit, int) or isinstance(self.limit, bool)):
            raise UnprocessableError(f"Limit must be an integer, got {type(self.limit).__name__}",
                                     fields=["limit"])
        if not isinstance(self.offset, int) or isinstance(self.offset, bool):
            raise UnprocessableError(f"Offset must be an integer, got {type(self.offset).__name__}",
                                     fields=["offset"])
        if self.offset < 0:
            raise UnprocessableError(f"Offset must be non-negative, got {self.offset}", fields=["offset"])
        limit = self.limit if self.limit and self.limit > 0 else default_limit
        return min(limit, max_limit), self.offset


@dataclass
class Sort:
    """Order by one logical field. `field=None` keeps the storage engine's natural order."""
    field: str | None = None
    direction: SortDirection | str = SortDirection.ASC


@dataclass
class ListParams:
    pagination: Pagination = field(default_factory=Pagination)
    sort: Sort = field(default_factory=Sort)
    filter: EntityFilter | None = None


@dataclass(frozen=True)
class BuiltQuery:
    """The statement plus the pieces it was built from (handy for logging and tests)."""
    statement: Select
    predicates: tuple[Predicate, ...]
    sort_column: str | None
    direction: SortDirection
    limit: int
    offset: int


def predicate_to_clause(predicate: Predicate, mapping: ColumnMapping) -> ColumnElement[bool]:
    """Turn one Predicate into a SQLAlchemy clause; every value becomes a bound parameter."""
    column = mapping.table.c[predicate.column]
    op, value = predicate.operator, predicate.value

    if op is Operator.EQ:
        return column == value
    if op is Operator.IN:
        # empty collection -> match nothing; never "no constraint"
        return column.in_(list(value)) if value else false()
    if op is Operator.GT:
        return column > value
    if op is Operator.LT:
        return column < value
    if op is Operator.CONTAINS:
        return column.contains(value, autoescape=True)
    if op is Operator.IS_NULL:
        return column.is_(None)
    if op is Operator.IS_NOT_NULL:
        return column.is_not(None)

    raise InternalError(f"Unsupported filter operator {op!r}")


def where_clause(entity_filter: EntityFilter | None,
                 mapping: ColumnMapping) -> tuple[ColumnElement[bool] | None, tuple[Predicate, ...]]:
    if entity_filter is None:
        return None, ()
    predicates = tuple(entity_filter.predicates(mapping))
    if not predicates:
        return None, ()
    return and_(*(predicate_to_clause(p, mapping) for p in predicates)), predicates


def build_select(
    model: type,
    params: ListParams | None = None,
    *,
    mapping: ColumnMapping | None = None,
    default_limit: int = DEFAULT_LIMIT,
    max_limit: int = MAX_LIMIT,
) -> BuiltQuery:
    """
    Build the list statement for `model`.

    Raises:
        InvalidFieldError: filter or sort names a field the model does not map
        UnprocessableError: bad pagination / direction / filter values
        InternalError: the model cannot be introspected
    """
    params = params or ListParams()
    mapping = mapping or get_column_mapping(model)

    statement = select(model)

    clause, predicates = where_clause(params.filter, mapping)
    if clause is not None:
        statement = statement.where(clause)

    sort_column = None
    direction = SortDirection.parse(params.sort.direction)
    if params.sort.field:
        sort_column = mapping.resolve_sort(params.sort.field)
        column = mapping.table.c[sort_column]
        statement = statement.order_by(column.desc() if direction is SortDirection.DESC else column.asc())

    limit, offset = params.pagination.resolve(default_limit, max_limit)
    statement = statement.limit(limit).offset(offset)

    logger.debug(
        "query.select_built",
        extra={
            "model": mapping.model_name,
            "predicate_count": len(predicates),
            "sort_column": sort_column,
            "direction": direction.value,
            "limit": limit,
            "offset": offset,
        },
    )
    return BuiltQuery(statement, predicates, sort_column, direction, limit, offset)


def build_count(model: type, entity_filter: EntityFilter | None = None, *,
                mapping: ColumnMapping | None = None) -> Select:
    """SELECT count(*) with the same predicates as build_select()."""
    mapping = mapping or get_column_mapping(model)
    statement = select(func.count()).select_from(mapping.table)
    clause, _ = where_clause(entity_filter, mapping)
    if clause is not None:
        statement = statement.where(clause)
    return statement


def compile_sql(statement: Select, dialect=None) -> tuple[str, list[Any]]:
    """
    Render `statement` as text with positional placeholders plus the ordered
    parameter list. Defaults to Postgres with `$n` placeholders.
    """
    dialect = dialect or postgresql.dialect(paramstyle="numeric_dollar")
    compiled = statement.compile(dialect=dialect, compile_kwargs={"render_postcompile": True})
    params = compiled.params
    if compiled.positiontup:
        return str(compiled), [params[name] for name in compiled.positiontup]
    return str(compiled), list(params.values())
