"""
Column mapping: logical field name -> physical column name, per ORM model.

Field names arriving from callers (filter attributes, sort requests) are untrusted.
They only ever reach a statement after resolving through this table; anything that
does not resolve is rejected with InvalidFieldError before a query is built.
"""
import logging
from dataclasses import dataclass, fields as dataclass_fields, is_dataclass
from functools import lru_cache
from types import MappingProxyType
from typing import Mapping

from sqlalchemy import Column, Table
from sqlalchemy import inspect as sa_inspect

from userstore.exceptions import InvalidFieldError, InternalError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ColumnMapping:
    """Read-only field -> column table for one model."""

    model_name: str
    table: Table
    fields: Mapping[str, str]
    # mapped, writable, but never a filter or sort key (e.g. password hashes)
    secret_fields: frozenset[str] = frozenset()

    def __contains__(self, field: object) -> bool:
        return field in self.fields

    def resolve(self, field: str) -> str:
        """Return the physical column name for `field` or raise InvalidFieldError."""
        try:
            return self.fields[field]
        except (KeyError, TypeError):
            raise InvalidFieldError(
                f"{self.model_name} has no field '{field}'", fields=[str(field)]
            ) from None

    def resolve_sort(self, field: str) -> str:
        """Like resolve(), but secret fields are refused too."""
        column = self.resolve(field)
        if field in self.secret_fields:
            raise InvalidFieldError(f"{self.model_name} cannot be sorted by '{field}'", fields=[field])
        return column

    def column(self, field: str) -> Column:
        return self.table.c[self.resolve(field)]


@lru_cache(maxsize=None)
def get_column_mapping(model: type) -> ColumnMapping:
    """
    Derive the mapping from the model's SQLAlchemy declarations.

    Computed once per model class and cached; the result is immutable, so it is
    safe to share across concurrent requests.
    """
    mapper = sa_inspect(model, raiseerr=False)
    model_name = getattr(model, "__name__", repr(model))
    table = getattr(mapper, "local_table", None)

    if mapper is None or not isinstance(table, Table):
        raise InternalError(f"Cannot derive a column mapping for {model_name}: not a mapped class")

    mapping = {}
    for attr in mapper.column_attrs:
        # composite / expression-based attributes have no single physical column
        if len(attr.columns) != 1 or not isinstance(attr.columns[0], Column):
            continue
        mapping[attr.key] = attr.columns[0].name

    if not mapping:
        raise InternalError(f"Cannot derive a column mapping for {model_name}: no mapped columns")

    secret_fields = frozenset(getattr(model, "__secret_fields__", ()))
    missing = secret_fields - mapping.keys()
    if missing:
        raise InternalError(f"{model_name}.__secret_fields__ names unmapped field(s): {', '.join(sorted(missing))}")

    logger.debug("columns.mapping_built", extra={"model": model_name, "field_count": len(mapping)})
    return ColumnMapping(
        model_name=model_name,
        table=table,
        fields=MappingProxyType(mapping),
        secret_fields=secret_fields,
    )


def check_filter_shape(filter_cls: type, mapping: ColumnMapping) -> None:
    """
    Verify every field declared on a filter dataclass resolves through `mapping`.

    Called at import time by repositories so a misnamed filter field fails at
    startup instead of on the first request that sets it.
    """
    if not is_dataclass(filter_cls):
        raise InternalError(f"{filter_cls!r} is not a filter dataclass")

    unknown = [
        f.name for f in dataclass_fields(filter_cls)
        if f.name not in mapping or f.name in mapping.secret_fields
    ]
    if unknown:
        raise InternalError(
            f"{filter_cls.__name__} declares field(s) not mapped (or secret) on {mapping.model_name}: "
            f"{', '.join(unknown)}",
            fields=unknown,
        )
