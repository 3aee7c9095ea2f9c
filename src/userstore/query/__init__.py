"""
Typed filter / sort / pagination layer.

    from userstore.query import ListParams, Pagination, Sort, StringFilter

Dependency order: columns -> filters -> builder.
"""

from .columns import ColumnMapping, get_column_mapping, check_filter_shape
from .filters import (
    Operator,
    Predicate,
    Combinator,
    IntFilter,
    StringFilter,
    TimeFilter,
    EntityFilter,
)
from .builder import (
    DEFAULT_LIMIT,
    MAX_LIMIT,
    SortDirection,
    Pagination,
    Sort,
    ListParams,
    BuiltQuery,
    build_select,
    build_count,
    compile_sql,
)

__all__ = [
    "ColumnMapping",
    "get_column_mapping",
    "check_filter_shape",
    "Operator",
    "Predicate",
    "Combinator",
    "IntFilter",
    "StringFilter",
    "TimeFilter",
    "EntityFilter",
    "DEFAULT_LIMIT",
    "MAX_LIMIT",
    "SortDirection",
    "Pagination",
    "Sort",
    "ListParams",
    "BuiltQuery",
    "build_select",
    "build_count",
    "compile_sql",
]
