"""
Typed, optional per-field filter combinators.

A combinator groups the operator slots for one field. Every slot is optional:
an unset slot adds nothing, an unset combinator adds nothing. Set slots are
AND-ed together, and so are set fields of an EntityFilter.

    UserFilter(
        email=StringFilter(contains="@example.com"),
        role=IntFilter(one_of=[1, 2]),
        created_at=TimeFilter(after=datetime(2024, 1, 1)),
    )

Combinators never produce SQL themselves. They emit Predicate triples
(column, operator, value) that the query builder turns into bound clauses.

Note the difference between an unset `one_of` (no constraint) and an empty one
(`one_of=[]`): the latter matches no rows at all.
"""
from dataclasses import dataclass, fields
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Sequence

from userstore.exceptions import UnprocessableError
from .columns import ColumnMapping


class Operator(str, Enum):
    EQ = "eq"
    IN = "in"
    GT = "gt"
    LT = "lt"
    CONTAINS = "contains"
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"


@dataclass(frozen=True)
class Predicate:
    """One bound condition: `<column> <operator> <value>`."""
    column: str
    operator: Operator
    value: Any = None


class Combinator:
    """
    Base for the per-type combinators.

    Subclasses declare `_slots`: (attribute, operator) pairs in emission order,
    and `_value_types`: the accepted Python types for slot values.
    """

    _slots: ClassVar[tuple[tuple[str, Operator], ...]] = ()
    _value_types: ClassVar[tuple[type, ...]] = ()

    def _check_value(self, slot: str, value: Any) -> None:
        # bool is an int subclass; a True/False in an integer slot is a caller bug
        if isinstance(value, bool) or not isinstance(value, self._value_types):
            raise UnprocessableError(
                f"{type(self).__name__}.{slot} expects {self._value_types[0].__name__}, "
                f"got {type(value).__name__}",
                fields=[slot],
            )

    def __post_init__(self) -> None:
        for slot, operator in self._slots:
            value = getattr(self, slot)
            if value is None:
                continue
            if operator is Operator.IN:
                if isinstance(value, (str, bytes)) or not isinstance(value, (Sequence, set, frozenset)):
                    raise UnprocessableError(f"{type(self).__name__}.{slot} expects a collection",
                                             fields=[slot])
                for item in value:
                    self._check_value(slot, item)
            elif operator is Operator.IS_NULL:
                if not isinstance(value, bool):
                    raise UnprocessableError(f"{type(self).__name__}.{slot} expects a bool", fields=[slot])
            else:
                self._check_value(slot, value)

    def is_empty(self) -> bool:
        return all(getattr(self, slot) is None for slot, _ in self._slots)

    def predicates(self, column: str) -> list[Predicate]:
        """One predicate per set slot, in slot declaration order."""
        out = []
        for slot, operator in self._slots:
            value = getattr(self, slot)
            if value is None:
                continue
            if operator is Operator.IN:
                # keep insertion order for lists, sort sets so the statement is deterministic
                items = sorted(value) if isinstance(value, (set, frozenset)) else list(value)
                out.append(Predicate(column, Operator.IN, tuple(items)))
            elif operator is Operator.IS_NULL:
                out.append(Predicate(column, Operator.IS_NULL if value else Operator.IS_NOT_NULL))
            else:
                out.append(Predicate(column, operator, value))
        return out


@dataclass
class IntFilter(Combinator):
    eq: int | None = None
    one_of: Sequence[int] | None = None
    gt: int | None = None
    lt: int | None = None

    _slots = (("eq", Operator.EQ), ("one_of", Operator.IN), ("gt", Operator.GT), ("lt", Operator.LT))
    _value_types = (int,)


@dataclass
class StringFilter(Combinator):
    eq: str | None = None
    one_of: Sequence[str] | None = None
    # substring match; LIKE wildcards in the value are escaped
    contains: str | None = None
    # True -> IS NULL, False -> IS NOT NULL
    is_null: bool | None = None

    _slots = (("eq", Operator.EQ), ("one_of", Operator.IN), ("contains", Operator.CONTAINS),
              ("is_null", Operator.IS_NULL))
    _value_types = (str,)


@dataclass
class TimeFilter(Combinator):
    eq: datetime | None = None
    before: datetime | None = None
    after: datetime | None = None

    _slots = (("eq", Operator.EQ), ("before", Operator.LT), ("after", Operator.GT))
    _value_types = (datetime,)


@dataclass
class EntityFilter:
    """
    Base for per-entity filter sets: one optional combinator per filterable field.

    Field names must be logical field names of the entity's model; repositories
    check this at import time with query.columns.check_filter_shape().
    """

    def predicates(self, mapping: ColumnMapping) -> list[Predicate]:
        out: list[Predicate] = []
        for f in fields(self):
            combinator = getattr(self, f.name)
            if combinator is None:
                continue
            if not isinstance(combinator, Combinator):
                raise UnprocessableError(
                    f"Filter field '{f.name}' must be a filter combinator, got {type(combinator).__name__}",
                    fields=[f.name],
                )
            out.extend(combinator.predicates(mapping.resolve(f.name)))
        return out
