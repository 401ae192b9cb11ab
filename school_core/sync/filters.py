# =============================================================================
# school_core/sync/filters.py
# Filter constraints and the client-side membership predicate
# =============================================================================
"""
A view is defined by a filter set: a list of constraints that are ANDed
together. Each constraint has an operator:

    eq, value is None    -> field must be null
    eq, value is a list  -> field must be an array containing every value
    eq, anything else    -> field must equal value
    in                   -> field must be one of the listed values

A field missing from the row fails every constraint, including a null one.

The same constraints are sent to PostgREST for the initial fetch
(``apply_to_query``: ``is_``, ``contains``, ``eq``, ``in_``) so the
server-side load and the client-side matcher agree on membership.
"""

from __future__ import annotations
import json
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Sequence, Tuple, Union

Entity = Dict[str, Any]

EQ = "eq"
IN = "in"
OPERATORS = (EQ, IN)

_MISSING = object()


@dataclass(frozen=True)
class FilterConstraint:
    """A single constraint on one column; see the module docstring for operators."""
    column: str
    value: Any
    op: str = EQ

    def __post_init__(self):
        if self.op not in OPERATORS:
            raise ValueError(f"Unknown filter operator '{self.op}'. Use one of {OPERATORS}")
        if self.op == IN and not isinstance(self.value, (list, tuple)):
            raise ValueError(f"'in' filter on {self.column} needs a list of values")
        object.__setattr__(self, "value", _freeze(self.value))

    @classmethod
    def one_of(cls, column: str, values: Iterable[Any]) -> FilterConstraint:
        """Field must equal one of ``values``."""
        return cls(column, tuple(values), IN)

    @property
    def is_null(self) -> bool:
        return self.op == EQ and self.value is None

    @property
    def is_contains(self) -> bool:
        return self.op == EQ and isinstance(self.value, tuple)

    @property
    def is_membership(self) -> bool:
        return self.op == IN

    def matches(self, entity: Mapping[str, Any]) -> bool:
        try:
            actual = entity.get(self.column, _MISSING)
        except AttributeError:
            return False
        if actual is _MISSING:
            return False

        if self.is_membership:
            return _contains(self.value, actual)

        if self.value is None:
            return actual is None

        if self.is_contains:
            if not isinstance(actual, (list, tuple)):
                return False
            return all(_contains(actual, wanted) for wanted in self.value)

        return _equal(actual, self.value)

    def to_dict(self) -> Dict[str, Any]:
        value = list(self.value) if isinstance(self.value, tuple) else self.value
        data = {"column": self.column, "value": value}
        if self.op != EQ:
            data["op"] = self.op
        return data


def _equal(actual: Any, expected: Any) -> bool:
    # True == 1 in Python; a boolean filter must not admit integer rows
    if isinstance(actual, bool) != isinstance(expected, bool):
        return False
    try:
        return bool(actual == expected)
    except Exception:
        return False


def _contains(container: Sequence[Any], wanted: Any) -> bool:
    return any(_equal(item, wanted) for item in container)


FilterInput = Union[
    "FilterSet",
    FilterConstraint,
    Mapping[str, Any],
    Iterable[Union[FilterConstraint, Mapping[str, Any], Tuple[str, Any], Tuple[str, Any, str]]],
    None,
]


class FilterSet:
    """
    Ordered collection of constraints; an entity matches when it satisfies
    all of them. An empty set matches everything.

    Accepts any of:
        FilterSet([FilterConstraint("teacher_id", "T1")])
        FilterSet([{"column": "teacher_id", "value": "T1"}])
        FilterSet([("teacher_id", "T1")])
        FilterSet([("status", ["ready", "building"], "in")])
        FilterSet({"teacher_id": "T1", "is_active": True})
    """

    def __init__(self, constraints: FilterInput = None):
        self._constraints: Tuple[FilterConstraint, ...] = tuple(_coerce_constraints(constraints))

    @classmethod
    def coerce(cls, filters: FilterInput) -> FilterSet:
        if isinstance(filters, FilterSet):
            return filters
        return cls(filters)

    @property
    def constraints(self) -> Tuple[FilterConstraint, ...]:
        return self._constraints

    def __iter__(self) -> Iterator[FilterConstraint]:
        return iter(self._constraints)

    def __len__(self) -> int:
        return len(self._constraints)

    def __bool__(self) -> bool:
        return bool(self._constraints)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FilterSet):
            return NotImplemented
        return self.canonical_key() == other.canonical_key()

    def __hash__(self) -> int:
        return hash(self.canonical_key())

    def __repr__(self) -> str:
        return f"FilterSet({self.to_list()!r})"

    def matches(self, entity: Mapping[str, Any]) -> bool:
        return all(constraint.matches(entity) for constraint in self._constraints)

    def to_list(self) -> List[Dict[str, Any]]:
        return [constraint.to_dict() for constraint in self._constraints]

    def canonical_key(self) -> str:
        """
        Stable serialization used to decide whether a view must re-subscribe.

        Constraint order does not matter; values do.
        """
        items = sorted(
            (json.dumps(c.to_dict(), sort_keys=True, default=str) for c in self._constraints)
        )
        return "[" + ",".join(items) + "]"

    def apply_to_query(self, query):
        """
        Translate the constraints onto a PostgREST select builder.

        ``eq`` for plain values, ``is_(col, "null")`` for None,
        ``contains`` for list values on array columns and ``in_`` for
        membership constraints.
        """
        for constraint in self._constraints:
            if constraint.is_null:
                query = query.is_(constraint.column, "null")
            elif constraint.is_membership:
                query = query.in_(constraint.column, list(constraint.value))
            elif constraint.is_contains:
                query = query.contains(constraint.column, list(constraint.value))
            else:
                query = query.eq(constraint.column, constraint.value)
        return query


def _coerce_constraints(filters: FilterInput) -> Iterator[FilterConstraint]:
    if filters is None:
        return
    if isinstance(filters, FilterSet):
        yield from filters.constraints
        return
    if isinstance(filters, FilterConstraint):
        yield filters
        return
    if isinstance(filters, Mapping):
        if {"column", "value"} <= set(filters.keys()) <= {"column", "value", "op"}:
            yield _from_mapping(filters)
            return
        for column, value in filters.items():
            yield FilterConstraint(str(column), value)
        return
    for item in filters:
        if isinstance(item, FilterConstraint):
            yield item
        elif isinstance(item, Mapping):
            yield _from_mapping(item)
        else:
            yield FilterConstraint(*item)


def _from_mapping(item: Mapping[str, Any]) -> FilterConstraint:
    return FilterConstraint(item["column"], item["value"], item.get("op") or EQ)


def _freeze(value: Any) -> Any:
    if isinstance(value, list):
        return tuple(value)
    return value


def matches(entity: Mapping[str, Any], filters: FilterInput = None) -> bool:
    """
    Decide whether ``entity`` belongs to the view defined by ``filters``.

    Pure and total: malformed inputs simply do not match.
    """
    return FilterSet.coerce(filters).matches(entity)


def normalize_filters(filters: FilterInput = None) -> str:
    """Canonical key for ``filters`` (order-insensitive, value-sensitive)."""
    return FilterSet.coerce(filters).canonical_key()
