"""Filter vocabulary understood by every store backend.

Conditions are plain tuples so managers can build queries without knowing
which backend serves them. ``filters`` passed to a store are ANDed together,
``any_of`` forms a single OR group that is ANDed with the filters.
"""

from typing import Any, Iterable, NamedTuple

OPERATORS = ('eq', 'in', 'gte', 'lte', 'contains')


class Condition(NamedTuple):
    field: str
    op: str
    value: Any


def eq(field: str, value: Any) -> Condition:
    return Condition(field, 'eq', value)


def in_(field: str, values: Iterable[Any]) -> Condition:
    return Condition(field, 'in', list(values))


def gte(field: str, value: Any) -> Condition:
    return Condition(field, 'gte', value)


def lte(field: str, value: Any) -> Condition:
    return Condition(field, 'lte', value)


def contains(field: str, text: str) -> Condition:
    """Case-insensitive substring match."""
    return Condition(field, 'contains', text)
