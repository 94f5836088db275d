"""Mongo-style filter evaluation for in-process stores.

Supported forms:
- {"field": value}                 equality
- {"field": {"$in": [...]}}        also $nin, $ne, $lt, $lte, $gt, $gte, $exists
- {"$and": [f1, f2]}, {"$or": [f1, f2]}

Dotted field names address nested mappings ("address.city").
"""

from __future__ import annotations

import operator
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from enterprise_perf.persistence.store import Filter, SortSpec

_MISSING = object()

_COMPARATORS: dict[str, Callable[[Any, Any], bool]] = {
    "$lt": operator.lt,
    "$lte": operator.le,
    "$gt": operator.gt,
    "$gte": operator.ge,
}

OPERATORS = frozenset({"$in", "$nin", "$ne", "$exists", *_COMPARATORS})


def get_field(row: Mapping[str, Any], path: str) -> Any:
    """Resolve a dotted path, returning _MISSING when any segment is absent."""
    current: Any = row
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return _MISSING
        current = current[part]
    return current


def is_operator_expr(value: Any) -> bool:
    return isinstance(value, Mapping) and bool(value) and all(k in OPERATORS for k in value)


def is_empty_filter(filter: Filter | None) -> bool:
    """True when a filter selects the whole collection."""
    return not filter


def _match_condition(actual: Any, condition: Any) -> bool:
    if not is_operator_expr(condition):
        return actual is not _MISSING and actual == condition

    for op, expected in condition.items():
        if op == "$exists":
            if (actual is not _MISSING) != bool(expected):
                return False
        elif op == "$in":
            if actual is _MISSING or actual not in expected:
                return False
        elif op == "$nin":
            if actual is not _MISSING and actual in expected:
                return False
        elif op == "$ne":
            if actual is not _MISSING and actual == expected:
                return False
        else:
            if actual is _MISSING or actual is None or expected is None:
                return False
            try:
                if not _COMPARATORS[op](actual, expected):
                    return False
            except TypeError:
                return False
    return True


def match_filter(row: Mapping[str, Any], filter: Filter | None) -> bool:
    """Evaluate a filter against a row."""
    if not filter:
        return True

    for key, condition in filter.items():
        if key == "$and":
            if not all(match_filter(row, sub) for sub in condition):
                return False
        elif key == "$or":
            if not any(match_filter(row, sub) for sub in condition):
                return False
        elif not _match_condition(get_field(row, key), condition):
            return False
    return True


def _sortable(value: Any) -> tuple[bool, Any]:
    # Missing and null sort lowest
    if value is _MISSING or value is None:
        return (False, 0)
    return (True, value)


def sort_rows(rows: Sequence[Mapping[str, Any]], sort: SortSpec | None) -> list[Any]:
    """Sort rows by a multi-field sort (stable, right-most key first)."""
    ordered = list(rows)
    for field, direction in reversed(list(sort or [])):
        ordered.sort(key=lambda r: _sortable(get_field(r, field)), reverse=direction < 0)
    return ordered


def project(row: Mapping[str, Any], fields: Sequence[str] | None) -> dict[str, Any]:
    """Restrict a row to top-level fields (whole row when fields is empty)."""
    if not fields:
        return dict(row)
    return {field: row[field] for field in fields if field in row}
