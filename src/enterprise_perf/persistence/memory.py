"""In-memory document store.

Implements the DocumentStore contract over a list of dicts. Used for local
development and as the reference collaborator in tests.
"""

from __future__ import annotations

import copy
from collections.abc import Iterable, Sequence
from typing import Any

from enterprise_perf.persistence.filters import match_filter, project, sort_rows
from enterprise_perf.persistence.store import Filter, Row, SortSpec


class InMemoryStore:
    """DocumentStore backed by a list of rows."""

    def __init__(self, rows: Iterable[Row] = (), id_field: str = "id"):
        self.id_field = id_field
        self._rows: list[Row] = [dict(row) for row in rows]

    def insert(self, row: Row) -> Row:
        self._rows.append(dict(row))
        return row

    def remove(self, entity_id: Any) -> bool:
        before = len(self._rows)
        self._rows = [r for r in self._rows if r.get(self.id_field) != entity_id]
        return len(self._rows) < before

    async def find_many(
        self,
        filter: Filter,
        *,
        sort: SortSpec | None = None,
        skip: int = 0,
        limit: int | None = None,
        projection: Sequence[str] | None = None,
    ) -> list[Row]:
        matched = [r for r in self._rows if match_filter(r, filter)]
        ordered = sort_rows(matched, sort)
        end = None if limit is None else skip + limit
        return [copy.deepcopy(project(r, projection)) for r in ordered[skip:end]]

    async def find_by_id(self, entity_id: Any) -> Row | None:
        for row in self._rows:
            if row.get(self.id_field) == entity_id:
                return copy.deepcopy(row)
        return None

    async def find_many_by_ids(self, ids: Sequence[Any]) -> list[Row]:
        wanted = set(ids)
        return [copy.deepcopy(r) for r in self._rows if r.get(self.id_field) in wanted]

    async def count(self, filter: Filter) -> int:
        return sum(1 for r in self._rows if match_filter(r, filter))

    async def estimated_count(self) -> int:
        return len(self._rows)

    def __len__(self) -> int:
        return len(self._rows)
