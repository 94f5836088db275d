"""Primary store contract.

The performance layer treats the primary data store as an opaque document
collection. Filters use a Mongo-style subset (see persistence.filters);
sort specs are (field, direction) pairs with 1 for ascending and -1 for
descending.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from enum import IntEnum
from typing import Any, Protocol, runtime_checkable

Row = dict[str, Any]
Filter = Mapping[str, Any]


class SortDirection(IntEnum):
    ASC = 1
    DESC = -1


SortSpec = Sequence[tuple[str, int]]


@runtime_checkable
class DocumentStore(Protocol):
    """Operations the cache, loaders and pagination engine rely on."""

    id_field: str

    async def find_many(
        self,
        filter: Filter,
        *,
        sort: SortSpec | None = None,
        skip: int = 0,
        limit: int | None = None,
        projection: Sequence[str] | None = None,
    ) -> list[Row]: ...

    async def find_by_id(self, entity_id: Any) -> Row | None: ...

    async def find_many_by_ids(self, ids: Sequence[Any]) -> list[Row]: ...

    async def count(self, filter: Filter) -> int: ...

    async def estimated_count(self) -> int: ...
