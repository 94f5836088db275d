"""Page request and response models.

Response metadata serializes with camelCase names:
- offset mode: {total, page, limit, totalPages, hasNextPage, hasPreviousPage, isEstimate}
- cursor mode: {nextCursor, hasMore, limit}

Pages are generic over the row type: OffsetPage[Clinic] holds Clinic rows,
untyped rows are OffsetPage[dict[str, Any]].
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

RowT = TypeVar("RowT")


class PageMode(str, Enum):
    OFFSET = "offset"
    CURSOR = "cursor"


class PageRequest(BaseModel):
    """One page of a filtered, sorted collection.

    Cursor mode is used when mode is CURSOR or a cursor is given; a cursor
    of None in cursor mode starts from the first page.
    """

    filter: dict[str, Any] = Field(default_factory=dict)
    limit: int | None = None
    offset: int | None = None
    cursor: str | None = None
    mode: PageMode | None = None
    fields: list[str] | None = None
    sort_field: str = "created_at"
    id_field: str = "id"

    @property
    def effective_mode(self) -> PageMode:
        if self.mode is not None:
            return self.mode
        return PageMode.CURSOR if self.cursor is not None else PageMode.OFFSET


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OffsetPageMeta(_CamelModel):
    total: int
    page: int
    limit: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool
    is_estimate: bool = False


class CursorPageMeta(_CamelModel):
    next_cursor: str | None = None
    has_more: bool
    limit: int


class OffsetPage(BaseModel, Generic[RowT]):
    data: list[RowT]
    meta: OffsetPageMeta

    def to_response(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class CursorPage(BaseModel, Generic[RowT]):
    data: list[RowT]
    meta: CursorPageMeta

    def to_response(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


Page = OffsetPage | CursorPage
