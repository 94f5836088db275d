"""Query parameters for paginated endpoints.

Limit bounds are enforced by PaginationEngine against the configured
maximum, so an out-of-range limit is answered with an InvalidLimit message
rather than a generic validation error.

Usage:
    @router.get("/clinics")
    async def list_clinics(
        request: Annotated[PageRequest, Depends(page_request)],
        perf: Annotated[PerformanceContext, Depends(get_context)],
    ) -> dict[str, Any]:
        page = await perf.paginate("clinic", request)
        return page.to_response()
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Query

from enterprise_perf.pagination.models import PageMode, PageRequest

LimitParam = Annotated[
    int | None,
    Query(description="Maximum number of items to return"),
]

OffsetParam = Annotated[
    int | None,
    Query(description="Number of items to skip (offset mode)"),
]

CursorParam = Annotated[
    str | None,
    Query(description="Opaque cursor for pagination continuation"),
]

ModeParam = Annotated[
    PageMode | None,
    Query(description="Pagination mode; cursor when a cursor is given"),
]

FieldsParam = Annotated[
    str | None,
    Query(description="Comma-separated fields to return"),
]


def parse_fields(fields: str | None) -> list[str] | None:
    if not fields:
        return None
    selected = [field.strip() for field in fields.split(",") if field.strip()]
    return selected or None


def page_request(
    limit: LimitParam = None,
    offset: OffsetParam = None,
    cursor: CursorParam = None,
    mode: ModeParam = None,
    fields: FieldsParam = None,
) -> PageRequest:
    """FastAPI dependency building a PageRequest from query parameters."""
    return PageRequest(
        limit=limit,
        offset=offset,
        cursor=cursor,
        mode=mode,
        fields=parse_fields(fields),
    )
