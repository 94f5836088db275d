"""Offset and cursor pagination over a DocumentStore.

Offset mode pairs find_many(skip, limit) with a count of the filter. Cursor
mode uses keyset pagination: rows strictly after the decoded position in
descending (sort_field, id) order, fetching limit + 1 rows to learn whether
another page exists without counting.

Pages are cached through the read-through cache under list keys that
include the filter, paging parameters, sort and projection, so every
distinct request has its own entry and invalidate_list clears them all.

Example:
    engine = PaginationEngine(store, cache, settings)
    page = await engine.paginate("assignment", PageRequest(limit=20, offset=40))
    page.meta.total_pages
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from functools import partial
from typing import Any

from enterprise_perf.cache.codec import ROW_CODEC, ModelCodec
from enterprise_perf.cache.keys import CacheKeys
from enterprise_perf.cache.read_through import ReadThroughCache
from enterprise_perf.config import Settings
from enterprise_perf.errors import InvalidLimitError, InvalidOffsetError
from enterprise_perf.observability.metrics import PerfMetrics
from enterprise_perf.pagination.cursor import (
    CursorData,
    decode_cursor,
    encode_cursor,
    keyset_condition,
)
from enterprise_perf.pagination.models import (
    CursorPage,
    CursorPageMeta,
    OffsetPage,
    OffsetPageMeta,
    Page,
    PageMode,
    PageRequest,
)
from enterprise_perf.persistence.filters import is_empty_filter
from enterprise_perf.persistence.store import DocumentStore, Filter, Row, SortDirection

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 20
MAX_LIMIT = 100
DEFAULT_ESTIMATE_THRESHOLD = 100_000


class CountStrategy:
    """Chooses between an exact count and the store's fast estimate.

    The estimate is used only when estimation is enabled, the filter
    selects the whole collection, and the estimate exceeds the threshold.
    Filtered queries always count exactly.
    """

    def __init__(self, enabled: bool = True, threshold: int = DEFAULT_ESTIMATE_THRESHOLD):
        self.enabled = enabled
        self.threshold = threshold

    async def count(self, store: DocumentStore, filter: Filter) -> tuple[int, bool]:
        """Return (total, is_estimate)."""
        if self.enabled and is_empty_filter(filter):
            estimate = await store.estimated_count()
            if estimate > self.threshold:
                return estimate, True
        return await store.count(filter), False


class PaginationEngine:
    """Paginates one store, caching pages as list entries.

    Rows are normalized through row_codec before they are returned, and
    cached pages are decoded with the same row type, so a page is identical
    whether or not it came from the cache.
    """

    def __init__(
        self,
        store: DocumentStore,
        cache: ReadThroughCache | None = None,
        settings: Settings | None = None,
        *,
        metrics: PerfMetrics | None = None,
        row_codec: ModelCodec[Any] = ROW_CODEC,
    ):
        self.store = store
        self.cache = cache
        self.row_codec = row_codec
        self.offset_page_type: type[OffsetPage[Any]] = OffsetPage[row_codec.type_]
        self.cursor_page_type: type[CursorPage[Any]] = CursorPage[row_codec.type_]
        self.offset_page_codec = ModelCodec(self.offset_page_type)
        self.cursor_page_codec = ModelCodec(self.cursor_page_type)
        self.metrics = metrics or PerfMetrics(enabled=False)
        if settings is not None:
            self.default_limit = settings.pagination_default_limit
            self.max_limit = settings.pagination_max_limit
            self.counter = CountStrategy(
                settings.pagination_estimate_count, settings.pagination_estimate_threshold
            )
        else:
            self.default_limit = DEFAULT_LIMIT
            self.max_limit = MAX_LIMIT
            self.counter = CountStrategy()

    # -------------------------------------------------------------------------
    # Input validation
    # -------------------------------------------------------------------------

    def normalize_limit(self, limit: int | None) -> int:
        """Default a missing limit and reject one outside [1, max_limit]."""
        if limit is None:
            return self.default_limit
        if not 1 <= limit <= self.max_limit:
            raise InvalidLimitError(limit, self.max_limit)
        return limit

    def clamp_limit(self, limit: int | None) -> int:
        """Default a missing limit and clamp it into [1, max_limit]."""
        if limit is None:
            return self.default_limit
        return max(1, min(limit, self.max_limit))

    def _prepare(self, request: PageRequest) -> tuple[PageMode, int, CursorData | None]:
        limit = self.normalize_limit(request.limit)
        mode = request.effective_mode

        if request.offset is not None:
            if request.offset < 0:
                raise InvalidOffsetError(f"offset must not be negative, got {request.offset}")
            if mode is PageMode.CURSOR:
                raise InvalidOffsetError("offset and cursor are mutually exclusive")
        if mode is PageMode.OFFSET and request.cursor is not None:
            raise InvalidOffsetError("offset and cursor are mutually exclusive")

        position = decode_cursor(request.cursor) if request.cursor is not None else None
        return mode, limit, position

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def cache_key(self, resource_type: str, request: PageRequest, limit: int) -> str:
        """List cache key for a request with its effective limit."""
        mode = request.effective_mode
        query: dict[str, Any] = {
            "filter": request.filter,
            "sort": [request.sort_field, request.id_field],
            "limit": limit,
        }
        if mode is PageMode.CURSOR:
            query["cursor"] = request.cursor
        else:
            query["offset"] = request.offset or 0
        return CacheKeys.list_page(resource_type, query, request.fields)

    async def paginate(
        self,
        resource_type: str,
        request: PageRequest,
        ttl: int | None = None,
    ) -> Page:
        """Return one page, from the cache when possible.

        Raises:
            PaginationError: On invalid limit, offset or cursor, before any I/O
        """
        mode, limit, position = self._prepare(request)

        producer: Callable[[], Awaitable[Page]]
        if mode is PageMode.CURSOR:
            producer = partial(self.cursor_page, request, limit, position)
            codec: ModelCodec[Any] = self.cursor_page_codec
        else:
            producer = partial(self.offset_page, resource_type, request, limit)
            codec = self.offset_page_codec

        if self.cache is None:
            return await producer()

        key = self.cache_key(resource_type, request, limit)
        return await self.cache.get_or_set(key, producer, ttl=ttl, codec=codec)

    async def offset_page(
        self,
        resource_type: str,
        request: PageRequest,
        limit: int,
    ) -> OffsetPage:
        offset = request.offset or 0
        rows, (total, estimated) = await asyncio.gather(
            self.store.find_many(
                request.filter,
                sort=self._sort(request),
                skip=offset,
                limit=limit,
                projection=self._projection(request),
            ),
            self.counter.count(self.store, request.filter),
        )
        self.metrics.page_counted(resource_type, estimated)
        if estimated:
            logger.debug(f"{resource_type}: using estimated total {total}")

        meta = OffsetPageMeta(
            total=total,
            page=offset // limit + 1,
            limit=limit,
            total_pages=math.ceil(total / limit),
            has_next_page=offset + limit < total,
            has_previous_page=offset > 0,
            is_estimate=estimated,
        )
        return self.offset_page_type(data=self._rows(request, rows), meta=meta)

    async def cursor_page(
        self,
        request: PageRequest,
        limit: int,
        position: CursorData | None = None,
    ) -> CursorPage:
        query: Filter = request.filter
        if position is not None:
            keyset = keyset_condition(position, request.sort_field, request.id_field)
            query = {"$and": [request.filter, keyset]} if request.filter else keyset

        rows = await self.store.find_many(
            query,
            sort=self._sort(request),
            limit=limit + 1,
            projection=self._projection(request),
        )
        has_more = len(rows) > limit
        rows = rows[:limit]

        next_cursor = None
        if has_more:
            last = rows[-1]
            next_cursor = encode_cursor(last.get(request.sort_field), last.get(request.id_field))

        meta = CursorPageMeta(next_cursor=next_cursor, has_more=has_more, limit=limit)
        return self.cursor_page_type(data=self._rows(request, rows), meta=meta)

    # -------------------------------------------------------------------------
    # Sort and projection
    # -------------------------------------------------------------------------

    @staticmethod
    def _sort(request: PageRequest) -> list[tuple[str, int]]:
        return [(request.sort_field, SortDirection.DESC), (request.id_field, SortDirection.DESC)]

    @staticmethod
    def _projection(request: PageRequest) -> list[str] | None:
        # Keyset position needs the sort field and id even when not selected
        if not request.fields:
            return None
        return list(dict.fromkeys([*request.fields, request.sort_field, request.id_field]))

    def _rows(self, request: PageRequest, rows: Sequence[Row]) -> list[Any]:
        """Drop fields fetched only for the cursor, then normalize."""
        extra: set[str] = set()
        if request.fields:
            extra = {request.sort_field, request.id_field} - set(request.fields)
        return [
            self.row_codec.normalize({k: v for k, v in row.items() if k not in extra})
            for row in rows
        ]


async def iterate_cursor(
    engine: PaginationEngine,
    resource_type: str,
    request: PageRequest | None = None,
) -> AsyncIterator[CursorPage]:
    """Walk every cursor page from the top until hasMore is false."""
    current = (request or PageRequest()).model_copy(update={"mode": PageMode.CURSOR})
    while True:
        page = await engine.paginate(resource_type, current)
        assert isinstance(page, CursorPage)
        yield page
        if not page.meta.has_more:
            return
        current = current.model_copy(update={"cursor": page.meta.next_cursor})
