"""Offset and cursor pagination with count estimation."""

from enterprise_perf.pagination.cursor import CursorData, decode_cursor, encode_cursor
from enterprise_perf.pagination.engine import CountStrategy, PaginationEngine, iterate_cursor
from enterprise_perf.pagination.models import (
    CursorPage,
    CursorPageMeta,
    OffsetPage,
    OffsetPageMeta,
    Page,
    PageMode,
    PageRequest,
)

__all__ = [
    "CountStrategy",
    "CursorData",
    "CursorPage",
    "CursorPageMeta",
    "OffsetPage",
    "OffsetPageMeta",
    "Page",
    "PageMode",
    "PageRequest",
    "PaginationEngine",
    "decode_cursor",
    "encode_cursor",
    "iterate_cursor",
]
