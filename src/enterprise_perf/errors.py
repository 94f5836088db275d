"""Exception taxonomy for the performance layer.

- CacheBackendError: raised by cache adapters and codecs, always recovered
  inside the read-through cache
- PaginationError: invalid paging input, raised before any I/O
- BatchLoadError: a batch load function broke its contract

Errors raised by the primary store are not wrapped; they reach the caller
unchanged.
"""

from __future__ import annotations


class PerfError(Exception):
    """Base class for performance layer errors."""


class CacheBackendError(PerfError):
    """Cache backend connection, timeout or serialization failure."""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"cache {operation} failed: {message}")


class PaginationError(PerfError, ValueError):
    """Invalid pagination input."""

    code = "InvalidPagination"


class InvalidLimitError(PaginationError):
    """Limit outside the allowed range."""

    code = "InvalidLimit"

    def __init__(self, limit: int, max_limit: int):
        self.limit = limit
        self.max_limit = max_limit
        super().__init__(f"limit must be between 1 and {max_limit}, got {limit}")


class InvalidOffsetError(PaginationError):
    """Negative offset, or offset combined with a cursor."""

    code = "InvalidOffset"


class InvalidCursorError(PaginationError):
    """Cursor token that cannot be decoded."""

    code = "InvalidCursor"

    def __init__(self, cursor: str, reason: str = "malformed cursor"):
        self.cursor = cursor
        super().__init__(f"Invalid pagination cursor: {reason}")


class BatchLoadError(PerfError):
    """Batch load function returned a result that does not match its keys."""
