"""Primary store contract and implementations."""

from enterprise_perf.persistence.memory import InMemoryStore
from enterprise_perf.persistence.sql import SqlStore
from enterprise_perf.persistence.store import DocumentStore, Filter, Row, SortDirection, SortSpec

__all__ = [
    "DocumentStore",
    "Filter",
    "InMemoryStore",
    "Row",
    "SortDirection",
    "SortSpec",
    "SqlStore",
]
