"""Request-scoped batch loading."""

from enterprise_perf.loaders.batch import BatchLoader
from enterprise_perf.loaders.entities import RequestLoaders, find_by_ids, find_grouped

__all__ = ["BatchLoader", "RequestLoaders", "find_by_ids", "find_grouped"]
