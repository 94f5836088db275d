"""enterprise-perf - caching, batch loading and pagination for enterprise services."""

__version__ = "0.1.0"
