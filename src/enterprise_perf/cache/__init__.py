"""Read-through caching over Redis or an in-process backend."""

from enterprise_perf.cache.backend import CacheBackend, CacheEntry, CacheStats, MemoryCacheBackend
from enterprise_perf.cache.codec import ROW_CODEC, JsonCodec, ModelCodec
from enterprise_perf.cache.keys import CacheKeys
from enterprise_perf.cache.read_through import CacheHealth, HealthStatus, ReadThroughCache
from enterprise_perf.cache.redis import RedisCacheBackend, create_redis_client

__all__ = [
    "CacheBackend",
    "CacheEntry",
    "CacheHealth",
    "CacheKeys",
    "CacheStats",
    "HealthStatus",
    "JsonCodec",
    "MemoryCacheBackend",
    "ModelCodec",
    "ROW_CODEC",
    "ReadThroughCache",
    "RedisCacheBackend",
    "create_redis_client",
]
