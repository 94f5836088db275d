"""Read-through cache with single-flight fills and scoped invalidation.

The cache is advisory: every backend failure is logged and turned into a
miss (reads) or a no-op (writes), so callers always fall back to the
primary store. Only errors raised by a caller's producer reach the caller.

Concurrency:
- get_or_set runs at most one producer per key at a time in this process.
  Concurrent callers for the same cold key await the same in-flight task
  instead of issuing duplicate store reads.
- No lock is held across I/O; the in-flight table is only touched between
  awaits.

Example:
    cache = ReadThroughCache(backend, ttls=settings.ttl_table())

    clinic = await cache.get_or_set(
        CacheKeys.entity("clinic", clinic_id),
        lambda: store.find_by_id(clinic_id),
    )

    # After a write
    await cache.invalidate("clinic", clinic_id)
    await cache.invalidate_list("clinic")
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any

from enterprise_perf.cache.backend import CacheBackend, CacheEntry
from enterprise_perf.cache.codec import JSON_CODEC, Codec
from enterprise_perf.cache.keys import CacheKeys
from enterprise_perf.config import Settings
from enterprise_perf.errors import CacheBackendError
from enterprise_perf.observability.metrics import PerfMetrics

logger = logging.getLogger(__name__)

DEFAULT_TTL = 300
DEFAULT_HEALTH_TIMEOUT = 5.0

Producer = Callable[[], Awaitable[Any]]


class HealthStatus(str, Enum):
    """Cache health status."""

    OK = "ok"
    DEGRADED = "degraded"


@dataclass
class CacheHealth:
    """Result of a cache round-trip check."""

    status: HealthStatus
    latency_ms: float | None = None
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON response."""
        result: dict[str, Any] = {
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2) if self.latency_ms is not None else None,
        }
        if self.message:
            result["message"] = self.message
        return result


def key_category(key: str) -> str:
    """Resource category of a cache key: 'list' for list pages, else the type."""
    resource_type, _, rest = key.partition(":")
    if rest.startswith(f"{CacheKeys.LIST}:"):
        return CacheKeys.LIST
    return resource_type


class ReadThroughCache:
    """Cache-aside operations over a CacheBackend."""

    def __init__(
        self,
        backend: CacheBackend,
        ttls: Mapping[str, int] | None = None,
        default_ttl: int = DEFAULT_TTL,
        *,
        enabled: bool = True,
        health_timeout: float = DEFAULT_HEALTH_TIMEOUT,
        metrics: PerfMetrics | None = None,
        codec: Codec[Any] = JSON_CODEC,
    ):
        self.backend = backend
        self.ttls = dict(ttls or {})
        self.default_ttl = default_ttl
        self.enabled = enabled
        self.health_timeout = health_timeout
        self.metrics = metrics or PerfMetrics(enabled=False)
        self.codec = codec
        self._inflight: dict[str, asyncio.Future[Any]] = {}

    @classmethod
    def from_settings(
        cls,
        backend: CacheBackend,
        settings: Settings,
        metrics: PerfMetrics | None = None,
    ) -> ReadThroughCache:
        return cls(
            backend,
            ttls=settings.ttl_table(),
            default_ttl=settings.cache_default_ttl,
            enabled=settings.cache_enabled,
            health_timeout=settings.cache_health_timeout,
            metrics=metrics,
        )

    # -------------------------------------------------------------------------
    # TTL policy
    # -------------------------------------------------------------------------

    def get_ttl(self, category: str) -> int:
        """TTL in seconds for a resource category, or the default if unknown."""
        return self.ttls.get(category, self.default_ttl)

    def _ttl_for(self, key: str, ttl: int | None) -> int:
        return ttl if ttl is not None else self.get_ttl(key_category(key))

    def _recover(self, operation: str, error: Exception) -> None:
        logger.warning(f"Cache {operation} failed, falling back: {error}")
        self.metrics.cache_error(operation)

    # -------------------------------------------------------------------------
    # Single-key operations
    # -------------------------------------------------------------------------

    async def get(self, key: str, codec: Codec[Any] | None = None) -> Any | None:
        """Get a cached value, or None when absent or the backend failed."""
        if not self.enabled:
            return None

        try:
            with self.metrics.timed("get"):
                data = await self.backend.get(key)
            if data is None:
                self.metrics.cache_miss(key_category(key))
                return None
            value = (codec or self.codec).decode(data)
        except CacheBackendError as e:
            self._recover("get", e)
            return None

        self.metrics.cache_hit(key_category(key))
        return value

    async def set(
        self,
        key: str,
        value: Any,
        ttl: int | None = None,
        codec: Codec[Any] | None = None,
    ) -> bool:
        """Store a value, overwriting unconditionally. Returns False on failure."""
        if not self.enabled:
            return False

        try:
            data = (codec or self.codec).encode(value)
            with self.metrics.timed("set"):
                await self.backend.set(key, data, self._ttl_for(key, ttl))
        except CacheBackendError as e:
            self._recover("set", e)
            return False
        return True

    async def get_or_set(
        self,
        key: str,
        producer: Producer,
        ttl: int | None = None,
        codec: Codec[Any] | None = None,
    ) -> Any:
        """Return the cached value, or run producer once and cache its result.

        Producer errors propagate to every waiting caller and nothing is
        cached. A None result is returned but not stored.
        """
        if not self.enabled:
            return await producer()

        inflight = self._inflight.get(key)
        if inflight is None:
            cached = await self.get(key, codec)
            if cached is not None:
                return cached

            # Another caller may have started the fill while we awaited get()
            inflight = self._inflight.get(key)
            if inflight is None:
                inflight = asyncio.ensure_future(self._fill(key, producer, ttl, codec))
                self._inflight[key] = inflight
                inflight.add_done_callback(partial(self._forget, key))

        # shield: a cancelled waiter must not cancel the fill for the others
        return await asyncio.shield(inflight)

    async def _fill(
        self,
        key: str,
        producer: Producer,
        ttl: int | None,
        codec: Codec[Any] | None,
    ) -> Any:
        value = await producer()
        if value is not None:
            await self.set(key, value, ttl, codec)
        return value

    def _forget(self, key: str, task: asyncio.Future[Any]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            # Mark retrieved; waiters receive the error through shield()
            task.exception()

    @property
    def inflight_count(self) -> int:
        return len(self._inflight)

    # -------------------------------------------------------------------------
    # Bulk operations
    # -------------------------------------------------------------------------

    async def mget(self, keys: Sequence[str], codec: Codec[Any] | None = None) -> list[Any | None]:
        """Get many values, aligned with keys (None for absent entries)."""
        if not keys:
            return []
        if not self.enabled:
            return [None] * len(keys)

        try:
            with self.metrics.timed("mget"):
                raw = await self.backend.mget(keys)
        except CacheBackendError as e:
            self._recover("mget", e)
            return [None] * len(keys)

        decoder = codec or self.codec
        values: list[Any | None] = []
        for key, data in zip(keys, raw, strict=True):
            if data is None:
                self.metrics.cache_miss(key_category(key))
                values.append(None)
                continue
            try:
                values.append(decoder.decode(data))
            except CacheBackendError as e:
                self._recover("mget", e)
                values.append(None)
                continue
            self.metrics.cache_hit(key_category(key))
        return values

    async def mset(self, entries: Iterable[CacheEntry], codec: Codec[Any] | None = None) -> bool:
        """Store many entries in one round-trip. Returns False on failure."""
        if not self.enabled:
            return False

        encoder = codec or self.codec
        try:
            batch = [
                (entry.key, encoder.encode(entry.value), self._ttl_for(entry.key, entry.ttl))
                for entry in entries
            ]
            if not batch:
                return True
            with self.metrics.timed("mset"):
                await self.backend.mset(batch)
        except CacheBackendError as e:
            self._recover("mset", e)
            return False
        return True

    async def exists(self, key: str) -> bool:
        if not self.enabled:
            return False
        try:
            return await self.backend.exists(key)
        except CacheBackendError as e:
            self._recover("exists", e)
            return False

    async def increment(self, key: str, ttl: int | None = None) -> int:
        """Increment a counter. Returns 0 when the backend is unavailable."""
        if not self.enabled:
            return 0
        try:
            return await self.backend.incr(key, self._ttl_for(key, ttl))
        except CacheBackendError as e:
            self._recover("incr", e)
            return 0

    # -------------------------------------------------------------------------
    # Invalidation (best-effort: failures are logged, never raised)
    # -------------------------------------------------------------------------

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return await self.backend.delete(*keys)
        except CacheBackendError as e:
            self._recover("delete", e)
            return 0

    async def delete_pattern(self, pattern: str) -> int:
        try:
            return await self.backend.delete_pattern(pattern)
        except CacheBackendError as e:
            self._recover("delete_pattern", e)
            return 0

    async def invalidate(self, entity_type: str, entity_id: str) -> None:
        """Drop an entity and every projection or child key stored under it."""
        await asyncio.gather(
            self.delete(CacheKeys.entity(entity_type, entity_id)),
            self.delete_pattern(CacheKeys.entity_pattern(entity_type, entity_id)),
        )
        logger.debug(f"Invalidated {entity_type}:{entity_id}")

    async def invalidate_list(self, entity_type: str) -> None:
        """Drop every cached list page of a resource type."""
        deleted = await self.delete_pattern(CacheKeys.list_pattern(entity_type))
        logger.debug(f"Invalidated {deleted} list pages for {entity_type}")

    async def invalidate_scoped(
        self,
        entity_type: str,
        entity_id: str,
        tenant_id: str,
        tenant_type: str = "organization",
    ) -> None:
        """Drop an entity, its list family and the owning tenant's collection.

        Example: invalidate_scoped("clinic", "c1", "o1") drops clinic:c1,
        clinic:c1:*, clinic:list:* and organization:o1:clinics.
        """
        await asyncio.gather(
            self.invalidate(entity_type, entity_id),
            self.invalidate_list(entity_type),
            self.delete(CacheKeys.tenant_collection(tenant_type, tenant_id, f"{entity_type}s")),
        )

    async def invalidate_related(
        self,
        type_a: str,
        id_a: str,
        type_b: str,
        id_b: str,
        relation_type: str | None = None,
    ) -> None:
        """Drop both sides of a join-like resource plus their list caches.

        With relation_type (e.g. "assignment"), the relation's own entity
        key {relation_type}:{id_a}:{id_b} and list family are dropped too.
        """
        operations = [
            self.invalidate(type_a, id_a),
            self.invalidate(type_b, id_b),
            self.invalidate_list(type_a),
            self.invalidate_list(type_b),
            self.delete(CacheKeys.relation(type_a, id_a, type_b, id_b)),
        ]
        if relation_type:
            operations.append(self.delete(f"{relation_type}:{id_a}:{id_b}"))
            operations.append(self.invalidate_list(relation_type))
        await asyncio.gather(*operations)

    # -------------------------------------------------------------------------
    # Warming, health and statistics
    # -------------------------------------------------------------------------

    async def warm(
        self,
        resource_type: str,
        rows: Iterable[Mapping[str, Any]],
        id_field: str = "id",
        codec: Codec[Any] | None = None,
    ) -> int:
        """Preload entity keys for rows with the category TTL."""
        ttl = self.get_ttl(resource_type)
        entries = [
            CacheEntry(CacheKeys.entity(resource_type, str(row[id_field])), row, ttl)
            for row in rows
        ]
        if entries and await self.mset(entries, codec):
            logger.info(f"Warmed cache with {len(entries)} {resource_type} entries")
            return len(entries)
        return 0

    async def health_check(self) -> CacheHealth:
        """Round-trip the backend within health_timeout; never raises."""
        start = time.monotonic()
        try:
            latency = await asyncio.wait_for(self.backend.ping(), timeout=self.health_timeout)
            return CacheHealth(status=HealthStatus.OK, latency_ms=latency)
        except asyncio.TimeoutError:
            logger.warning("Cache health check timed out")
            return CacheHealth(
                status=HealthStatus.DEGRADED,
                latency_ms=(time.monotonic() - start) * 1000,
                message="Cache check timed out",
            )
        except CacheBackendError as e:
            logger.warning(f"Cache health check failed: {e}")
            return CacheHealth(
                status=HealthStatus.DEGRADED,
                latency_ms=(time.monotonic() - start) * 1000,
                message=str(e),
            )

    def stats(self) -> dict[str, Any]:
        data = self.backend.stats.to_dict()
        data["inflight"] = self.inflight_count
        return data

    def reset_stats(self) -> None:
        self.backend.stats.reset()

    def log_stats(self) -> None:
        stats = self.stats()
        logger.info(
            "Cache statistics",
            extra={
                "hits": stats["hits"],
                "misses": stats["misses"],
                "hit_rate": f"{stats['hit_rate'] * 100:.2f}%",
                "sets": stats["sets"],
                "deletes": stats["deletes"],
                "errors": stats["errors"],
            },
        )
