"""Process-wide performance context.

PerformanceContext owns the cache backend, the read-through cache, the
metrics registry and one pagination engine per registered store. It is
built once at startup and handed to whatever needs it; nothing in this
package reaches for a global.

Example:
    async with PerformanceContext.from_settings(Settings(), stores) as perf:
        loaders = perf.request_loaders()
        page = await perf.paginate("assignment", PageRequest(limit=20))
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from enterprise_perf.cache.backend import CacheBackend, MemoryCacheBackend
from enterprise_perf.cache.codec import ROW_CODEC, ModelCodec
from enterprise_perf.cache.read_through import CacheHealth, HealthStatus, ReadThroughCache
from enterprise_perf.cache.redis import RedisCacheBackend, create_redis_client
from enterprise_perf.config import Settings
from enterprise_perf.loaders.entities import RequestLoaders
from enterprise_perf.observability.metrics import PerfMetrics
from enterprise_perf.pagination.engine import PaginationEngine
from enterprise_perf.pagination.models import Page, PageRequest
from enterprise_perf.persistence.store import DocumentStore

logger = logging.getLogger(__name__)


class PerformanceContext:
    """Shared components for one process."""

    def __init__(
        self,
        settings: Settings,
        backend: CacheBackend,
        stores: Mapping[str, DocumentStore] | None = None,
        *,
        metrics: PerfMetrics | None = None,
        codecs: Mapping[str, ModelCodec[Any]] | None = None,
    ):
        self.settings = settings
        self.metrics = metrics or PerfMetrics(enabled=settings.enable_metrics)
        self.backend = backend
        self.cache = ReadThroughCache.from_settings(backend, settings, self.metrics)
        self.stores: dict[str, DocumentStore] = dict(stores or {})
        self.codecs: dict[str, ModelCodec[Any]] = dict(codecs or {})
        self._engines: dict[str, PaginationEngine] = {}
        self.started = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        stores: Mapping[str, DocumentStore] | None = None,
        codecs: Mapping[str, ModelCodec[Any]] | None = None,
    ) -> PerformanceContext:
        """Build a context backed by Redis at settings.redis_url."""
        settings = settings or Settings()
        backend = RedisCacheBackend(
            create_redis_client(settings.redis_url),
            prefix=settings.cache_key_prefix,
            command_timeout=settings.cache_command_timeout,
        )
        return cls(settings, backend, stores, codecs=codecs)

    @classmethod
    def in_memory(
        cls,
        settings: Settings | None = None,
        stores: Mapping[str, DocumentStore] | None = None,
        codecs: Mapping[str, ModelCodec[Any]] | None = None,
    ) -> PerformanceContext:
        """Build a context with a process-local cache backend."""
        return cls(settings or Settings(), MemoryCacheBackend(), stores, codecs=codecs)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> CacheHealth:
        """Check the cache backend once; a degraded cache does not block startup."""
        health = await self.cache.health_check()
        if health.status is HealthStatus.OK:
            logger.info(f"Cache backend ready ({health.latency_ms:.1f}ms)")
        else:
            logger.warning(f"Cache backend degraded at startup: {health.message}")
        self.started = True
        return health

    async def close(self) -> None:
        if self.started:
            self.cache.log_stats()
        await self.backend.close()
        self.started = False

    async def __aenter__(self) -> PerformanceContext:
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Components
    # -------------------------------------------------------------------------

    def register_store(
        self,
        resource_type: str,
        store: DocumentStore,
        codec: ModelCodec[Any] | None = None,
    ) -> None:
        """Add or replace a store, optionally with the row type of its rows."""
        self.stores[resource_type] = store
        if codec is not None:
            self.codecs[resource_type] = codec
        self._engines.pop(resource_type, None)

    def pagination(self, resource_type: str) -> PaginationEngine:
        """Pagination engine for a registered store."""
        engine = self._engines.get(resource_type)
        if engine is None:
            try:
                store = self.stores[resource_type]
            except KeyError:
                raise KeyError(f"No store registered for '{resource_type}'") from None
            engine = PaginationEngine(
                store,
                self.cache,
                self.settings,
                metrics=self.metrics,
                row_codec=self.codecs.get(resource_type, ROW_CODEC),
            )
            self._engines[resource_type] = engine
        return engine

    async def paginate(
        self,
        resource_type: str,
        request: PageRequest,
        ttl: int | None = None,
    ) -> Page:
        return await self.pagination(resource_type).paginate(resource_type, request, ttl)

    def request_loaders(self) -> RequestLoaders:
        """Fresh loader bundle for one request.

        With batch loading disabled every load dispatches on its own.
        """
        if self.settings.batch_loading_enabled:
            delay = self.settings.batch_delay_seconds
            max_batch_size = self.settings.batch_max_size
        else:
            delay, max_batch_size = 0.0, 1
        return RequestLoaders(
            self.stores,
            self.cache,
            codecs=self.codecs,
            delay=delay,
            max_batch_size=max_batch_size,
            metrics=self.metrics,
        )
