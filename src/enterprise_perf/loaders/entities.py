"""Batch load functions and the per-request loader bundle.

Provides batch loading capabilities:
- find_by_ids: cache-aside bulk lookup of entities by identifier
- find_grouped: one-to-many lookup of child rows by a foreign key
- RequestLoaders: fresh BatchLoaders for one request

Example:
    from enterprise_perf.loaders import RequestLoaders

    loaders = context.request_loaders()
    clinic = await loaders.clinic_by_id.load(assignment["clinic_id"])
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Mapping, Sequence
from typing import Any

from enterprise_perf.cache.backend import CacheEntry
from enterprise_perf.cache.codec import ROW_CODEC, ModelCodec
from enterprise_perf.cache.keys import CacheKeys
from enterprise_perf.cache.read_through import ReadThroughCache
from enterprise_perf.loaders.batch import DEFAULT_DELAY, DEFAULT_MAX_BATCH_SIZE, BatchLoader
from enterprise_perf.observability.metrics import PerfMetrics
from enterprise_perf.persistence.store import DocumentStore, Filter, Row, SortSpec

logger = logging.getLogger(__name__)


async def find_by_ids(
    ids: Sequence[Any],
    store: DocumentStore,
    cache: ReadThroughCache | None,
    resource_type: str,
    ttl: int | None = None,
    codec: ModelCodec[Any] = ROW_CODEC,
) -> list[Any | None]:
    """Load entities by identifier, serving what the cache holds.

    Args:
        ids: Identifiers to load; duplicates are allowed
        store: Primary store for cache misses
        cache: Read-through cache, or None to always hit the store
        resource_type: Cache namespace, e.g. "clinic"
        ttl: Override for the resource type's TTL
        codec: Row type; store rows are normalized through it so cached and
            freshly loaded rows are identical

    Returns:
        Rows aligned with ids (None for not found)
    """
    if not ids:
        return []

    originals = {str(entity_id): entity_id for entity_id in ids}
    distinct = list(dict.fromkeys(str(entity_id) for entity_id in ids))
    keys = [CacheKeys.entity(resource_type, entity_id) for entity_id in distinct]
    cached = await cache.mget(keys, codec) if cache is not None else [None] * len(keys)

    found: dict[str, Any] = {
        entity_id: row for entity_id, row in zip(distinct, cached, strict=True) if row is not None
    }
    misses = [entity_id for entity_id in distinct if entity_id not in found]

    if misses:
        rows = await store.find_many_by_ids([originals[entity_id] for entity_id in misses])
        fetched = {str(row[store.id_field]): codec.normalize(row) for row in rows}
        found.update(fetched)
        logger.debug(
            f"{resource_type}: {len(distinct) - len(misses)} cached, "
            f"{len(fetched)}/{len(misses)} loaded from store"
        )
        if cache is not None and fetched:
            entries = [
                CacheEntry(CacheKeys.entity(resource_type, entity_id), row, ttl)
                for entity_id, row in fetched.items()
            ]
            await cache.mset(entries, codec)

    return [found.get(str(entity_id)) for entity_id in ids]


async def find_grouped(
    keys: Sequence[Any],
    store: DocumentStore,
    foreign_key: str,
    *,
    filter: Filter | None = None,
    sort: SortSpec | None = None,
    projection: Sequence[str] | None = None,
    cache: ReadThroughCache | None = None,
    parent_type: str | None = None,
    collection: str | None = None,
    ttl: int | None = None,
    codec: ModelCodec[Any] = ROW_CODEC,
) -> list[list[Any]]:
    """Load child rows for many parents in one query.

    When cache, parent_type and collection are all given, each parent's
    rows are cached under "{parent_type}:{key}:{collection}", the same key
    ReadThroughCache.invalidate_scoped clears.

    Returns:
        One list of rows per key (empty when a parent has no children)
    """
    if not keys:
        return []

    distinct = list(dict.fromkeys(keys))
    cacheable = cache is not None and parent_type is not None and collection is not None

    groups: dict[Any, list[Any]] = {}
    misses = distinct
    if cacheable:
        cached = await cache.mget(
            [CacheKeys.tenant_collection(parent_type, str(k), collection) for k in distinct],
            codec.many(),
        )
        groups = {k: rows for k, rows in zip(distinct, cached, strict=True) if rows is not None}
        misses = [k for k in distinct if k not in groups]

    if misses:
        if projection and foreign_key not in projection:
            projection = [*projection, foreign_key]
        query = {**(filter or {}), foreign_key: {"$in": misses}}
        rows = await store.find_many(query, sort=sort, projection=projection)

        loaded: dict[Any, list[Any]] = defaultdict(list)
        for row in rows:
            loaded[row.get(foreign_key)].append(codec.normalize(row))
        for k in misses:
            groups[k] = loaded.get(k, [])

        if cacheable:
            entries = [
                CacheEntry(
                    CacheKeys.tenant_collection(parent_type, str(k), collection), groups[k], ttl
                )
                for k in misses
            ]
            await cache.mset(entries, codec.many())

    return [list(groups.get(k, [])) for k in keys]


class RequestLoaders:
    """Per-request loader bundle.

    Provides typed access to the batch loaders for the domain's common
    relations. Loaders only exist for resource types that have a store.
    Rows are decoded with the codec registered for their resource type
    (untyped JSON rows by default).
    """

    def __init__(
        self,
        stores: Mapping[str, DocumentStore],
        cache: ReadThroughCache | None = None,
        *,
        codecs: Mapping[str, ModelCodec[Any]] | None = None,
        delay: float = DEFAULT_DELAY,
        max_batch_size: int = DEFAULT_MAX_BATCH_SIZE,
        metrics: PerfMetrics | None = None,
    ) -> None:
        self.stores = stores
        self.cache = cache
        self.codecs = dict(codecs or {})
        self.delay = delay
        self.max_batch_size = max_batch_size
        self.metrics = metrics
        self._loaders = self._create_loaders()

    def _make(self, name: str, load_fn: Any, many: bool = False) -> BatchLoader[Any, Any]:
        return BatchLoader(
            load_fn,
            name=name,
            delay=self.delay,
            max_batch_size=self.max_batch_size,
            many=many,
            metrics=self.metrics,
        )

    def codec_for(self, resource_type: str) -> ModelCodec[Any]:
        return self.codecs.get(resource_type, ROW_CODEC)

    def _by_id(self, resource_type: str) -> BatchLoader[Any, Any]:
        store = self.stores[resource_type]
        codec = self.codec_for(resource_type)
        return self._make(
            f"{resource_type}_by_id",
            lambda ids: find_by_ids(ids, store, self.cache, resource_type, codec=codec),
        )

    def _grouped(
        self,
        name: str,
        resource_type: str,
        foreign_key: str,
        parent_type: str,
        collection: str,
        filter: Filter | None = None,
    ) -> BatchLoader[Any, Any]:
        store = self.stores[resource_type]
        ttl = self.cache.get_ttl(resource_type) if self.cache is not None else None
        codec = self.codec_for(resource_type)
        return self._make(
            name,
            lambda keys: find_grouped(
                keys,
                store,
                foreign_key,
                filter=filter,
                cache=self.cache,
                parent_type=parent_type,
                collection=collection,
                ttl=ttl,
                codec=codec,
            ),
            many=True,
        )

    def _create_loaders(self) -> dict[str, BatchLoader[Any, Any]]:
        loaders: dict[str, BatchLoader[Any, Any]] = {}
        if "organization" in self.stores:
            loaders["organization_by_id"] = self._by_id("organization")
        if "clinic" in self.stores:
            loaders["clinic_by_id"] = self._by_id("clinic")
            loaders["clinics_by_organization_id"] = self._grouped(
                "clinics_by_organization_id", "clinic", "organization_id", "organization", "clinics"
            )
        if "assignment" in self.stores:
            active = {"is_active": True}
            loaders["assignments_by_clinic_id"] = self._grouped(
                "assignments_by_clinic_id", "assignment", "clinic_id", "clinic", "staff", active
            )
            loaders["assignments_by_provider_id"] = self._grouped(
                "assignments_by_provider_id",
                "assignment",
                "provider_id",
                "provider",
                "clinics",
                active,
            )
        return loaders

    def loader(self, name: str) -> BatchLoader[Any, Any]:
        """Look up a loader by name."""
        try:
            return self._loaders[name]
        except KeyError:
            raise KeyError(f"No loader named '{name}'") from None

    def register(self, name: str, loader: BatchLoader[Any, Any]) -> None:
        self._loaders[name] = loader

    @property
    def names(self) -> list[str]:
        return sorted(self._loaders)

    @property
    def organization_by_id(self) -> BatchLoader[Any, Row | None]:
        return self.loader("organization_by_id")

    @property
    def clinic_by_id(self) -> BatchLoader[Any, Row | None]:
        return self.loader("clinic_by_id")

    @property
    def clinics_by_organization_id(self) -> BatchLoader[Any, list[Row]]:
        return self.loader("clinics_by_organization_id")

    @property
    def assignments_by_clinic_id(self) -> BatchLoader[Any, list[Row]]:
        return self.loader("assignments_by_clinic_id")

    @property
    def assignments_by_provider_id(self) -> BatchLoader[Any, list[Row]]:
        return self.loader("assignments_by_provider_id")
