"""Redis cache backend.

Provides async Redis operations behind the CacheBackend contract.
Uses the redis-py async client for connection pooling; every command is
time-boxed so a slow or unreachable Redis degrades to a cache miss instead
of stalling the request.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Sequence
from typing import TYPE_CHECKING, TypeVar, cast

import redis.asyncio as redis
from redis.exceptions import RedisError

from enterprise_perf.cache.backend import CacheBackend
from enterprise_perf.errors import CacheBackendError

if TYPE_CHECKING:
    from redis.asyncio import Redis

R = TypeVar("R")

DEFAULT_COMMAND_TIMEOUT = 5.0
SCAN_BATCH = 500


def create_redis_client(url: str) -> Redis:
    """Create a pooled Redis client.

    The caller owns the client and closes it through the backend.
    """
    return redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=False,  # We're storing bytes
    )


class RedisCacheBackend(CacheBackend):
    """Cache backend on top of a shared Redis connection pool."""

    def __init__(
        self,
        client: Redis,
        prefix: str = "",
        command_timeout: float = DEFAULT_COMMAND_TIMEOUT,
    ):
        super().__init__()
        self.client = client
        self.prefix = prefix
        self.command_timeout = command_timeout

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}" if self.prefix else key

    async def _run(self, operation: str, awaitable: Awaitable[R]) -> R:
        """Await a Redis call with the command timeout, normalizing errors."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.command_timeout)
        except asyncio.TimeoutError as e:
            self.stats.errors += 1
            raise CacheBackendError(operation, f"timed out after {self.command_timeout}s") from e
        except (RedisError, OSError) as e:
            self.stats.errors += 1
            raise CacheBackendError(operation, str(e)) from e

    async def get(self, key: str) -> bytes | None:
        value = await self._run("get", self.client.get(self._key(key)))
        self.stats.record_lookups([value])
        return cast(bytes | None, value)

    async def set(self, key: str, value: bytes, ttl: int) -> None:
        await self._run("set", self.client.setex(self._key(key), ttl, value))
        self.stats.sets += 1

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        deleted = await self._run("delete", self.client.delete(*(self._key(k) for k in keys)))
        self.stats.deletes += int(deleted)
        return int(deleted)

    async def _scan_delete(self, match: str) -> int:
        deleted = 0
        batch: list[bytes | str] = []
        # SCAN avoids blocking Redis on large keyspaces
        async for key in self.client.scan_iter(match=match, count=SCAN_BATCH):
            batch.append(key)
            if len(batch) >= SCAN_BATCH:
                deleted += int(await self.client.delete(*batch))
                batch.clear()
        if batch:
            deleted += int(await self.client.delete(*batch))
        return deleted

    async def delete_pattern(self, pattern: str) -> int:
        deleted = await self._run("delete_pattern", self._scan_delete(self._key(pattern)))
        self.stats.deletes += deleted
        return deleted

    async def mget(self, keys: Sequence[str]) -> list[bytes | None]:
        if not keys:
            return []
        values = await self._run("mget", self.client.mget([self._key(k) for k in keys]))
        result = cast(list[bytes | None], list(values))
        self.stats.record_lookups(result)
        return result

    async def _pipeline_setex(self, entries: Sequence[tuple[str, bytes, int]]) -> None:
        async with self.client.pipeline(transaction=False) as pipe:
            for key, value, ttl in entries:
                pipe.setex(self._key(key), ttl, value)
            await pipe.execute()

    async def mset(self, entries: Sequence[tuple[str, bytes, int]]) -> None:
        if not entries:
            return
        await self._run("mset", self._pipeline_setex(entries))
        self.stats.sets += len(entries)

    async def _incr(self, key: str, ttl: int | None) -> int:
        value = int(await self.client.incr(key))
        if ttl and int(await self.client.ttl(key)) == -1:
            await self.client.expire(key, ttl)
        return value

    async def incr(self, key: str, ttl: int | None = None) -> int:
        return await self._run("incr", self._incr(self._key(key), ttl))

    async def exists(self, key: str) -> bool:
        return bool(await self._run("exists", self.client.exists(self._key(key))))

    async def ttl(self, key: str) -> int:
        return int(await self._run("ttl", self.client.ttl(self._key(key))))

    async def ping(self) -> float:
        start = time.monotonic()
        await self._run("ping", cast(Awaitable[bool], self.client.ping()))
        return (time.monotonic() - start) * 1000

    async def flush(self) -> None:
        # Only this namespace; the Redis database may be shared
        await self.delete_pattern("*")

    async def close(self) -> None:
        await self.client.aclose()
