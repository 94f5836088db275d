"""Cache backend interface.

Defines the key-value contract the read-through cache is built on, the
hit/miss statistics every backend keeps, and an in-process implementation
used for development and deterministic tests.

Backends raise CacheBackendError on failure; they never decide whether a
failure is fatal.
"""

from __future__ import annotations

import fnmatch
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import asdict, dataclass
from typing import Any

from enterprise_perf.errors import CacheBackendError


@dataclass
class CacheStats:
    """Running counters for a cache backend."""

    hits: int = 0
    misses: int = 0
    sets: int = 0
    deletes: int = 0
    errors: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    def record_lookups(self, values: Sequence[bytes | None]) -> None:
        for value in values:
            if value is None:
                self.misses += 1
            else:
                self.hits += 1

    def reset(self) -> None:
        self.hits = self.misses = self.sets = self.deletes = self.errors = 0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["hit_rate"] = round(self.hit_rate, 4)
        return data


@dataclass(frozen=True)
class CacheEntry:
    """A value to store under a key with its TTL in seconds."""

    key: str
    value: Any
    ttl: int | None = None


class CacheBackend(ABC):
    """Abstract key-value store with expiry."""

    def __init__(self) -> None:
        self.stats = CacheStats()

    @abstractmethod
    async def get(self, key: str) -> bytes | None:
        """Get raw bytes for a key, or None when absent."""
        ...

    @abstractmethod
    async def set(self, key: str, value: bytes, ttl: int) -> None:
        """Store bytes under a key, overwriting unconditionally."""
        ...

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Delete keys and return how many existed."""
        ...

    @abstractmethod
    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern."""
        ...

    @abstractmethod
    async def mget(self, keys: Sequence[str]) -> list[bytes | None]:
        """Get raw bytes for many keys, aligned with the input."""
        ...

    @abstractmethod
    async def mset(self, entries: Sequence[tuple[str, bytes, int]]) -> None:
        """Store many (key, bytes, ttl) triples."""
        ...

    @abstractmethod
    async def incr(self, key: str, ttl: int | None = None) -> int:
        """Increment a counter, applying ttl when the counter has none."""
        ...

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check whether a key is present."""
        ...

    @abstractmethod
    async def ttl(self, key: str) -> int:
        """Remaining TTL in seconds (-1 no expiry, -2 missing)."""
        ...

    @abstractmethod
    async def ping(self) -> float:
        """Round-trip the backend and return latency in milliseconds."""
        ...

    @abstractmethod
    async def flush(self) -> None:
        """Remove every key in this backend's namespace."""
        ...

    async def close(self) -> None:
        """Release connections."""
        return None


class MemoryCacheBackend(CacheBackend):
    """In-process backend with per-key expiry.

    The clock is injectable so TTL behaviour can be tested without sleeping.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        super().__init__()
        self._clock = clock
        self._data: dict[str, tuple[bytes, float | None]] = {}

    def _live(self, key: str) -> bytes | None:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    def _expiry(self, ttl: int | None) -> float | None:
        return self._clock() + ttl if ttl and ttl > 0 else None

    async def get(self, key: str) -> bytes | None:
        value = self._live(key)
        self.stats.record_lookups([value])
        return value

    async def set(self, key: str, value: bytes, ttl: int) -> None:
        self._data[key] = (value, self._expiry(ttl))
        self.stats.sets += 1

    async def delete(self, *keys: str) -> int:
        deleted = 0
        for key in keys:
            if self._live(key) is not None:
                deleted += 1
            self._data.pop(key, None)
        self.stats.deletes += deleted
        return deleted

    async def delete_pattern(self, pattern: str) -> int:
        matched = [key for key in list(self._data) if fnmatch.fnmatchcase(key, pattern)]
        return await self.delete(*matched)

    async def mget(self, keys: Sequence[str]) -> list[bytes | None]:
        values = [self._live(key) for key in keys]
        self.stats.record_lookups(values)
        return values

    async def mset(self, entries: Sequence[tuple[str, bytes, int]]) -> None:
        for key, value, ttl in entries:
            self._data[key] = (value, self._expiry(ttl))
        self.stats.sets += len(entries)

    async def incr(self, key: str, ttl: int | None = None) -> int:
        item = self._live(key)
        try:
            current = int(item) if item is not None else 0
        except ValueError as e:
            raise CacheBackendError("incr", f"value at {key} is not an integer") from e
        expires_at = self._data[key][1] if item is not None else self._expiry(ttl)
        self._data[key] = (str(current + 1).encode(), expires_at)
        return current + 1

    async def exists(self, key: str) -> bool:
        return self._live(key) is not None

    async def ttl(self, key: str) -> int:
        if self._live(key) is None:
            return -2
        expires_at = self._data[key][1]
        if expires_at is None:
            return -1
        return max(0, int(expires_at - self._clock()))

    async def ping(self) -> float:
        return 0.0

    async def flush(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return sum(1 for key in list(self._data) if self._live(key) is not None)
