"""Request-scoped batch loader for N+1 query prevention.

Each load(key) joins the pending batch of its loader. The batch is
dispatched when no new key has arrived for `delay` seconds, or as soon as
it holds `max_batch_size` keys. Dispatch calls the load function once with
the distinct keys in first-seen order and resolves every caller with the
value for its own key.

The load function returns either a sequence aligned with its input or a
mapping keyed by the input keys. Absent keys resolve to None (or [] for
one-to-many loaders). An Exception instance in place of a value marks a
per-key failure; that key resolves as not found and a warning is logged.
If the load function itself raises, every caller in the batch receives
the same exception.

Loaders hold per-request state only. Create a fresh loader for each
request and drop it afterwards.

Example:
    loader = BatchLoader(lambda ids: store.find_many_by_ids(ids), name="clinic")
    a, b = await asyncio.gather(loader.load("c1"), loader.load("c2"))  # one fetch
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable, Mapping, Sequence
from typing import Any, Generic, TypeVar

from enterprise_perf.errors import BatchLoadError
from enterprise_perf.observability.metrics import PerfMetrics

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

DEFAULT_DELAY = 0.010
DEFAULT_MAX_BATCH_SIZE = 100

LoadFn = Callable[[list[K]], Awaitable[Sequence[Any] | Mapping[K, Any]]]

_MISSING = object()


class BatchLoader(Generic[K, V]):
    """Coalesces individual loads into batched fetches."""

    def __init__(
        self,
        load_fn: LoadFn[K],
        *,
        name: str = "loader",
        delay: float = DEFAULT_DELAY,
        max_batch_size: int = DEFAULT_MAX_BATCH_SIZE,
        many: bool = False,
        cache: bool = True,
        metrics: PerfMetrics | None = None,
    ):
        if max_batch_size < 1:
            raise ValueError("max_batch_size must be at least 1")
        if delay < 0:
            raise ValueError("delay must not be negative")

        self.load_fn = load_fn
        self.name = name
        self.delay = delay
        self.max_batch_size = max_batch_size
        self.many = many
        self.cache = cache
        self.metrics = metrics
        self.dispatch_count = 0

        self._pending: list[tuple[K, asyncio.Future[V]]] = []
        self._timer: asyncio.TimerHandle | None = None
        self._memo: dict[K, asyncio.Future[V]] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    def _not_found(self) -> Any:
        return [] if self.many else None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def load(self, key: K) -> V:
        """Load one key through the current batch."""
        if self.cache and key in self._memo:
            return await asyncio.shield(self._memo[key])

        loop = asyncio.get_running_loop()
        future: asyncio.Future[V] = loop.create_future()
        if self.cache:
            self._memo[key] = future
        self._pending.append((key, future))

        if len(self._pending) >= self.max_batch_size:
            self.dispatch()
        else:
            self._arm_timer(loop)

        return await asyncio.shield(future)

    async def load_many(self, keys: Sequence[K]) -> list[V]:
        """Load keys and return values in the same order."""
        if not keys:
            return []
        return list(await asyncio.gather(*(self.load(key) for key in keys)))

    def prime(self, key: K, value: V) -> None:
        """Seed the per-request memo so a later load skips the fetch."""
        if key in self._memo:
            return
        future: asyncio.Future[V] = asyncio.get_running_loop().create_future()
        future.set_result(value)
        self._memo[key] = future

    def clear(self, key: K) -> None:
        """Forget a memoized key, e.g. after this request wrote it."""
        self._memo.pop(key, None)

    def clear_all(self) -> None:
        self._memo.clear()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def dispatch(self) -> None:
        """Close the current batch and fetch it now."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        batch, self._pending = self._pending, []
        if not batch:
            return

        task = asyncio.ensure_future(self._run_batch(batch))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # -------------------------------------------------------------------------
    # Batching internals
    # -------------------------------------------------------------------------

    def _arm_timer(self, loop: asyncio.AbstractEventLoop) -> None:
        # Each enqueue restarts the window; max_batch_size bounds the wait
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(self.delay, self.dispatch)

    def _align(self, keys: list[K], result: Sequence[Any] | Mapping[K, Any]) -> dict[K, Any]:
        if isinstance(result, Mapping):
            raw = {key: result.get(key, _MISSING) for key in keys}
        else:
            values = list(result)
            if len(values) != len(keys):
                raise BatchLoadError(
                    f"{self.name}: load function returned {len(values)} values "
                    f"for {len(keys)} keys"
                )
            raw = dict(zip(keys, values, strict=True))

        aligned: dict[K, Any] = {}
        for key, value in raw.items():
            if isinstance(value, Exception):
                logger.warning(f"{self.name}: failed to load key {key!r}: {value}")
                value = _MISSING
            aligned[key] = _MISSING if value is None else value
        return aligned

    def _fail(self, batch: list[tuple[K, asyncio.Future[V]]], error: BaseException) -> None:
        for key, future in batch:
            if self._memo.get(key) is future:
                del self._memo[key]
            if not future.done():
                future.set_exception(error)

    async def _run_batch(self, batch: list[tuple[K, asyncio.Future[V]]]) -> None:
        keys = list(dict.fromkeys(key for key, _ in batch))
        self.dispatch_count += 1
        if self.metrics is not None:
            self.metrics.batch_dispatched(self.name, len(keys))
        logger.debug(f"{self.name}: dispatching {len(keys)} keys ({len(batch)} loads)")

        try:
            values = self._align(keys, await self.load_fn(keys))
        except asyncio.CancelledError:
            for _, future in batch:
                future.cancel()
            raise
        except Exception as e:
            self._fail(batch, e)
            return

        for key, future in batch:
            if future.done():
                continue
            value = values[key]
            future.set_result(self._not_found() if value is _MISSING else value)
