"""Tests for the request-scoped batch loader."""

import asyncio
import logging
from unittest.mock import AsyncMock

import pytest

from enterprise_perf.errors import BatchLoadError
from enterprise_perf.loaders.batch import BatchLoader
from enterprise_perf.observability.metrics import PerfMetrics


def recording_loader(**kwargs) -> tuple[BatchLoader, list[list[str]]]:
    """Loader that echoes keys upper-cased and records each batch."""
    batches: list[list[str]] = []

    async def load_fn(keys: list[str]) -> list[str]:
        batches.append(list(keys))
        return [key.upper() for key in keys]

    return BatchLoader(load_fn, **kwargs), batches


class TestBatching:
    """Tests for coalescing loads into batches."""

    @pytest.mark.asyncio
    async def test_concurrent_loads_share_one_fetch(self) -> None:
        """Loads issued together are fetched in one call."""
        loader, batches = recording_loader()

        results = await asyncio.gather(loader.load("a"), loader.load("b"), loader.load("c"))

        assert results == ["A", "B", "C"]
        assert batches == [["a", "b", "c"]]
        assert loader.dispatch_count == 1

    @pytest.mark.asyncio
    async def test_duplicates_fetched_once(self) -> None:
        """Each distinct key is fetched once and duplicates share the result."""
        loader, batches = recording_loader(cache=False)

        results = await loader.load_many(["b", "a", "b", "c", "a"])

        assert results == ["B", "A", "B", "C", "A"]
        assert batches == [["b", "a", "c"]]

    @pytest.mark.asyncio
    async def test_results_follow_key_order_for_mappings(self) -> None:
        """A mapping result is realigned to the requested keys."""

        async def load_fn(keys: list[str]) -> dict[str, int]:
            return {key: len(key) for key in reversed(keys)}

        loader = BatchLoader(load_fn)
        assert await loader.load_many(["ccc", "a", "bb"]) == [3, 1, 2]

    @pytest.mark.asyncio
    async def test_missing_keys_resolve_to_none(self) -> None:
        loader = BatchLoader(AsyncMock(return_value={"a": 1}))
        assert await loader.load_many(["a", "b"]) == [1, None]

    @pytest.mark.asyncio
    async def test_many_loader_missing_keys_resolve_to_empty_list(self) -> None:
        loader = BatchLoader(AsyncMock(return_value={"a": [1]}), many=True)
        assert await loader.load_many(["a", "b"]) == [[1], []]

    @pytest.mark.asyncio
    async def test_max_batch_size_dispatches_immediately(self) -> None:
        """A full batch does not wait for the window."""
        loader, batches = recording_loader(max_batch_size=2, delay=10.0)

        results = await asyncio.wait_for(
            asyncio.gather(loader.load("a"), loader.load("b")), timeout=1.0
        )

        assert results == ["A", "B"]
        assert batches == [["a", "b"]]

    @pytest.mark.asyncio
    async def test_batches_split_at_max_size(self) -> None:
        loader, batches = recording_loader(max_batch_size=2)

        await loader.load_many(["a", "b", "c", "d", "e"])

        assert batches == [["a", "b"], ["c", "d"], ["e"]]

    @pytest.mark.asyncio
    async def test_load_after_dispatch_starts_new_batch(self) -> None:
        loader, batches = recording_loader()

        await loader.load("a")
        await loader.load("b")

        assert batches == [["a"], ["b"]]

    @pytest.mark.asyncio
    async def test_window_restarts_on_each_enqueue(self) -> None:
        """Keys arriving within the window join the pending batch."""
        loader, batches = recording_loader(delay=0.1)

        first = asyncio.create_task(loader.load("a"))
        await asyncio.sleep(0.06)
        second = asyncio.create_task(loader.load("b"))
        await asyncio.sleep(0.06)

        assert batches == []
        assert await first == "A"
        assert await second == "B"
        assert batches == [["a", "b"]]

    @pytest.mark.asyncio
    async def test_load_many_empty(self) -> None:
        load_fn = AsyncMock(return_value=[])
        loader = BatchLoader(load_fn)

        assert await loader.load_many([]) == []
        load_fn.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_metrics_observe_batch_size(self) -> None:
        metrics = PerfMetrics()
        loader, _ = recording_loader(name="clinic_by_id", metrics=metrics)

        await loader.load_many(["a", "b", "a"])

        count = metrics.registry.get_sample_value(
            "enterprise_batch_load_size_count", {"loader": "clinic_by_id"}
        )
        total = metrics.registry.get_sample_value(
            "enterprise_batch_load_size_sum", {"loader": "clinic_by_id"}
        )
        assert count == 1.0
        assert total == 2.0

    def test_invalid_configuration(self) -> None:
        with pytest.raises(ValueError):
            BatchLoader(AsyncMock(), max_batch_size=0)
        with pytest.raises(ValueError):
            BatchLoader(AsyncMock(), delay=-1)


class TestMemo:
    """Tests for the per-request memo."""

    @pytest.mark.asyncio
    async def test_repeat_load_uses_memo(self) -> None:
        loader, batches = recording_loader()

        assert await loader.load("a") == "A"
        assert await loader.load("a") == "A"
        assert batches == [["a"]]

    @pytest.mark.asyncio
    async def test_prime_skips_fetch(self) -> None:
        loader, batches = recording_loader()
        loader.prime("a", "primed")

        assert await loader.load("a") == "primed"
        assert batches == []

    @pytest.mark.asyncio
    async def test_clear_forces_refetch(self) -> None:
        loader, batches = recording_loader()

        await loader.load("a")
        loader.clear("a")
        await loader.load("a")

        assert batches == [["a"], ["a"]]

    @pytest.mark.asyncio
    async def test_clear_all(self) -> None:
        loader, batches = recording_loader()

        await loader.load_many(["a", "b"])
        loader.clear_all()
        await loader.load_many(["a", "b"])

        assert len(batches) == 2


class TestFailures:
    """Tests for batch and per-key failures."""

    @pytest.mark.asyncio
    async def test_batch_failure_fails_every_caller(self) -> None:
        """Every load in a failed batch receives the same error."""
        error = RuntimeError("store down")
        loader = BatchLoader(AsyncMock(side_effect=error))

        results = await asyncio.gather(
            loader.load("a"), loader.load("b"), return_exceptions=True
        )

        assert results == [error, error]

    @pytest.mark.asyncio
    async def test_failed_keys_are_not_memoized(self) -> None:
        """A later load retries after a failed batch."""
        load_fn = AsyncMock(side_effect=[RuntimeError("store down"), ["A"]])
        loader = BatchLoader(load_fn)

        with pytest.raises(RuntimeError):
            await loader.load("a")
        assert await loader.load("a") == "A"

    @pytest.mark.asyncio
    async def test_per_key_exception_resolves_not_found(self, caplog) -> None:
        """Per-key failures resolve as not found and are logged."""
        loader = BatchLoader(AsyncMock(return_value=["A", ValueError("bad row")]), name="clinic")

        with caplog.at_level(logging.WARNING, logger="enterprise_perf.loaders.batch"):
            results = await loader.load_many(["a", "b"])

        assert results == ["A", None]
        assert "bad row" in caplog.text

    @pytest.mark.asyncio
    async def test_length_mismatch_is_an_error(self) -> None:
        loader = BatchLoader(AsyncMock(return_value=["A"]))

        with pytest.raises(BatchLoadError):
            await loader.load_many(["a", "b"])

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_cancel_batch(self) -> None:
        loader, batches = recording_loader(delay=0.01)

        first = asyncio.create_task(loader.load("a"))
        second = asyncio.create_task(loader.load("a"))
        await asyncio.sleep(0)
        first.cancel()

        assert await second == "A"
        assert batches == [["a"]]
