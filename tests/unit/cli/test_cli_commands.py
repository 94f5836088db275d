"""Tests for the enterprise-perf CLI."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from typer.testing import CliRunner

from enterprise_perf.cache.backend import MemoryCacheBackend
from enterprise_perf.cli import app
from enterprise_perf.config import Settings
from enterprise_perf.context import PerformanceContext
from enterprise_perf.errors import CacheBackendError
from enterprise_perf.pagination.cursor import decode_cursor, encode_cursor

runner = CliRunner()


def seed(backend: MemoryCacheBackend, *keys: str) -> None:
    for key in keys:
        asyncio.run(backend.set(key, b"{}", 60))


def cached(backend: MemoryCacheBackend, key: str) -> bool:
    return asyncio.run(backend.exists(key))


@pytest.fixture
def backend(monkeypatch: pytest.MonkeyPatch) -> MemoryCacheBackend:
    """Route every CLI context to one shared in-memory backend."""
    shared = MemoryCacheBackend()

    def from_settings(settings=None, stores=None) -> PerformanceContext:
        return PerformanceContext(Settings(_env_file=None), shared, stores)

    monkeypatch.setattr(PerformanceContext, "from_settings", from_settings)
    return shared


class TestCacheCommands:
    """Tests for `enterprise-perf cache`."""

    def test_health_ok(self, backend: MemoryCacheBackend) -> None:
        result = runner.invoke(app, ["cache", "health"])

        assert result.exit_code == 0
        assert "MemoryCacheBackend" in result.output
        assert "ok" in result.output

    def test_health_degraded_exits_nonzero(self, backend: MemoryCacheBackend) -> None:
        backend.ping = AsyncMock(side_effect=CacheBackendError("ping", "connection refused"))

        result = runner.invoke(app, ["cache", "health"])

        assert result.exit_code == 1
        assert "degraded" in result.output

    def test_invalidate_entity(self, backend: MemoryCacheBackend) -> None:
        seed(backend, "clinic:c1", "clinic:c2")

        result = runner.invoke(app, ["cache", "invalidate", "clinic", "c1"])

        assert result.exit_code == 0
        assert "clinic:c1" in result.output
        assert not cached(backend, "clinic:c1")
        assert cached(backend, "clinic:c2")

    def test_invalidate_scoped(self, backend: MemoryCacheBackend) -> None:
        seed(backend, "organization:o1:clinics", "clinic:list:{}:all")

        result = runner.invoke(app, ["cache", "invalidate", "clinic", "c1", "--tenant", "o1"])

        assert result.exit_code == 0
        assert "scoped to organization o1" in result.output
        assert len(backend) == 0

    def test_invalidate_list(self, backend: MemoryCacheBackend) -> None:
        seed(
            backend,
            "assignment:list:{}:all",
            "assignment:list:{\"is_active\":true}:all",
            "assignment:a1",
        )

        result = runner.invoke(app, ["cache", "invalidate-list", "assignment"])

        assert result.exit_code == 0
        assert "2 assignment list page(s)" in result.output
        assert len(backend) == 1
        assert cached(backend, "assignment:a1")

    def test_flush_requires_confirmation(self, backend: MemoryCacheBackend) -> None:
        seed(backend, "clinic:c1")

        result = runner.invoke(app, ["cache", "flush"], input="n\n")

        assert result.exit_code == 1
        assert cached(backend, "clinic:c1")

    def test_flush(self, backend: MemoryCacheBackend) -> None:
        seed(backend, "clinic:c1")

        result = runner.invoke(app, ["cache", "flush", "--yes"])

        assert result.exit_code == 0
        assert len(backend) == 0

    def test_flush_failure(self, backend: MemoryCacheBackend) -> None:
        backend.flush = AsyncMock(side_effect=CacheBackendError("flush", "timed out"))

        result = runner.invoke(app, ["cache", "flush", "--yes"])

        assert result.exit_code == 1
        assert "Flush failed" in result.output


class TestCursorCommands:
    """Tests for `enterprise-perf cursor`."""

    def test_decode(self) -> None:
        created = datetime(2026, 1, 1, 12, 30, tzinfo=timezone.utc)
        token = encode_cursor(created, "a0042")

        result = runner.invoke(app, ["cursor", "decode", token])

        assert result.exit_code == 0
        assert "2026-01-01 12:30:00+00:00 (datetime)" in result.output
        assert "a0042" in result.output

    def test_decode_invalid(self) -> None:
        result = runner.invoke(app, ["cursor", "decode", "not-a-cursor"])

        assert result.exit_code == 1
        assert "Invalid cursor" in result.output

    def test_encode_datetime(self) -> None:
        result = runner.invoke(
            app, ["cursor", "encode", "2026-01-01T00:00:00+00:00", "a0001", "--datetime"]
        )

        assert result.exit_code == 0
        position = decode_cursor(result.output.strip())
        assert position.value == datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert position.id == "a0001"

    def test_encode_json_value(self) -> None:
        result = runner.invoke(app, ["cursor", "encode", "42", "a0001", "--json"])

        assert decode_cursor(result.output.strip()).value == 42

    def test_encode_bad_datetime(self) -> None:
        result = runner.invoke(app, ["cursor", "encode", "yesterday", "a0001", "--datetime"])
        assert result.exit_code != 0


class TestServeCommand:
    """Tests for `enterprise-perf serve`."""

    def test_runs_uvicorn_with_factory(self, monkeypatch: pytest.MonkeyPatch) -> None:
        import uvicorn

        run = MagicMock()
        monkeypatch.setattr(uvicorn, "run", run)

        result = runner.invoke(app, ["serve", "--port", "9000", "--reload", "--workers", "4"])

        assert result.exit_code == 0
        kwargs = run.call_args.kwargs
        assert kwargs["app"] == "enterprise_perf.api.app:create_default_app"
        assert kwargs["factory"] is True
        assert kwargs["port"] == 9000
        assert kwargs["workers"] == 1
