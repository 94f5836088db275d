"""Global pytest configuration and fixtures.

Provides a manual clock, an in-memory cache backend and the read-through
cache built on it, plus row factories for the organization/clinic/
assignment collections used across the suite.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from enterprise_perf.cache.backend import MemoryCacheBackend
from enterprise_perf.cache.read_through import ReadThroughCache
from enterprise_perf.config import Settings
from enterprise_perf.observability.metrics import PerfMetrics
from enterprise_perf.persistence.memory import InMemoryStore

BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


class ManualClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_assignments(count: int, ties: int = 1) -> list[dict[str, Any]]:
    """Assignment rows; every `ties` consecutive rows share created_at."""
    return [
        {
            "id": f"a{i:04d}",
            "provider_id": f"p{i % 3}",
            "clinic_id": f"c{i % 4}",
            "is_active": i % 5 != 0,
            "created_at": BASE_TIME + timedelta(minutes=i // ties),
        }
        for i in range(count)
    ]


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def backend(clock: ManualClock) -> MemoryCacheBackend:
    return MemoryCacheBackend(clock=clock)


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def metrics() -> PerfMetrics:
    return PerfMetrics()


@pytest.fixture
def cache(
    backend: MemoryCacheBackend, settings: Settings, metrics: PerfMetrics
) -> ReadThroughCache:
    return ReadThroughCache.from_settings(backend, settings, metrics)


@pytest.fixture
def organizations() -> InMemoryStore:
    return InMemoryStore(
        [
            {"id": "o1", "name": "Northside Health"},
            {"id": "o2", "name": "Lakeview Group"},
        ]
    )


@pytest.fixture
def clinics() -> InMemoryStore:
    return InMemoryStore(
        [
            {"id": "c1", "organization_id": "o1", "name": "North Clinic"},
            {"id": "c2", "organization_id": "o1", "name": "East Clinic"},
            {"id": "c3", "organization_id": "o2", "name": "Lake Clinic"},
        ]
    )


@pytest.fixture
def assignments() -> InMemoryStore:
    return InMemoryStore(
        [
            {"id": "s1", "provider_id": "p1", "clinic_id": "c1", "is_active": True},
            {"id": "s2", "provider_id": "p1", "clinic_id": "c2", "is_active": True},
            {"id": "s3", "provider_id": "p2", "clinic_id": "c1", "is_active": True},
            {"id": "s4", "provider_id": "p2", "clinic_id": "c3", "is_active": False},
        ]
    )


@pytest.fixture
def assignment_rows():
    """Factory for assignment rows: assignment_rows(count, ties=1)."""
    return make_assignments
