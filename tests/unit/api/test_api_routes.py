"""Tests for the HTTP surface: paging parameters, errors and health."""

from typing import Annotated, Any
from unittest.mock import AsyncMock

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient

from enterprise_perf.api.app import create_app
from enterprise_perf.api.deps import ContextDep, LoadersDep
from enterprise_perf.api.pagination import page_request, parse_fields
from enterprise_perf.context import PerformanceContext
from enterprise_perf.errors import CacheBackendError
from enterprise_perf.pagination.models import PageRequest
from enterprise_perf.persistence.memory import InMemoryStore


@pytest.fixture
def perf(settings, clinics, assignment_rows) -> PerformanceContext:
    stores = {"clinic": clinics, "assignment": InMemoryStore(assignment_rows(45))}
    return PerformanceContext.in_memory(settings, stores)


@pytest.fixture
def client(perf: PerformanceContext):
    app = create_app(perf, configure_logs=False)

    @app.get("/assignments")
    async def list_assignments(
        request: Annotated[PageRequest, Depends(page_request)],
        context: ContextDep,
    ) -> dict[str, Any]:
        page = await context.paginate("assignment", request)
        return page.to_response()

    @app.get("/clinics/{clinic_id}")
    async def get_clinic(clinic_id: str, loaders: LoadersDep) -> dict[str, Any]:
        clinic = await loaders.clinic_by_id.load(clinic_id)
        return clinic or {}

    with TestClient(app) as test_client:
        yield test_client


class TestPagingParameters:
    """Tests for paginated endpoints."""

    def test_offset_page(self, client: TestClient) -> None:
        response = client.get("/assignments", params={"limit": 20, "offset": 40})

        assert response.status_code == 200
        body = response.json()
        assert len(body["data"]) == 5
        assert body["meta"]["total"] == 45
        assert body["meta"]["page"] == 3
        assert body["meta"]["hasNextPage"] is False

    def test_cursor_pages(self, client: TestClient) -> None:
        first = client.get("/assignments", params={"mode": "cursor", "limit": 30}).json()
        second = client.get(
            "/assignments", params={"cursor": first["meta"]["nextCursor"], "limit": 30}
        ).json()

        assert first["meta"]["hasMore"] is True
        assert second["meta"] == {"nextCursor": None, "hasMore": False, "limit": 30}
        ids = [row["id"] for row in first["data"] + second["data"]]
        assert len(set(ids)) == 45

    def test_fields_parameter(self, client: TestClient) -> None:
        body = client.get("/assignments", params={"fields": "clinic_id, provider_id"}).json()
        assert set(body["data"][0]) == {"clinic_id", "provider_id"}

    def test_parse_fields(self) -> None:
        assert parse_fields(" a, ,b ") == ["a", "b"]
        assert parse_fields("") is None
        assert parse_fields(" , ") is None


class TestErrorResponses:
    """Invalid paging input is answered with 400 and a message."""

    @pytest.mark.parametrize(
        ("params", "code"),
        [
            ({"limit": 1000}, "InvalidLimit"),
            ({"limit": 0}, "InvalidLimit"),
            ({"offset": -5}, "InvalidOffset"),
            ({"offset": 5, "cursor": "abc"}, "InvalidOffset"),
            ({"cursor": "garbage!!"}, "InvalidCursor"),
        ],
    )
    def test_bad_request(self, client: TestClient, params: dict, code: str) -> None:
        response = client.get("/assignments", params=params)

        assert response.status_code == 400
        message = response.json()["messages"][0]
        assert message["code"] == code
        assert message["messageType"] == "Error"
        assert message["timestamp"]


class TestLoadersDependency:
    """Each request gets its own loader bundle."""

    def test_loader_resolves(self, client: TestClient) -> None:
        assert client.get("/clinics/c2").json()["name"] == "East Clinic"
        assert client.get("/clinics/none").json() == {}


class TestHealthEndpoints:
    """Tests for cache health routes."""

    def test_cache_health_ok(self, client: TestClient) -> None:
        response = client.get("/health/cache")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_cache_health_degraded(self, client: TestClient, perf: PerformanceContext) -> None:
        perf.backend.ping = AsyncMock(side_effect=CacheBackendError("ping", "refused"))

        response = client.get("/health/cache")

        assert response.status_code == 503
        assert response.json()["status"] == "degraded"

    def test_cache_stats(self, client: TestClient) -> None:
        client.get("/assignments")
        client.get("/assignments")

        stats = client.get("/health/cache/stats").json()

        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["inflight"] == 0

    def test_metrics(self, client: TestClient) -> None:
        client.get("/assignments")

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "enterprise_cache_misses_total" in response.text

    def test_request_id_echoed(self, client: TestClient) -> None:
        response = client.get("/health/cache", headers={"x-request-id": "req-123"})
        assert response.headers["x-request-id"] == "req-123"
