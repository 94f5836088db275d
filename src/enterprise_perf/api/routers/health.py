"""Cache health endpoints.

- /health/cache       - cache backend round-trip (200 when ok, 503 when degraded)
- /health/cache/stats - hit/miss counters and hit rate
- /metrics            - Prometheus exposition of the context's registry
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from starlette.responses import Response

from enterprise_perf.api.deps import ContextDep
from enterprise_perf.cache.read_through import HealthStatus

router = APIRouter(tags=["health"])


@router.get("/health/cache")
async def cache_health(perf: ContextDep) -> JSONResponse:
    """Cache backend health.

    Never raises: a slow or unreachable backend reports "degraded" within
    the configured health timeout.
    """
    health = await perf.cache.health_check()
    status_code = 200 if health.status is HealthStatus.OK else 503
    return JSONResponse(content=health.to_dict(), status_code=status_code)


@router.get("/health/cache/stats")
async def cache_stats(perf: ContextDep) -> dict[str, Any]:
    return perf.cache.stats()


@router.get("/metrics", response_class=Response)
async def metrics(perf: ContextDep) -> Response:
    return Response(content=perf.metrics.render(), media_type="text/plain; version=0.0.4")
