"""FastAPI dependencies.

The PerformanceContext lives on app.state; each request that needs batch
loading gets a fresh RequestLoaders bundle from request_loaders and passes
it down explicitly.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from enterprise_perf.context import PerformanceContext
from enterprise_perf.loaders.entities import RequestLoaders


def get_context(request: Request) -> PerformanceContext:
    context: PerformanceContext | None = getattr(request.app.state, "perf", None)
    if context is None:
        raise RuntimeError("PerformanceContext not attached to app.state.perf")
    return context


def request_loaders(
    context: Annotated[PerformanceContext, Depends(get_context)],
) -> RequestLoaders:
    """New loader bundle for the current request."""
    return context.request_loaders()


ContextDep = Annotated[PerformanceContext, Depends(get_context)]
LoadersDep = Annotated[RequestLoaders, Depends(request_loaders)]
