"""Request correlation middleware.

Sets the request and tenant ids in the logging context for the duration
of a request and echoes the request id back in x-request-id.
"""

from __future__ import annotations

import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from enterprise_perf.observability.logging import LogContext


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        values = {"request_id": request_id}
        tenant_id = request.headers.get("x-tenant-id")
        if tenant_id:
            values["tenant_id"] = tenant_id

        with LogContext(**values):
            request.state.request_id = request_id
            response = await call_next(request)

        response.headers["x-request-id"] = request_id
        return response
