"""Access logging for resource and service requests."""
import time
import uuid
from collections.abc import Awaitable, Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger()

HEALTH_PREFIX = "/api/v1/health/"

OPERATIONS = {
    "GET": "read",
    "HEAD": "read",
    "PUT": "create",
    "POST": "replace",
    "DELETE": "remove",
}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log one ``http_request`` line per request, health probes excepted.

    A request id is bound into the structlog context for the duration of
    the request, so executor and route logs carry it too. The line is
    written when response headers are ready; streamed bodies (archives,
    SSE) may still be in flight.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        path = request.url.path
        if path.startswith(HEALTH_PREFIX):
            return await call_next(request)

        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:12]
        start = time.perf_counter()
        with structlog.contextvars.bound_contextvars(request_id=request_id):
            response = await call_next(request)
            elapsed_ms = round((time.perf_counter() - start) * 1000, 2)

            log = logger.warning if response.status_code >= 400 else logger.info
            log(
                "http_request",
                method=request.method,
                operation=OPERATIONS.get(request.method, "other"),
                path=path,
                status=response.status_code,
                request_bytes=request.headers.get("content-length"),
                response_bytes=response.headers.get("content-length"),
                duration_ms=elapsed_ms,
                client=request.client.host if request.client else None,
            )

        response.headers["X-Request-ID"] = request_id
        return response
