"""Access logging middleware using structlog with OTEL trace correlation."""

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class AccessLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log one structured line per HTTP request.

    A request id (taken from ``X-Request-ID`` or generated) is bound to the
    structlog context for the duration of the request, so service logs such
    as ``pair_query_failed`` can be tied back to the request that caused
    them. The id is echoed in the response headers.

    Log fields:
        - method, path, status_code
        - duration_ms: Request duration in milliseconds
        - request_id
        - trace_id/span_id: Added by the OTEL processor
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """Process request and log access information."""
        start_time = time.perf_counter()
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex

        with structlog.contextvars.bound_contextvars(request_id=request_id):
            response = await call_next(request)
            duration_ms = round((time.perf_counter() - start_time) * 1000, 2)

            log = logger.warning if response.status_code >= 500 else logger.info  # noqa: PLR2004
            log(
                "http_request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=duration_ms,
            )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
