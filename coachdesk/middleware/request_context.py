"""
RequestContext Middleware - request id for every request.

The id is stored on request.state, bound into the structlog context so every
log line of the request carries it, and echoed back as X-Request-ID. An
incoming X-Request-ID (e.g. from the scheduler calling an endpoint) is kept.
"""

import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from coachdesk.infrastructure.observability.logging import bind_request_context, get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        bind_request_context(request_id=request_id, path=request.url.path)

        start_time = time.time()
        response = await call_next(request)
        duration_ms = (time.time() - start_time) * 1000

        logger.info(
            "HTTP request completed",
            method=request.method,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
