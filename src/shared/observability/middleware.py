"""Request correlation middleware.

Reads or creates the ``x-request-id`` of every request, binds it into the
logging context for the duration of the request and echoes it on the
response. Upstream calls made while handling the request propagate it.
"""

from __future__ import annotations

import time
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from .logging import RequestContextManager, get_logger, log_request_end, log_request_start

logger = get_logger(__name__)

REQUEST_ID_HEADER = "x-request-id"

_MAX_REQUEST_ID_LENGTH = 128


def resolve_request_id(request: Request) -> str:
    """Incoming request id, or a fresh one when absent or oversized."""
    request_id = request.headers.get(REQUEST_ID_HEADER, "").strip()
    if request_id and len(request_id) <= _MAX_REQUEST_ID_LENGTH and request_id.isprintable():
        return request_id
    return uuid4().hex


class RequestTracingMiddleware(BaseHTTPMiddleware):
    """Bind request id, log request start and completion."""

    # Paths logged without start/end events
    SKIP_PATHS = {"/health", "/ready"}

    async def dispatch(self, request: Request, call_next):
        request_id = resolve_request_id(request)
        request.state.request_id = request_id
        path = request.url.path
        quiet = path in self.SKIP_PATHS

        with RequestContextManager(request_id=request_id):
            if not quiet:
                log_request_start(
                    logger,
                    request.method,
                    path,
                    client_ip=request.client.host if request.client else None,
                )
            start = time.perf_counter()
            response = await call_next(request)
            if not quiet:
                log_request_end(
                    logger,
                    request.method,
                    path,
                    response.status_code,
                    (time.perf_counter() - start) * 1000,
                )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
