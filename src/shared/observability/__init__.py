"""Observability module for structured logging and request correlation."""

from .logging import (
    RequestContextManager,
    get_logger,
    log_request_end,
    log_request_start,
    log_upstream_call,
    request_id_var,
    setup_logging,
    user_id_var,
)
from .middleware import REQUEST_ID_HEADER, RequestTracingMiddleware, resolve_request_id

__all__ = [
    # Setup
    "setup_logging",
    "get_logger",
    # Context
    "RequestContextManager",
    "request_id_var",
    "user_id_var",
    # Logging helpers
    "log_request_start",
    "log_request_end",
    "log_upstream_call",
    # Middleware
    "REQUEST_ID_HEADER",
    "RequestTracingMiddleware",
    "resolve_request_id",
]
