"""Structured logging configuration.

Features:
- JSON and text format support (LOG_FORMAT)
- Request ID and user ID correlation through context variables
- Service context injection

Credentials, request bodies and response bodies are never passed to the
logger; callers log identifiers and outcomes only.
"""

import logging
import re
import sys
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from shared.config import LogFormat, LogLevel, get_settings

# Context variables for request tracking
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)


def add_service_context(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Add service context to log events."""
    settings = get_settings()
    event_dict["service"] = settings.app_name
    event_dict["environment"] = settings.environment.value
    return event_dict


def add_request_context(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Add request context from context variables."""
    if request_id := request_id_var.get():
        event_dict.setdefault("request_id", request_id)
    if user_id := user_id_var.get():
        event_dict.setdefault("user_id", user_id)
    return event_dict


REDACTED = "[REDACTED]"

_SENSITIVE_KEYS = frozenset(
    {"authorization", "token", "access_token", "credential", "password", "secret", "jwt"}
)
_BEARER_RE = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9\-._~+/]+=*")


def redact_credentials(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Mask credential-bearing fields and inline bearer tokens."""
    for key, value in event_dict.items():
        if key.lower() in _SENSITIVE_KEYS and value is not None:
            event_dict[key] = REDACTED
        elif isinstance(value, str):
            event_dict[key] = _BEARER_RE.sub(f"Bearer {REDACTED}", value)
    return event_dict


def add_timestamp(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Add ISO 8601 timestamp."""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def setup_logging(
    service_name: str | None = None,
    log_level: LogLevel | None = None,
    log_format: LogFormat | None = None,
) -> None:
    """Configure structured logging for the application.

    Args:
        service_name: Logger name bound to the service start-up event
        log_level: Override log level (defaults to settings.log_level)
        log_format: Override log format (defaults to settings.log_format)
    """
    settings = get_settings()

    level = LogLevel(log_level or settings.log_level)
    fmt = LogFormat(log_format or settings.log_format)

    logging.basicConfig(
        level=getattr(logging, level.value),
        stream=sys.stdout,
        format="%(message)s",
    )

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_timestamp,
        add_service_context,
        add_request_context,
        redact_credentials,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if fmt == LogFormat.JSON:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            ),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Suppress noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    if service_name:
        get_logger(service_name).debug("Logging configured", log_level=level.value)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


class RequestContextManager:
    """Context manager for request-scoped logging context.

    Usage:
        with RequestContextManager(request_id="abc123"):
            logger.info("Proxying request")  # Includes request_id
    """

    def __init__(
        self,
        request_id: str | None = None,
        user_id: str | None = None,
    ):
        self.request_id = request_id
        self.user_id = user_id
        self._tokens: list[tuple[ContextVar[str | None], Token[str | None]]] = []

    def __enter__(self) -> "RequestContextManager":
        if self.request_id:
            self._tokens.append((request_id_var, request_id_var.set(self.request_id)))
        if self.user_id:
            self._tokens.append((user_id_var, user_id_var.set(self.user_id)))
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()

    async def __aenter__(self) -> "RequestContextManager":
        return self.__enter__()

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)


def log_request_start(
    logger: structlog.stdlib.BoundLogger,
    method: str,
    path: str,
    client_ip: str | None = None,
) -> None:
    """Log HTTP request start."""
    logger.debug(
        "Request started",
        http_method=method,
        http_path=path,
        client_ip=client_ip,
    )


def log_request_end(
    logger: structlog.stdlib.BoundLogger,
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
) -> None:
    """Log HTTP request completion."""
    log_level = "info" if status_code < 400 else "warning" if status_code < 500 else "error"
    getattr(logger, log_level)(
        "Request completed",
        http_method=method,
        http_path=path,
        http_status=status_code,
        duration_ms=round(duration_ms, 2),
    )


def log_upstream_call(
    logger: structlog.stdlib.BoundLogger,
    upstream: str,
    method: str,
    path: str,
    duration_ms: float,
    status_code: int | None = None,
    error: str | None = None,
    attempt: int = 1,
) -> None:
    """Log completion of one proxied upstream call."""
    log_data: dict[str, Any] = {
        "upstream": upstream,
        "http_method": method,
        "upstream_path": path,
        "duration_ms": round(duration_ms, 2),
        "attempt": attempt,
    }
    if status_code is not None:
        log_data["http_status"] = status_code
    if error:
        log_data["error"] = error
        logger.warning("Upstream call failed", **log_data)
    else:
        logger.debug("Upstream call completed", **log_data)
