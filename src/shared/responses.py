"""Uniform JSON response shapes and FastAPI exception handlers.

Success: ``{"status": "success", "data": {...}}``
Failure: ``{"status": "error", "error": CODE, "message": text}``
"""

from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from shared.errors import AuthenticationError, AuthorizationError, ServiceError
from shared.observability import get_logger

logger = get_logger(__name__)


def success(data: dict[str, Any]) -> dict[str, Any]:
    """Wrap a payload in the success envelope."""
    return {"status": "success", "data": data}


def error_body(error: str, message: str, **extra: Any) -> dict[str, Any]:
    """Build the failure envelope."""
    return {"status": "error", "error": error, "message": message, **extra}


def error_response(exc: ServiceError) -> JSONResponse:
    """Render a taxonomy error as a JSON response."""
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.error_code, exc.message),
        headers=headers,
    )


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Render taxonomy errors.

    Authentication and authorization failures are logged with their
    server-side context but rendered with the generic message only.
    """
    if isinstance(exc, (AuthenticationError, AuthorizationError)):
        logger.warning(
            "Request denied",
            http_path=request.url.path,
            http_status=exc.status_code,
            reason=type(exc).__name__,
            **exc.context,
        )
    elif exc.status_code >= 500:
        logger.error(
            "Request failed",
            http_path=request.url.path,
            error_code=exc.error_code,
            **exc.context,
        )
    return error_response(exc)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Sanitized 500: the traceback stays in the server log."""
    logger.exception("Unhandled error", http_path=request.url.path, error_type=type(exc).__name__)
    return JSONResponse(
        status_code=500,
        content=error_body("INTERNAL_ERROR", "Internal server error"),
    )


def install_exception_handlers(app: FastAPI) -> None:
    """Register the error envelope on an application."""
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
