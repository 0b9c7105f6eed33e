"""Common response types used across all services."""

from typing import Any

from pydantic import Field

from .base import HealthcareBaseModel


class ErrorResponse(HealthcareBaseModel):
    """Standard error response format."""

    status: str = Field(default="error")
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error message")


class DataResponse(HealthcareBaseModel):
    """Standard success envelope."""

    status: str = Field(default="success")
    data: dict[str, Any]


# OpenAPI descriptions for the denial responses shared by protected routes
AUTH_RESPONSES: dict[int | str, dict[str, Any]] = {
    401: {"model": ErrorResponse, "description": "Missing, invalid or expired credential"},
    403: {"model": ErrorResponse, "description": "Insufficient permissions"},
}
