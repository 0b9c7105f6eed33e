"""Health check endpoints."""

from __future__ import annotations

import time

from fastapi import APIRouter, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from shared.observability import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.get(
    "/health",
    summary="Health check",
    description="Liveness probe.",
)
async def health():
    return {"status": "ok", "timestamp": int(time.time())}


@router.get(
    "/ready",
    summary="Readiness check",
    description="Check if service is ready to receive traffic.",
)
async def ready(request: Request):
    """Verifies the database and, when configured, Redis."""
    checks = {"database": False}

    try:
        async with request.app.state.session_factory() as session:
            await session.execute(text("SELECT 1"))
            checks["database"] = True
    except SQLAlchemyError as e:
        logger.warning("Database readiness check failed", error=str(e))

    redis_client = getattr(request.app.state, "redis", None)
    if redis_client is not None:
        health_result = await redis_client.health_check()
        checks["redis"] = health_result.get("status") == "healthy"

    return {
        "status": "ready" if all(checks.values()) else "not_ready",
        "checks": checks,
    }
