"""Health check endpoints."""

from __future__ import annotations

import time

from fastapi import APIRouter, Request

router = APIRouter()

# Track service start time
_start_time = time.time()


@router.get(
    "/health",
    summary="Health check",
    description="Liveness probe; bypasses routing and authorization.",
)
async def health():
    return {"status": "ok", "timestamp": int(time.time())}


@router.get(
    "/ready",
    summary="Readiness check",
    description="Route table loaded and HTTP client open.",
)
async def ready(request: Request):
    gateway_router = getattr(request.app.state, "gateway_router", None)
    checks = {
        "routes": bool(gateway_router and len(gateway_router.table)),
        "http_client": bool(gateway_router and not gateway_router.client.is_closed),
    }
    return {
        "status": "ready" if all(checks.values()) else "not_ready",
        "checks": checks,
        "uptime_seconds": int(time.time() - _start_time),
    }
