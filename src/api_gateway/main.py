"""API Gateway service main application."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shared import __version__
from shared.config import APIGatewaySettings, GatewaySettings
from shared.observability import RequestTracingMiddleware, get_logger, setup_logging
from shared.responses import install_exception_handlers

from .api import health, proxy
from .routing import GatewayRouter, RouteTable

settings = APIGatewaySettings()
setup_logging(service_name="api-gateway")
logger = get_logger(__name__)


def build_http_client(gateway: GatewaySettings) -> httpx.AsyncClient:
    """HTTP client whose timeout bounds every upstream call."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(
            gateway.upstream_timeout_seconds,
            connect=gateway.upstream_connect_timeout_seconds,
        ),
        follow_redirects=False,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Handles startup and shutdown of shared resources.
    """
    logger.info("Starting API Gateway service", version=__version__)

    table = RouteTable.default(settings.services)
    app.state.gateway_router = GatewayRouter(
        table,
        build_http_client(settings.gateway),
        retry_idempotent=settings.gateway.retry_idempotent,
    )

    logger.info(
        "API Gateway ready",
        routes={route.prefix: route.upstream for route in table},
    )

    yield

    # Cleanup
    logger.info("Shutting down API Gateway service")
    await app.state.gateway_router.client.aclose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Healthcare Platform - API Gateway",
        description="Single entry point routing requests to the platform services",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials="*" not in settings.cors_allowed_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Outermost: binds request id for every log line below
    app.add_middleware(RequestTracingMiddleware)

    install_exception_handlers(app)

    # Health first; the proxy route catches everything else
    app.include_router(health.router, tags=["Health"])
    app.include_router(proxy.router, tags=["Proxy"])

    return app


app = create_app()
