"""Admin service FastAPI application.

The Admin service provides:
- RBAC administration: roles, permission grants, feature access, user assignments
- The RBAC audit log
- The session bootstrap endpoint (``/admin/me``) consumed by the UI guard
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shared import __version__
from shared.auth import AuthGate, TokenVerifier
from shared.config import AdminServiceSettings, CacheBackend
from shared.database import Base, create_engine, create_session_factory
from shared.errors import ConflictError
from shared.observability import RequestTracingMiddleware, get_logger, setup_logging
from shared.rbac import (
    BroadcastingPermissionCache,
    PatientAccessPolicy,
    RBACEngine,
    build_permission_cache,
    seed_rbac,
)
from shared.rbac.repositories import sqlalchemy_uow_factory
from shared.redis_client import RedisClient
from shared.responses import install_exception_handlers

from .api import audit, health, roles, users

settings = AdminServiceSettings()
setup_logging(service_name="admin-service")
logger = get_logger(__name__)


def uses_redis(service_settings: AdminServiceSettings) -> bool:
    """Redis backs the cache itself, or carries invalidations between workers."""
    rbac = service_settings.rbac
    return rbac.cache_backend == CacheBackend.REDIS or service_settings.workers > 1


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Handles startup and shutdown of:
    - Database connections and vocabulary seeding
    - Redis connections and the invalidation listener
    - RBAC engine, token verifier and auth gate
    """
    logger.info("Starting Admin service", version=__version__)

    # Initialize database
    engine = create_engine(settings.database.async_url, echo=settings.debug)
    session_factory = create_session_factory(engine)
    app.state.db_engine = engine
    app.state.session_factory = session_factory

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialized")

    uow_factory = sqlalchemy_uow_factory(session_factory)
    if settings.seed_on_startup:
        try:
            await seed_rbac(uow_factory, settings.bootstrap_super_admin_id)
        except ConflictError:
            # Another worker seeded concurrently; its transaction won
            logger.info("RBAC vocabulary seeded by another worker")

    # Initialize Redis
    redis_client: RedisClient | None = None
    if uses_redis(settings):
        redis_client = RedisClient(settings.redis.url)
        await redis_client.connect()
    app.state.redis = redis_client

    cache = build_permission_cache(settings, redis_client)
    listener: asyncio.Task | None = None
    if isinstance(cache, BroadcastingPermissionCache):
        await cache.start()
        listener = asyncio.create_task(cache.listen())

    rbac_engine = RBACEngine(
        uow_factory,
        cache,
        PatientAccessPolicy.from_settings(settings.rbac),
    )
    verifier = TokenVerifier(uow_factory, settings.jwt)
    app.state.rbac_engine = rbac_engine
    app.state.token_verifier = verifier
    app.state.auth_gate = AuthGate(verifier, rbac_engine)

    logger.info(
        "Admin service started successfully",
        cache=type(cache).__name__,
        cache_ttl_seconds=settings.rbac.cache_ttl_seconds,
    )

    yield

    # Shutdown
    logger.info("Shutting down Admin service")
    if listener is not None:
        listener.cancel()
        try:
            await listener
        except asyncio.CancelledError:
            pass
    await cache.close()
    if redis_client is not None:
        await redis_client.close()
    await engine.dispose()
    logger.info("Admin service shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Healthcare Platform - Admin Service",
        description="Dynamic RBAC administration and session bootstrap",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configured via API Gateway in production
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestTracingMiddleware)

    install_exception_handlers(app)

    # Include routers
    app.include_router(roles.router, tags=["Roles"])
    app.include_router(users.router, tags=["Users"])
    app.include_router(audit.router, tags=["Audit"])
    app.include_router(health.router, tags=["Health"])

    return app


app = create_app()
