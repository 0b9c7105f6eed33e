"""SQLAlchemy base configuration."""

from sqlalchemy.ext.asyncio import (
    AsyncAttrs,
    AsyncEngine,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create async database engine.

    Args:
        database_url: Async connection string (asyncpg, or aiosqlite for local runs)
        echo: Enable SQL logging
    """
    if database_url.startswith("sqlite") and ":memory:" in database_url:
        # One shared connection, otherwise every session sees an empty database
        return create_async_engine(database_url, echo=echo, poolclass=StaticPool)
    return create_async_engine(database_url, echo=echo)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Create async session factory."""
    return async_sessionmaker(engine, expire_on_commit=False)
