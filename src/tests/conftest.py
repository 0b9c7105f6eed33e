"""Pytest configuration and shared fixtures."""

import os
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio

# Set test environment before importing settings
os.environ["ENV"] = "development"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["LOG_FORMAT"] = "text"
os.environ["JWT_SECRET_KEY"] = "test-signing-secret"
os.environ["RBAC_CACHE_BACKEND"] = "local"

from fakes import (  # noqa: E402
    CLINICAL_READ_ID,
    DOCTOR_ROLE_ID,
    DOCTOR_USER_ID,
    InMemoryStore,
    MutableClock,
    in_memory_uow_factory,
)

from shared.auth import AuthGate, Identity, TokenVerifier  # noqa: E402
from shared.config import JWTSettings  # noqa: E402
from shared.database import Base, create_engine, create_session_factory  # noqa: E402
from shared.rbac import LocalPermissionCache, RBACEngine  # noqa: E402
from shared.rbac.repositories import sqlalchemy_uow_factory  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# =============================================================================
# In-memory RBAC store
# =============================================================================


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def uow_factory(store: InMemoryStore):
    return in_memory_uow_factory(store)


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture
def cache() -> LocalPermissionCache:
    return LocalPermissionCache(ttl_seconds=30)


@pytest.fixture
def engine(uow_factory, cache: LocalPermissionCache, clock: MutableClock) -> RBACEngine:
    return RBACEngine(uow_factory, cache, clock=clock)


@pytest.fixture
def doctor_scenario(store: InMemoryStore) -> InMemoryStore:
    """Role 4 (doctor) holds permission 101 and is assigned to user 7."""
    store.add_user(DOCTOR_USER_ID, email="dr.house@clinic.test")
    store.add_role(DOCTOR_ROLE_ID, "doctor", is_system=True)
    store.add_permission(CLINICAL_READ_ID, "patients.clinical_read", resource="assigned")
    store.grant(DOCTOR_ROLE_ID, CLINICAL_READ_ID)
    store.assign(DOCTOR_USER_ID, DOCTOR_ROLE_ID)
    return store


# =============================================================================
# Credentials
# =============================================================================


@pytest.fixture
def jwt_settings() -> JWTSettings:
    return JWTSettings(secret_key="test-signing-secret", issuer="healthcare-app")


@pytest.fixture
def verifier(uow_factory, jwt_settings: JWTSettings) -> TokenVerifier:
    return TokenVerifier(uow_factory, jwt_settings)


@pytest.fixture
def auth_gate(verifier: TokenVerifier, engine: RBACEngine) -> AuthGate:
    return AuthGate(verifier, engine)


@pytest.fixture
def bearer(store: InMemoryStore, verifier: TokenVerifier):
    """Build an Authorization header for a user in the store."""

    def build(user_id: int) -> dict[str, str]:
        user = store.users[user_id]
        token = verifier.issue(Identity(user_id=user.id, email=user.email))
        return {"Authorization": f"Bearer {token}"}

    return build


# =============================================================================
# SQLite-backed store
# =============================================================================


@pytest_asyncio.fixture
async def db_engine() -> AsyncGenerator:
    engine = create_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def sql_uow_factory(session_factory):
    return sqlalchemy_uow_factory(session_factory)


# =============================================================================
# Markers
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line(
        "markers", "integration: Integration tests (require external services)"
    )
    config.addinivalue_line("markers", "slow: Slow tests")
