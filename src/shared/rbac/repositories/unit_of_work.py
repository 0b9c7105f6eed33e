"""SQLAlchemy unit of work: one session, one transaction, all repositories."""

from __future__ import annotations

from types import TracebackType

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .assignment_repository import SqlAssignmentRepository
from .audit_repository import SqlAuditRepository
from .directory_repository import SqlCareRelationshipRepository, SqlUserRepository
from .feature_repository import SqlFeatureRepository
from .interfaces import UnitOfWork
from .permission_repository import SqlPermissionRepository
from .role_repository import SqlRoleRepository


class SqlAlchemyUnitOfWork(UnitOfWork):
    """Unit of work bound to a fresh ``AsyncSession``.

    Usage:
        async with SqlAlchemyUnitOfWork(session_factory) as uow:
            grant = await uow.permissions.add_grant(...)
            await uow.audit.append(...)
            await uow.commit()
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self.session: AsyncSession | None = None

    async def __aenter__(self) -> SqlAlchemyUnitOfWork:
        self.session = self._session_factory()
        self.roles = SqlRoleRepository(self.session)
        self.permissions = SqlPermissionRepository(self.session)
        self.features = SqlFeatureRepository(self.session)
        self.assignments = SqlAssignmentRepository(self.session)
        self.audit = SqlAuditRepository(self.session)
        self.users = SqlUserRepository(self.session)
        self.care = SqlCareRelationshipRepository(self.session)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        try:
            await self.rollback()
        finally:
            await self.session.close()
            self.session = None

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()


def sqlalchemy_uow_factory(session_factory: async_sessionmaker[AsyncSession]):
    """Factory the engine and token verifier call once per operation."""

    def factory() -> SqlAlchemyUnitOfWork:
        return SqlAlchemyUnitOfWork(session_factory)

    return factory
