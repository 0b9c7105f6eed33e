"""Repository interfaces for the RBAC store.

The engine depends only on these abstractions. Repositories return pydantic
domain models, never ORM rows, and translate storage uniqueness violations
into ``ConflictError``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime
from types import TracebackType
from typing import Any

from shared.models import (
    AccessLevel,
    AuditLogCreate,
    AuditLogEntry,
    FeatureAccessView,
    FeatureModule,
    FeatureModuleCreate,
    Permission,
    PermissionCreate,
    Role,
    RoleCreate,
    RoleFeatureAccess,
    RolePermissionGrant,
    UserRecord,
    UserRoleAssignment,
)


class RoleRepository(ABC):
    @abstractmethod
    async def get(self, role_id: int) -> Role | None: ...

    @abstractmethod
    async def get_by_name(self, name: str) -> Role | None: ...

    @abstractmethod
    async def get_many(self, role_ids: Sequence[int]) -> list[Role]:
        """Active roles among ``role_ids``."""

    @abstractmethod
    async def list_active(self) -> list[Role]: ...

    @abstractmethod
    async def create(self, data: RoleCreate) -> Role:
        """Insert a role. Raises ConflictError on a duplicate name."""

    @abstractmethod
    async def deactivate(self, role_id: int) -> Role: ...


class PermissionRepository(ABC):
    @abstractmethod
    async def get(self, permission_id: int) -> Permission | None: ...

    @abstractmethod
    async def get_by_name(self, name: str) -> Permission | None: ...

    @abstractmethod
    async def list_active(self) -> list[Permission]: ...

    @abstractmethod
    async def create(self, data: PermissionCreate) -> Permission: ...

    @abstractmethod
    async def list_granted(self, role_ids: Sequence[int]) -> dict[int, list[Permission]]:
        """Active permissions reachable through active grants, keyed by role id."""

    @abstractmethod
    async def get_active_grant(
        self, role_id: int, permission_id: int
    ) -> RolePermissionGrant | None: ...

    @abstractmethod
    async def add_grant(
        self,
        role_id: int,
        permission_id: int,
        granted_by: int | None,
        granted_at: datetime,
    ) -> RolePermissionGrant:
        """Insert an active grant. Raises ConflictError if one is already active."""

    @abstractmethod
    async def revoke_grant(self, grant_id: int, revoked_at: datetime) -> RolePermissionGrant: ...


class FeatureRepository(ABC):
    @abstractmethod
    async def get_module(self, module_id: int) -> FeatureModule | None: ...

    @abstractmethod
    async def get_module_by_name(self, name: str) -> FeatureModule | None: ...

    @abstractmethod
    async def list_modules(self) -> list[FeatureModule]: ...

    @abstractmethod
    async def create_module(self, data: FeatureModuleCreate) -> FeatureModule: ...

    @abstractmethod
    async def get_active_access(self, role_id: int, module_id: int) -> RoleFeatureAccess | None: ...

    @abstractmethod
    async def add_access(
        self,
        role_id: int,
        module_id: int,
        access_level: AccessLevel,
        granted_by: int | None,
        granted_at: datetime,
    ) -> RoleFeatureAccess:
        """Insert an active access row. Raises ConflictError if one is already active."""

    @abstractmethod
    async def revoke_access(self, access_id: int, revoked_at: datetime) -> RoleFeatureAccess: ...

    @abstractmethod
    async def list_access(self, role_ids: Sequence[int]) -> list[FeatureAccessView]:
        """Active access rows of the given roles on active modules."""


class AssignmentRepository(ABC):
    @abstractmethod
    async def list_for_user(self, user_id: int) -> list[UserRoleAssignment]:
        """Rows flagged active; lapsed rows are included and filtered by the caller."""

    @abstractmethod
    async def get_active(self, user_id: int, role_id: int) -> UserRoleAssignment | None: ...

    @abstractmethod
    async def add(
        self,
        user_id: int,
        role_id: int,
        assigned_by: int | None,
        assigned_at: datetime,
        expires_at: datetime | None = None,
        context: dict[str, Any] | None = None,
    ) -> UserRoleAssignment:
        """Insert an active assignment. Raises ConflictError if one is already active."""

    @abstractmethod
    async def revoke(self, assignment_id: int, revoked_at: datetime) -> UserRoleAssignment: ...

    @abstractmethod
    async def list_holders(self, role_id: int) -> list[int]:
        """User ids with an active assignment to the role."""

    @abstractmethod
    async def list_for_role(self, role_id: int) -> list[UserRoleAssignment]:
        """Rows flagged active for the role; lapsed rows are included."""


class AuditRepository(ABC):
    @abstractmethod
    async def append(self, entry: AuditLogCreate) -> AuditLogEntry: ...

    @abstractmethod
    async def list_recent(
        self, limit: int = 100, entity_type: str | None = None
    ) -> list[AuditLogEntry]: ...


class UserRepository(ABC):
    @abstractmethod
    async def get_active(self, user_id: int) -> UserRecord | None: ...


class CareRelationshipRepository(ABC):
    @abstractmethod
    async def has_active(self, doctor_id: int, patient_id: int) -> bool: ...


class UnitOfWork(ABC):
    """One transaction across all RBAC repositories.

    Changes become durable only through ``commit()``; leaving the context
    without committing, or with an exception, rolls everything back.
    """

    roles: RoleRepository
    permissions: PermissionRepository
    features: FeatureRepository
    assignments: AssignmentRepository
    audit: AuditRepository
    users: UserRepository
    care: CareRelationshipRepository

    async def __aenter__(self) -> UnitOfWork:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.rollback()

    @abstractmethod
    async def commit(self) -> None: ...

    @abstractmethod
    async def rollback(self) -> None: ...
