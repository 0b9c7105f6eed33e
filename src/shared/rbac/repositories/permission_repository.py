"""Permission and role-permission grant data access."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.database.models import PermissionModel, RolePermissionModel
from shared.errors import NotFoundError
from shared.models import Permission, PermissionCreate, RolePermissionGrant

from .errors import flush_or_raise
from .interfaces import PermissionRepository


class SqlPermissionRepository(PermissionRepository):
    """Repository for permissions and the grants binding them to roles."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, permission_id: int) -> Permission | None:
        permission = await self.session.get(PermissionModel, permission_id)
        return Permission.model_validate(permission) if permission else None

    async def get_by_name(self, name: str) -> Permission | None:
        result = await self.session.execute(
            select(PermissionModel).where(PermissionModel.name == name)
        )
        permission = result.scalar_one_or_none()
        return Permission.model_validate(permission) if permission else None

    async def list_active(self) -> list[Permission]:
        result = await self.session.execute(
            select(PermissionModel)
            .where(PermissionModel.is_active.is_(True))
            .order_by(PermissionModel.module, PermissionModel.name)
        )
        return [Permission.model_validate(p) for p in result.scalars()]

    async def create(self, data: PermissionCreate) -> Permission:
        permission = PermissionModel(**data.model_dump(), is_active=True)
        self.session.add(permission)
        await flush_or_raise(
            self.session,
            f"Permission '{data.name}' already exists",
            permission_name=data.name,
        )
        return Permission.model_validate(permission)

    # =========================================================================
    # Grants
    # =========================================================================

    async def list_granted(self, role_ids: Sequence[int]) -> dict[int, list[Permission]]:
        if not role_ids:
            return {}
        result = await self.session.execute(
            select(RolePermissionModel.role_id, PermissionModel)
            .join(PermissionModel, PermissionModel.id == RolePermissionModel.permission_id)
            .where(
                RolePermissionModel.role_id.in_(role_ids),
                RolePermissionModel.is_active.is_(True),
                PermissionModel.is_active.is_(True),
            )
            .order_by(PermissionModel.name)
        )
        granted: dict[int, list[Permission]] = defaultdict(list)
        for role_id, permission in result.all():
            granted[role_id].append(Permission.model_validate(permission))
        return dict(granted)

    async def get_active_grant(
        self, role_id: int, permission_id: int
    ) -> RolePermissionGrant | None:
        result = await self.session.execute(
            select(RolePermissionModel).where(
                RolePermissionModel.role_id == role_id,
                RolePermissionModel.permission_id == permission_id,
                RolePermissionModel.is_active.is_(True),
            )
        )
        grant = result.scalar_one_or_none()
        return RolePermissionGrant.model_validate(grant) if grant else None

    async def add_grant(
        self,
        role_id: int,
        permission_id: int,
        granted_by: int | None,
        granted_at: datetime,
    ) -> RolePermissionGrant:
        grant = RolePermissionModel(
            role_id=role_id,
            permission_id=permission_id,
            granted_by=granted_by,
            granted_at=granted_at,
            is_active=True,
        )
        self.session.add(grant)
        await flush_or_raise(
            self.session,
            "Permission is already granted to this role",
            role_id=role_id,
            permission_id=permission_id,
        )
        return RolePermissionGrant.model_validate(grant)

    async def revoke_grant(self, grant_id: int, revoked_at: datetime) -> RolePermissionGrant:
        grant = await self.session.get(RolePermissionModel, grant_id)
        if grant is None:
            raise NotFoundError(f"Grant {grant_id} not found")
        grant.is_active = False
        grant.revoked_at = revoked_at
        await flush_or_raise(self.session, "Grant update conflicted", grant_id=grant_id)
        return RolePermissionGrant.model_validate(grant)
