"""Feature module and role feature-access data access."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.database.models import FeatureModuleModel, RoleFeatureAccessModel
from shared.errors import NotFoundError
from shared.models import (
    AccessLevel,
    FeatureAccessView,
    FeatureModule,
    FeatureModuleCreate,
    RoleFeatureAccess,
)

from .errors import flush_or_raise
from .interfaces import FeatureRepository


class SqlFeatureRepository(FeatureRepository):
    """Repository for feature modules and graded role access to them."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_module(self, module_id: int) -> FeatureModule | None:
        module = await self.session.get(FeatureModuleModel, module_id)
        return FeatureModule.model_validate(module) if module else None

    async def get_module_by_name(self, name: str) -> FeatureModule | None:
        result = await self.session.execute(
            select(FeatureModuleModel).where(FeatureModuleModel.name == name)
        )
        module = result.scalar_one_or_none()
        return FeatureModule.model_validate(module) if module else None

    async def list_modules(self) -> list[FeatureModule]:
        result = await self.session.execute(
            select(FeatureModuleModel)
            .where(FeatureModuleModel.is_active.is_(True))
            .order_by(FeatureModuleModel.name)
        )
        return [FeatureModule.model_validate(m) for m in result.scalars()]

    async def create_module(self, data: FeatureModuleCreate) -> FeatureModule:
        module = FeatureModuleModel(**data.model_dump(), is_active=True)
        self.session.add(module)
        await flush_or_raise(
            self.session, f"Feature module '{data.name}' already exists", module_name=data.name
        )
        return FeatureModule.model_validate(module)

    async def get_active_access(self, role_id: int, module_id: int) -> RoleFeatureAccess | None:
        result = await self.session.execute(
            select(RoleFeatureAccessModel).where(
                RoleFeatureAccessModel.role_id == role_id,
                RoleFeatureAccessModel.module_id == module_id,
                RoleFeatureAccessModel.is_active.is_(True),
            )
        )
        access = result.scalar_one_or_none()
        return RoleFeatureAccess.model_validate(access) if access else None

    async def add_access(
        self,
        role_id: int,
        module_id: int,
        access_level: AccessLevel,
        granted_by: int | None,
        granted_at: datetime,
    ) -> RoleFeatureAccess:
        access = RoleFeatureAccessModel(
            role_id=role_id,
            module_id=module_id,
            access_level=AccessLevel(access_level).value,
            granted_by=granted_by,
            granted_at=granted_at,
            is_active=True,
        )
        self.session.add(access)
        await flush_or_raise(
            self.session,
            "Role already has active access to this module",
            role_id=role_id,
            module_id=module_id,
        )
        return RoleFeatureAccess.model_validate(access)

    async def revoke_access(self, access_id: int, revoked_at: datetime) -> RoleFeatureAccess:
        access = await self.session.get(RoleFeatureAccessModel, access_id)
        if access is None:
            raise NotFoundError(f"Feature access {access_id} not found")
        access.is_active = False
        access.revoked_at = revoked_at
        await flush_or_raise(self.session, "Feature access update conflicted", access_id=access_id)
        return RoleFeatureAccess.model_validate(access)

    async def list_access(self, role_ids: Sequence[int]) -> list[FeatureAccessView]:
        if not role_ids:
            return []
        result = await self.session.execute(
            select(RoleFeatureAccessModel, FeatureModuleModel.name)
            .join(FeatureModuleModel, FeatureModuleModel.id == RoleFeatureAccessModel.module_id)
            .where(
                RoleFeatureAccessModel.role_id.in_(role_ids),
                RoleFeatureAccessModel.is_active.is_(True),
                FeatureModuleModel.is_active.is_(True),
            )
            .order_by(FeatureModuleModel.name)
        )
        return [
            FeatureAccessView(
                **RoleFeatureAccess.model_validate(access).model_dump(),
                module_name=module_name,
            )
            for access, module_name in result.all()
        ]
