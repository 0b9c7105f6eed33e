"""Role data access."""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.database.models import RoleModel
from shared.errors import NotFoundError
from shared.models import Role, RoleCreate

from .errors import flush_or_raise
from .interfaces import RoleRepository


class SqlRoleRepository(RoleRepository):
    """Repository for dynamic roles."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, role_id: int) -> Role | None:
        role = await self.session.get(RoleModel, role_id)
        return Role.model_validate(role) if role else None

    async def get_by_name(self, name: str) -> Role | None:
        result = await self.session.execute(select(RoleModel).where(RoleModel.name == name))
        role = result.scalar_one_or_none()
        return Role.model_validate(role) if role else None

    async def get_many(self, role_ids: Sequence[int]) -> list[Role]:
        if not role_ids:
            return []
        result = await self.session.execute(
            select(RoleModel)
            .where(RoleModel.id.in_(role_ids), RoleModel.is_active.is_(True))
            .order_by(RoleModel.id)
        )
        return [Role.model_validate(r) for r in result.scalars()]

    async def list_active(self) -> list[Role]:
        result = await self.session.execute(
            select(RoleModel).where(RoleModel.is_active.is_(True)).order_by(RoleModel.name)
        )
        return [Role.model_validate(r) for r in result.scalars()]

    async def create(self, data: RoleCreate) -> Role:
        role = RoleModel(**data.model_dump(), is_active=True)
        self.session.add(role)
        await flush_or_raise(
            self.session, f"Role '{data.name}' already exists", role_name=data.name
        )
        await self.session.refresh(role)
        return Role.model_validate(role)

    async def deactivate(self, role_id: int) -> Role:
        role = await self.session.get(RoleModel, role_id)
        if role is None:
            raise NotFoundError(f"Role {role_id} not found")
        role.is_active = False
        await flush_or_raise(self.session, "Role update conflicted", role_id=role_id)
        return Role.model_validate(role)
