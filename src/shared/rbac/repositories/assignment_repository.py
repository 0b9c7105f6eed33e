"""User role assignment data access."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.database.models import UserRoleModel
from shared.errors import NotFoundError
from shared.models import UserRoleAssignment

from .errors import flush_or_raise
from .interfaces import AssignmentRepository


class SqlAssignmentRepository(AssignmentRepository):
    """Repository for user to role assignments."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_for_user(self, user_id: int) -> list[UserRoleAssignment]:
        result = await self.session.execute(
            select(UserRoleModel)
            .where(UserRoleModel.user_id == user_id, UserRoleModel.is_active.is_(True))
            .order_by(UserRoleModel.role_id)
        )
        return [UserRoleAssignment.model_validate(a) for a in result.scalars()]

    async def get_active(self, user_id: int, role_id: int) -> UserRoleAssignment | None:
        result = await self.session.execute(
            select(UserRoleModel).where(
                UserRoleModel.user_id == user_id,
                UserRoleModel.role_id == role_id,
                UserRoleModel.is_active.is_(True),
            )
        )
        assignment = result.scalar_one_or_none()
        return UserRoleAssignment.model_validate(assignment) if assignment else None

    async def add(
        self,
        user_id: int,
        role_id: int,
        assigned_by: int | None,
        assigned_at: datetime,
        expires_at: datetime | None = None,
        context: dict[str, Any] | None = None,
    ) -> UserRoleAssignment:
        assignment = UserRoleModel(
            user_id=user_id,
            role_id=role_id,
            assigned_by=assigned_by,
            assigned_at=assigned_at,
            expires_at=expires_at,
            context=context,
            is_active=True,
        )
        self.session.add(assignment)
        await flush_or_raise(
            self.session,
            "User already holds this role",
            user_id=user_id,
            role_id=role_id,
        )
        return UserRoleAssignment.model_validate(assignment)

    async def revoke(self, assignment_id: int, revoked_at: datetime) -> UserRoleAssignment:
        assignment = await self.session.get(UserRoleModel, assignment_id)
        if assignment is None:
            raise NotFoundError(f"Assignment {assignment_id} not found")
        assignment.is_active = False
        assignment.revoked_at = revoked_at
        await flush_or_raise(
            self.session, "Assignment update conflicted", assignment_id=assignment_id
        )
        return UserRoleAssignment.model_validate(assignment)

    async def list_holders(self, role_id: int) -> list[int]:
        result = await self.session.execute(
            select(UserRoleModel.user_id)
            .where(UserRoleModel.role_id == role_id, UserRoleModel.is_active.is_(True))
            .distinct()
        )
        return sorted(result.scalars())

    async def list_for_role(self, role_id: int) -> list[UserRoleAssignment]:
        result = await self.session.execute(
            select(UserRoleModel)
            .where(UserRoleModel.role_id == role_id, UserRoleModel.is_active.is_(True))
            .order_by(UserRoleModel.user_id)
        )
        return [UserRoleAssignment.model_validate(a) for a in result.scalars()]
