"""Read-only access to collaborators owned by other services."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.database.models import CareAssignmentModel, UserModel
from shared.models import UserRecord

from .interfaces import CareRelationshipRepository, UserRepository


class SqlUserRepository(UserRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_active(self, user_id: int) -> UserRecord | None:
        result = await self.session.execute(
            select(UserModel).where(UserModel.id == user_id, UserModel.is_active.is_(True))
        )
        user = result.scalar_one_or_none()
        return UserRecord.model_validate(user) if user else None


class SqlCareRelationshipRepository(CareRelationshipRepository):
    """Patient to doctor assignments, the canonical care relationship."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def has_active(self, doctor_id: int, patient_id: int) -> bool:
        result = await self.session.execute(
            select(CareAssignmentModel.id)
            .where(
                CareAssignmentModel.doctor_id == doctor_id,
                CareAssignmentModel.patient_id == patient_id,
                CareAssignmentModel.is_active.is_(True),
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None
