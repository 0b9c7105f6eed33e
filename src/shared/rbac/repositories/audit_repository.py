"""Append-only audit log data access."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.database.models import AuditLogModel
from shared.models import AuditLogCreate, AuditLogEntry

from .errors import flush_or_raise
from .interfaces import AuditRepository


class SqlAuditRepository(AuditRepository):
    """Repository for RBAC audit entries. Entries are never updated."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(self, entry: AuditLogCreate) -> AuditLogEntry:
        row = AuditLogModel(**entry.model_dump(mode="json", exclude={"created_at"}))
        row.created_at = entry.created_at
        self.session.add(row)
        await flush_or_raise(self.session, "Audit entry rejected")
        return AuditLogEntry.model_validate(row)

    async def list_recent(
        self, limit: int = 100, entity_type: str | None = None
    ) -> list[AuditLogEntry]:
        query = select(AuditLogModel)
        if entity_type:
            query = query.where(AuditLogModel.entity_type == entity_type)
        result = await self.session.execute(
            query.order_by(AuditLogModel.created_at.desc(), AuditLogModel.id.desc()).limit(limit)
        )
        return [AuditLogEntry.model_validate(r) for r in result.scalars()]
