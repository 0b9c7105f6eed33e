"""RBAC audit log endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from shared.auth import require_permission
from shared.models import AUTH_RESPONSES, AuditEntity
from shared.rbac import RBACEngine
from shared.responses import success

from .deps import get_engine

router = APIRouter(prefix="/admin", responses=AUTH_RESPONSES)


@router.get(
    "/audit-logs",
    summary="List audit entries",
    description="Most recent RBAC mutations first.",
    dependencies=[Depends(require_permission("audit.read"))],
)
async def list_audit_logs(
    limit: int = Query(100, ge=1, le=1000, description="Maximum entries returned"),
    entity_type: AuditEntity | None = Query(None, description="Filter by entity type"),
    engine: RBACEngine = Depends(get_engine),
):
    entries = await engine.list_audit_entries(limit=limit, entity_type=entity_type)
    return success({"entries": [e.model_dump(mode="json") for e in entries]})
