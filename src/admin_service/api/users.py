"""User role assignment endpoints and the session bootstrap endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from shared.auth import Identity, require_auth, require_permission
from shared.models import AUTH_RESPONSES, RoleAssignmentRequest
from shared.rbac import RBACEngine
from shared.responses import success

from .deps import get_engine, require_admin

router = APIRouter(prefix="/admin", responses=AUTH_RESPONSES)


@router.get(
    "/me",
    summary="Current session",
    description=(
        "Identity, effective roles, permissions and feature access of the caller. "
        "Drives client-side navigation and view gating."
    ),
)
async def me(
    identity: Identity = Depends(require_auth()),
    engine: RBACEngine = Depends(get_engine),
):
    roles = await engine.get_user_roles(identity.user_id)
    permissions = await engine.get_user_permissions(identity.user_id)
    feature_access = await engine.get_user_feature_access(identity.user_id)
    return success(
        {
            "user": identity.model_dump(mode="json"),
            "roles": [r.model_dump(mode="json") for r in roles],
            "permissions": permissions,
            "feature_access": feature_access,
        }
    )


@router.get(
    "/users/{user_id}/roles",
    summary="Get user roles",
    description="Effective roles of a user; lapsed assignments are excluded.",
    dependencies=[Depends(require_admin)],
)
async def get_user_roles(user_id: int, engine: RBACEngine = Depends(get_engine)):
    roles = await engine.get_user_roles(user_id)
    return success({"user_id": user_id, "roles": [r.model_dump(mode="json") for r in roles]})


@router.post(
    "/users/{user_id}/roles",
    status_code=status.HTTP_201_CREATED,
    summary="Assign role to user",
    description=(
        "Optionally time-bound via expires_at. "
        "A duplicate active assignment is rejected with 409."
    ),
)
async def assign_role(
    user_id: int,
    data: RoleAssignmentRequest,
    identity: Identity = Depends(require_permission("users.assign_roles")),
    engine: RBACEngine = Depends(get_engine),
):
    assignment = await engine.assign_role_to_user(
        user_id,
        data.role_id,
        identity.user_id,
        expires_at=data.expires_at,
        context=data.context,
    )
    return success({"assignment": assignment.model_dump(mode="json")})


@router.delete(
    "/users/{user_id}/roles/{role_id}",
    summary="Revoke role from user",
)
async def revoke_role(
    user_id: int,
    role_id: int,
    identity: Identity = Depends(require_permission("users.assign_roles")),
    engine: RBACEngine = Depends(get_engine),
):
    assignment = await engine.revoke_role_from_user(user_id, role_id, identity.user_id)
    return success({"assignment": assignment.model_dump(mode="json")})
