"""Role, permission and feature module administration endpoints.

Reads require an administrative role; every write requires its named
permission and produces exactly one audit entry.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from shared.auth import Identity, require_permission
from shared.models import (
    AUTH_RESPONSES,
    FeatureAccessRequest,
    PermissionGrantRequest,
    RoleCreate,
)
from shared.rbac import RBACEngine
from shared.responses import success

from .deps import get_engine, require_admin

router = APIRouter(prefix="/admin", responses=AUTH_RESPONSES)


# =============================================================================
# Roles
# =============================================================================


@router.get(
    "/roles",
    summary="List roles",
    description="Active roles with display metadata.",
    dependencies=[Depends(require_admin)],
)
async def list_roles(engine: RBACEngine = Depends(get_engine)):
    roles = await engine.list_roles()
    return success({"roles": [r.model_dump(mode="json") for r in roles]})


@router.post(
    "/roles",
    status_code=status.HTTP_201_CREATED,
    summary="Create role",
    description="Create a custom role. Duplicate names are rejected with 409.",
)
async def create_role(
    data: RoleCreate,
    identity: Identity = Depends(require_permission("system.configure_roles")),
    engine: RBACEngine = Depends(get_engine),
):
    # System roles come from the seed vocabulary only
    role = await engine.create_role(data.model_copy(update={"is_system": False}), identity.user_id)
    return success({"role": role.model_dump(mode="json")})


@router.delete(
    "/roles/{role_id}",
    summary="Deactivate role",
    description="Soft-deactivate a custom role that no user holds.",
)
async def deactivate_role(
    role_id: int,
    identity: Identity = Depends(require_permission("system.configure_roles")),
    engine: RBACEngine = Depends(get_engine),
):
    role = await engine.deactivate_role(role_id, identity.user_id)
    return success({"role": role.model_dump(mode="json")})


# =============================================================================
# Permissions
# =============================================================================


@router.get(
    "/permissions",
    summary="List permissions",
    description="The permission vocabulary, grouped by module.",
    dependencies=[Depends(require_admin)],
)
async def list_permissions(engine: RBACEngine = Depends(get_engine)):
    permissions = await engine.list_permissions()
    by_module: dict[str, list[str]] = {}
    for permission in permissions:
        by_module.setdefault(permission.module, []).append(permission.name)
    return success(
        {
            "permissions": [p.model_dump(mode="json") for p in permissions],
            "modules": by_module,
        }
    )


@router.get(
    "/roles/{role_id}/permissions",
    summary="Get role permissions",
    dependencies=[Depends(require_admin)],
)
async def get_role_permissions(role_id: int, engine: RBACEngine = Depends(get_engine)):
    permissions = await engine.get_role_permissions(role_id)
    return success(
        {
            "role_id": role_id,
            "permissions": [p.model_dump(mode="json") for p in permissions],
        }
    )


@router.post(
    "/roles/{role_id}/permissions",
    status_code=status.HTTP_201_CREATED,
    summary="Grant permission to role",
    description="Re-granting an already active pair is rejected with 409.",
)
async def assign_permission(
    role_id: int,
    data: PermissionGrantRequest,
    identity: Identity = Depends(require_permission("system.manage_permissions")),
    engine: RBACEngine = Depends(get_engine),
):
    grant = await engine.assign_permission_to_role(role_id, data.permission_id, identity.user_id)
    return success({"grant": grant.model_dump(mode="json")})


@router.delete(
    "/roles/{role_id}/permissions/{permission_id}",
    summary="Revoke permission from role",
)
async def remove_permission(
    role_id: int,
    permission_id: int,
    identity: Identity = Depends(require_permission("system.manage_permissions")),
    engine: RBACEngine = Depends(get_engine),
):
    grant = await engine.remove_permission_from_role(role_id, permission_id, identity.user_id)
    return success({"grant": grant.model_dump(mode="json")})


# =============================================================================
# Feature modules
# =============================================================================


@router.get(
    "/roles/{role_id}/features",
    summary="Get role feature access",
    dependencies=[Depends(require_admin)],
)
async def get_role_features(role_id: int, engine: RBACEngine = Depends(get_engine)):
    access = await engine.get_role_feature_access(role_id)
    return success(
        {
            "role_id": role_id,
            "feature_access": [a.model_dump(mode="json") for a in access],
        }
    )


@router.put(
    "/roles/{role_id}/features",
    summary="Set role feature access",
    description="Replace the role's access level (none, read, write, admin) on one module.",
)
async def set_role_feature(
    role_id: int,
    data: FeatureAccessRequest,
    identity: Identity = Depends(require_permission("system.feature_allocation")),
    engine: RBACEngine = Depends(get_engine),
):
    access = await engine.set_feature_access(
        role_id, data.module_id, data.access_level, identity.user_id
    )
    return success({"feature_access": access.model_dump(mode="json")})


@router.get(
    "/feature-modules",
    summary="List feature modules",
    dependencies=[Depends(require_admin)],
)
async def list_feature_modules(engine: RBACEngine = Depends(get_engine)):
    modules = await engine.list_feature_modules()
    return success({"modules": [m.model_dump(mode="json") for m in modules]})
