"""Dynamic RBAC core: store, permission cache, engine and seed vocabulary."""

from .cache import (
    BroadcastingPermissionCache,
    CacheLookup,
    LocalPermissionCache,
    PermissionCache,
    RedisPermissionCache,
    build_permission_cache,
    permission_key,
    role_key,
)
from .engine import RBACEngine
from .policy import PatientAccessPolicy
from .seed import ROLE_PERMISSIONS, SeedReport, seed_rbac

__all__ = [
    # Engine
    "RBACEngine",
    "PatientAccessPolicy",
    # Cache
    "PermissionCache",
    "CacheLookup",
    "LocalPermissionCache",
    "RedisPermissionCache",
    "BroadcastingPermissionCache",
    "build_permission_cache",
    "permission_key",
    "role_key",
    # Seed
    "seed_rbac",
    "SeedReport",
    "ROLE_PERMISSIONS",
]
