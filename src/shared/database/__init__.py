"""Database configuration and models."""

from .base import Base, create_engine, create_session_factory
from .models import (
    AuditLogModel,
    CareAssignmentModel,
    FeatureModuleModel,
    PermissionModel,
    RoleFeatureAccessModel,
    RoleModel,
    RolePermissionModel,
    UserModel,
    UserRoleModel,
)

__all__ = [
    # Base
    "Base",
    "create_engine",
    "create_session_factory",
    # External collaborators
    "UserModel",
    "CareAssignmentModel",
    # RBAC schema
    "RoleModel",
    "PermissionModel",
    "FeatureModuleModel",
    "RolePermissionModel",
    "RoleFeatureAccessModel",
    "UserRoleModel",
    "AuditLogModel",
]
