"""Shared data models for the healthcare platform.

All models follow these conventions:
- Timestamps: timezone-aware UTC
- IDs: integers assigned by the store
- Field names: lowercase snake_case
"""

# Base
from .base import HealthcareBaseModel, as_utc, utc_now

# Common response types
from .common import AUTH_RESPONSES, DataResponse, ErrorResponse

# RBAC domain
from .rbac import (
    AccessLevel,
    AccessType,
    AuditAction,
    AuditEntity,
    AuditLogCreate,
    AuditLogEntry,
    FeatureAccessRequest,
    FeatureAccessView,
    FeatureModule,
    FeatureModuleCreate,
    Permission,
    PermissionCreate,
    PermissionGrantRequest,
    Role,
    RoleAssignmentRequest,
    RoleCreate,
    RoleFeatureAccess,
    RolePermissionGrant,
    RoleWithPermissions,
    UserRecord,
    UserRoleAssignment,
)

__all__ = [
    # Base
    "HealthcareBaseModel",
    "as_utc",
    "utc_now",
    # Common
    "AUTH_RESPONSES",
    "DataResponse",
    "ErrorResponse",
    # RBAC
    "AccessLevel",
    "AccessType",
    "AuditAction",
    "AuditEntity",
    "AuditLogCreate",
    "AuditLogEntry",
    "FeatureAccessRequest",
    "FeatureAccessView",
    "FeatureModule",
    "FeatureModuleCreate",
    "Permission",
    "PermissionCreate",
    "PermissionGrantRequest",
    "Role",
    "RoleAssignmentRequest",
    "RoleCreate",
    "RoleFeatureAccess",
    "RolePermissionGrant",
    "RoleWithPermissions",
    "UserRecord",
    "UserRoleAssignment",
]
