"""RBAC domain models.

Roles, permissions and feature modules are vocabulary; grants, feature
access rows and user assignments are edges with an
``absent -> active -> revoked`` lifecycle. Edges are never deleted:
revocation sets ``revoked_at`` and clears ``is_active``.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import Field, field_validator

from .base import HealthcareBaseModel, as_utc


class AccessLevel(str, Enum):
    """Graded access to a feature module."""

    NONE = "none"
    READ = "read"
    WRITE = "write"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return _ACCESS_LEVEL_RANK[self]


_ACCESS_LEVEL_RANK = {
    AccessLevel.NONE: 0,
    AccessLevel.READ: 1,
    AccessLevel.WRITE: 2,
    AccessLevel.ADMIN: 3,
}


class AccessType(str, Enum):
    """Kind of access requested on a patient record."""

    READ = "read"
    WRITE = "write"


class AuditAction(str, Enum):
    CREATE = "create"
    DEACTIVATE = "deactivate"
    GRANT = "grant"
    REVOKE = "revoke"
    ASSIGN = "assign"
    UPDATE = "update"


class AuditEntity(str, Enum):
    ROLE = "role"
    ROLE_PERMISSION_GRANT = "role_permission_grant"
    ROLE_FEATURE_ACCESS = "role_feature_access"
    USER_ROLE_ASSIGNMENT = "user_role_assignment"


class _Timestamped(HealthcareBaseModel):
    """Normalises every datetime field to aware UTC."""

    @field_validator("*", mode="after")
    @classmethod
    def _normalise_datetimes(cls, v: Any) -> Any:
        if isinstance(v, datetime):
            return as_utc(v)
        return v


# =============================================================================
# Vocabulary
# =============================================================================


class RoleCreate(HealthcareBaseModel):
    """Request body for creating a role."""

    name: str = Field(pattern=r"^[a-z][a-z0-9_]{1,49}$", description="Unique role name")
    display_name: str = Field(min_length=1, max_length=100)
    description: str | None = None
    color: str = Field(default="#666666", pattern=r"^#[0-9a-fA-F]{6}$")
    icon: str = Field(default="user", max_length=50)
    is_system: bool = False


class Role(_Timestamped):
    id: int
    name: str
    display_name: str
    description: str | None = None
    color: str = "#666666"
    icon: str = "user"
    is_system: bool = False
    is_active: bool = True
    created_at: datetime | None = None


class PermissionCreate(HealthcareBaseModel):
    """Seed definition of a permission."""

    name: str
    display_name: str
    description: str | None = None
    module: str
    feature: str
    action: str
    resource: str | None = None
    is_system: bool = True


class Permission(_Timestamped):
    id: int
    name: str
    display_name: str
    description: str | None = None
    module: str
    feature: str
    action: str
    resource: str | None = Field(
        default=None,
        description="Resource qualifier; null matches any resource",
    )
    is_system: bool = True
    is_active: bool = True

    def matches_resource(self, resource: str | None) -> bool:
        """Qualifier test: only applied when the caller names a resource."""
        if resource is None or self.resource is None:
            return True
        return self.resource == resource


class FeatureModuleCreate(HealthcareBaseModel):
    """Seed definition of a feature module."""

    name: str
    display_name: str
    description: str | None = None
    icon: str = "cube"
    color: str = "#666666"
    is_core: bool = True


class FeatureModule(_Timestamped):
    id: int
    name: str
    display_name: str
    description: str | None = None
    icon: str = "cube"
    color: str = "#666666"
    is_core: bool = True
    is_active: bool = True


# =============================================================================
# Edges
# =============================================================================


class RolePermissionGrant(_Timestamped):
    id: int
    role_id: int
    permission_id: int
    granted_by: int | None = None
    granted_at: datetime
    revoked_at: datetime | None = None
    is_active: bool = True


class RoleFeatureAccess(_Timestamped):
    id: int
    role_id: int
    module_id: int
    access_level: AccessLevel
    granted_by: int | None = None
    granted_at: datetime
    revoked_at: datetime | None = None
    is_active: bool = True


class UserRoleAssignment(_Timestamped):
    id: int
    user_id: int
    role_id: int
    context: dict[str, Any] | None = None
    assigned_by: int | None = None
    assigned_at: datetime
    expires_at: datetime | None = None
    revoked_at: datetime | None = None
    is_active: bool = True

    def is_effective(self, now: datetime) -> bool:
        """Active and not lapsed. Expiry is evaluated lazily against ``now``."""
        if not self.is_active:
            return False
        return self.expires_at is None or self.expires_at > now


# =============================================================================
# Audit
# =============================================================================


class AuditLogCreate(_Timestamped):
    actor_id: int | None
    action: AuditAction
    entity_type: AuditEntity
    entity_id: int
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None
    created_at: datetime


class AuditLogEntry(AuditLogCreate):
    id: int


# =============================================================================
# External collaborators (read-only here)
# =============================================================================


class UserRecord(HealthcareBaseModel):
    """User as owned by the user service."""

    id: int
    email: str
    name: str
    is_active: bool = True


# =============================================================================
# Read models and request bodies
# =============================================================================


class RoleWithPermissions(Role):
    """A role held by a user, with the names of its active permissions."""

    permissions: list[str] = Field(default_factory=list)
    assigned_at: datetime | None = None
    expires_at: datetime | None = None
    context: dict[str, Any] | None = None


class FeatureAccessView(RoleFeatureAccess):
    module_name: str


class PermissionGrantRequest(HealthcareBaseModel):
    permission_id: int


class FeatureAccessRequest(HealthcareBaseModel):
    module_id: int
    access_level: AccessLevel


class RoleAssignmentRequest(HealthcareBaseModel):
    role_id: int
    expires_at: datetime | None = None
    context: dict[str, Any] | None = None

    @field_validator("expires_at", mode="after")
    @classmethod
    def _expires_utc(cls, v: datetime | None) -> datetime | None:
        return as_utc(v)
