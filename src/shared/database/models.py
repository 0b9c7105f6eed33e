"""SQLAlchemy ORM models.

The active-uniqueness rules of the RBAC edges are partial unique indexes
over ``is_active`` rows: the database, not a pre-check, decides whether an
active edge already exists. Revoked rows stay in the table as history.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from .base import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")

ACTIVE_ROWS = text("is_active")


# =============================================================================
# External collaborators (read-only for the RBAC core)
# =============================================================================


class UserModel(Base):
    """User identity owned by the user service."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class CareAssignmentModel(Base):
    """Patient to doctor care relationship.

    Canonical source for clinical ownership of a patient.
    """

    __tablename__ = "patient_doctor_assignments"
    __table_args__ = (
        Index("idx_care_assignments_doctor_patient", "doctor_id", "patient_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    patient_id: Mapped[int] = mapped_column(Integer, nullable=False)
    doctor_id: Mapped[int] = mapped_column(Integer, nullable=False)
    assigned_by: Mapped[int | None] = mapped_column(Integer)
    assignment_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    notes: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


# =============================================================================
# RBAC vocabulary
# =============================================================================


class RoleModel(Base):
    """Dynamic role."""

    __tablename__ = "dynamic_roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    color: Mapped[str] = mapped_column(String(7), nullable=False, default="#666666")
    icon: Mapped[str] = mapped_column(String(50), nullable=False, default="user")
    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class PermissionModel(Base):
    """Fine-grained permission, optionally qualified by a resource."""

    __tablename__ = "dynamic_permissions"
    __table_args__ = (Index("idx_permissions_module", "module"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(150), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    module: Mapped[str] = mapped_column(String(50), nullable=False)
    feature: Mapped[str] = mapped_column(String(50), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    resource: Mapped[str | None] = mapped_column(String(50))
    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class FeatureModuleModel(Base):
    """Coarse feature module for dashboard gating."""

    __tablename__ = "feature_modules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    icon: Mapped[str] = mapped_column(String(50), nullable=False, default="cube")
    color: Mapped[str] = mapped_column(String(7), nullable=False, default="#666666")
    is_core: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


# =============================================================================
# RBAC edges
# =============================================================================


class RolePermissionModel(Base):
    """Role to permission grant."""

    __tablename__ = "dynamic_role_permissions"
    __table_args__ = (
        Index(
            "uq_role_permissions_active",
            "role_id",
            "permission_id",
            unique=True,
            postgresql_where=ACTIVE_ROWS,
            sqlite_where=ACTIVE_ROWS,
        ),
        Index("idx_role_permissions_role", "role_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    role_id: Mapped[int] = mapped_column(ForeignKey("dynamic_roles.id"), nullable=False)
    permission_id: Mapped[int] = mapped_column(
        ForeignKey("dynamic_permissions.id"), nullable=False
    )
    granted_by: Mapped[int | None] = mapped_column(Integer)
    granted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class RoleFeatureAccessModel(Base):
    """Role to feature module access level."""

    __tablename__ = "role_feature_access"
    __table_args__ = (
        CheckConstraint(
            "access_level IN ('none', 'read', 'write', 'admin')",
            name="valid_access_level",
        ),
        Index(
            "uq_role_feature_access_active",
            "role_id",
            "module_id",
            unique=True,
            postgresql_where=ACTIVE_ROWS,
            sqlite_where=ACTIVE_ROWS,
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    role_id: Mapped[int] = mapped_column(ForeignKey("dynamic_roles.id"), nullable=False)
    module_id: Mapped[int] = mapped_column(ForeignKey("feature_modules.id"), nullable=False)
    access_level: Mapped[str] = mapped_column(String(10), nullable=False)
    granted_by: Mapped[int | None] = mapped_column(Integer)
    granted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class UserRoleModel(Base):
    """User to role assignment, optionally time-bound."""

    __tablename__ = "user_dynamic_roles"
    __table_args__ = (
        Index(
            "uq_user_roles_active",
            "user_id",
            "role_id",
            unique=True,
            postgresql_where=ACTIVE_ROWS,
            sqlite_where=ACTIVE_ROWS,
        ),
        Index("idx_user_roles_user", "user_id"),
        Index("idx_user_roles_role", "role_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    role_id: Mapped[int] = mapped_column(ForeignKey("dynamic_roles.id"), nullable=False)
    context: Mapped[dict[str, Any] | None] = mapped_column(JSONType)
    assigned_by: Mapped[int | None] = mapped_column(Integer)
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


# =============================================================================
# Audit
# =============================================================================


class AuditLogModel(Base):
    """Append-only record of RBAC mutations."""

    __tablename__ = "rbac_audit_log"
    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[int | None] = mapped_column(Integer)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(40), nullable=False)
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False)
    before: Mapped[dict[str, Any] | None] = mapped_column(JSONType)
    after: Mapped[dict[str, Any] | None] = mapped_column(JSONType)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
