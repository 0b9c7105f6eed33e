"""RBAC store: repository interfaces and their SQLAlchemy implementations."""

from .interfaces import (
    AssignmentRepository,
    AuditRepository,
    CareRelationshipRepository,
    FeatureRepository,
    PermissionRepository,
    RoleRepository,
    UnitOfWork,
    UserRepository,
)
from .unit_of_work import SqlAlchemyUnitOfWork, sqlalchemy_uow_factory

__all__ = [
    # Interfaces
    "RoleRepository",
    "PermissionRepository",
    "FeatureRepository",
    "AssignmentRepository",
    "AuditRepository",
    "UserRepository",
    "CareRelationshipRepository",
    "UnitOfWork",
    # SQLAlchemy
    "SqlAlchemyUnitOfWork",
    "sqlalchemy_uow_factory",
]
