"""RBAC engine: effective permission evaluation and grant-graph mutation.

Evaluation reads the user's flagged-active assignments, drops lapsed ones
against the current clock (lazy expiry), and joins the remaining roles to
their active grants. Boolean checks are memoized in the permission cache.

Every mutation runs in one unit of work: the edge change and its audit
entry commit together or not at all. Cache invalidation follows the commit,
so a re-read after invalidation observes the new state. Between commit and
invalidation a reader may still see the previous answer; that window is the
only staleness the engine permits.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

from shared.errors import ConflictError, NotFoundError
from shared.models import (
    AccessLevel,
    AccessType,
    AuditAction,
    AuditEntity,
    AuditLogCreate,
    AuditLogEntry,
    FeatureAccessView,
    FeatureModule,
    HealthcareBaseModel,
    Permission,
    Role,
    RoleCreate,
    RoleFeatureAccess,
    RolePermissionGrant,
    RoleWithPermissions,
    UserRoleAssignment,
    utc_now,
)
from shared.observability import get_logger

from .cache import PermissionCache, permission_key, role_key
from .policy import PatientAccessPolicy
from .repositories import UnitOfWork

logger = get_logger(__name__)

UnitOfWorkFactory = Callable[[], UnitOfWork]


def _snapshot(model: HealthcareBaseModel | None) -> dict[str, Any] | None:
    return model.model_dump(mode="json") if model is not None else None


class RBACEngine:
    """Dynamic role-based access control.

    Args:
        uow_factory: Creates a fresh unit of work per operation
        cache: Permission cache shared by all evaluations
        policy: Role sets for the patient ownership policy
        clock: Source of aware UTC "now", used for expiry and timestamps
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        cache: PermissionCache,
        policy: PatientAccessPolicy | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._uow_factory = uow_factory
        self.cache = cache
        self.policy = policy or PatientAccessPolicy()
        self._clock = clock

    # =========================================================================
    # Effective state
    # =========================================================================

    async def _effective_roles(
        self, uow: UnitOfWork, user_id: int
    ) -> list[tuple[UserRoleAssignment, Role]]:
        now = self._clock()
        assignments = [
            a for a in await uow.assignments.list_for_user(user_id) if a.is_effective(now)
        ]
        if not assignments:
            return []
        roles = {r.id: r for r in await uow.roles.get_many([a.role_id for a in assignments])}
        return [(a, roles[a.role_id]) for a in assignments if a.role_id in roles]

    async def _effective_permissions(self, uow: UnitOfWork, user_id: int) -> list[Permission]:
        roles = await self._effective_roles(uow, user_id)
        if not roles:
            return []
        granted = await uow.permissions.list_granted([role.id for _, role in roles])
        unique: dict[int, Permission] = {}
        for permissions in granted.values():
            for permission in permissions:
                unique[permission.id] = permission
        return list(unique.values())

    # =========================================================================
    # Evaluation
    # =========================================================================

    async def has_permission(
        self,
        user_id: int,
        permission_name: str,
        resource: str | None = None,
    ) -> bool:
        """True iff an effective role holds an active grant of the permission.

        A permission with a resource qualifier only satisfies a check naming
        that resource; a check that names no resource is satisfied by any
        grant of the permission. Unknown users and permissions are denied.
        """
        key = permission_key(permission_name, resource)
        lookup = await self.cache.get(user_id, key)
        if lookup.hit:
            return lookup.value

        async with self._uow_factory() as uow:
            permissions = await self._effective_permissions(uow, user_id)

        allowed = any(
            p.name == permission_name and p.matches_resource(resource) for p in permissions
        )
        await self.cache.set(user_id, key, allowed, lookup.generation)
        return allowed

    async def has_any_role(self, user_id: int, role_names: Iterable[str]) -> bool:
        """True iff the user holds an effective assignment to one of ``role_names``."""
        wanted = set(role_names)
        if not wanted:
            return False

        key = role_key(wanted)
        lookup = await self.cache.get(user_id, key)
        if lookup.hit:
            return lookup.value

        async with self._uow_factory() as uow:
            roles = await self._effective_roles(uow, user_id)

        held = any(role.name in wanted for _, role in roles)
        await self.cache.set(user_id, key, held, lookup.generation)
        return held

    async def get_user_roles(self, user_id: int) -> list[RoleWithPermissions]:
        """Effective roles with the names of their active permissions."""
        async with self._uow_factory() as uow:
            roles = await self._effective_roles(uow, user_id)
            granted = await uow.permissions.list_granted([role.id for _, role in roles])

        return [
            RoleWithPermissions(
                **role.model_dump(),
                permissions=sorted(p.name for p in granted.get(role.id, [])),
                assigned_at=assignment.assigned_at,
                expires_at=assignment.expires_at,
                context=assignment.context,
            )
            for assignment, role in roles
        ]

    async def get_user_permissions(self, user_id: int) -> list[str]:
        """Effective permission set, sorted by name."""
        async with self._uow_factory() as uow:
            permissions = await self._effective_permissions(uow, user_id)
        return sorted({p.name for p in permissions})

    async def get_user_feature_access(self, user_id: int) -> dict[str, str]:
        """Highest access level per feature module across effective roles."""
        async with self._uow_factory() as uow:
            roles = await self._effective_roles(uow, user_id)
            rows = await uow.features.list_access([role.id for _, role in roles])

        levels: dict[str, AccessLevel] = {}
        for row in rows:
            level = AccessLevel(row.access_level)
            current = levels.get(row.module_name)
            if current is None or level.rank > current.rank:
                levels[row.module_name] = level
        return {module: level.value for module, level in sorted(levels.items())}

    async def can_access_patient(
        self,
        user_id: int,
        patient_id: int,
        access_type: AccessType = AccessType.READ,
    ) -> bool:
        """Ownership policy for patient records; see ``PatientAccessPolicy``."""
        access_type = AccessType(access_type)
        policy = self.policy

        if await self.has_any_role(user_id, policy.full_access_roles):
            decision, rule = True, "full_access"
        elif user_id == patient_id and access_type == AccessType.READ:
            decision, rule = True, "self_read"
        elif await self.has_any_role(user_id, policy.clinical_roles) and (
            await self._has_care_relationship(user_id, patient_id)
        ):
            decision, rule = True, "care_relationship"
        elif await self.has_any_role(user_id, policy.front_desk_roles):
            decision = await self.has_permission(user_id, policy.front_desk_permission)
            rule = "front_desk"
        else:
            decision, rule = False, "default_deny"

        logger.debug(
            "Patient access evaluated",
            user_id=user_id,
            patient_id=patient_id,
            access_type=access_type.value,
            rule=rule,
            allowed=decision,
        )
        return decision

    async def _has_care_relationship(self, doctor_id: int, patient_id: int) -> bool:
        async with self._uow_factory() as uow:
            return await uow.care.has_active(doctor_id, patient_id)

    # =========================================================================
    # Read models
    # =========================================================================

    async def list_roles(self) -> list[Role]:
        async with self._uow_factory() as uow:
            return await uow.roles.list_active()

    async def list_permissions(self) -> list[Permission]:
        async with self._uow_factory() as uow:
            return await uow.permissions.list_active()

    async def list_feature_modules(self) -> list[FeatureModule]:
        async with self._uow_factory() as uow:
            return await uow.features.list_modules()

    async def get_role_permissions(self, role_id: int) -> list[Permission]:
        async with self._uow_factory() as uow:
            await self._require_role(uow, role_id)
            granted = await uow.permissions.list_granted([role_id])
        return granted.get(role_id, [])

    async def get_role_feature_access(self, role_id: int) -> list[FeatureAccessView]:
        async with self._uow_factory() as uow:
            await self._require_role(uow, role_id)
            return await uow.features.list_access([role_id])

    async def list_audit_entries(
        self, limit: int = 100, entity_type: AuditEntity | str | None = None
    ) -> list[AuditLogEntry]:
        entity = AuditEntity(entity_type).value if entity_type else None
        async with self._uow_factory() as uow:
            return await uow.audit.list_recent(limit=limit, entity_type=entity)

    # =========================================================================
    # Mutation
    # =========================================================================

    async def create_role(self, data: RoleCreate, created_by: int | None) -> Role:
        now = self._clock()
        async with self._uow_factory() as uow:
            role = await uow.roles.create(data)
            await self._audit(
                uow, created_by, AuditAction.CREATE, AuditEntity.ROLE, role.id, None, role, now
            )
            await uow.commit()

        logger.info("Role created", role_id=role.id, role_name=role.name, created_by=created_by)
        return role

    async def deactivate_role(self, role_id: int, performed_by: int | None) -> Role:
        """Soft-deactivate a custom role that nobody holds."""
        now = self._clock()
        async with self._uow_factory() as uow:
            role = await self._require_role(uow, role_id)
            if role.is_system:
                raise ConflictError("System roles cannot be deactivated", role_id=role_id)
            holders = [
                a for a in await uow.assignments.list_for_role(role_id) if a.is_effective(now)
            ]
            if holders:
                raise ConflictError("Role is still assigned to users", role_id=role_id)

            updated = await uow.roles.deactivate(role_id)
            await self._audit(
                uow,
                performed_by,
                AuditAction.DEACTIVATE,
                AuditEntity.ROLE,
                role_id,
                role,
                updated,
                now,
            )
            await uow.commit()

        logger.info("Role deactivated", role_id=role_id, performed_by=performed_by)
        return updated

    async def assign_role_to_user(
        self,
        user_id: int,
        role_id: int,
        assigned_by: int | None,
        expires_at: datetime | None = None,
        context: dict[str, Any] | None = None,
    ) -> UserRoleAssignment:
        now = self._clock()
        async with self._uow_factory() as uow:
            role = await self._require_role(uow, role_id)

            # A lapsed assignment still flagged active would collide with the new row
            closed: UserRoleAssignment | None = None
            lapsed = await uow.assignments.get_active(user_id, role.id)
            if lapsed is not None and not lapsed.is_effective(now):
                closed = await uow.assignments.revoke(lapsed.id, now)

            assignment = await uow.assignments.add(
                user_id=user_id,
                role_id=role.id,
                assigned_by=assigned_by,
                assigned_at=now,
                expires_at=expires_at,
                context=context,
            )
            await self._audit(
                uow,
                assigned_by,
                AuditAction.ASSIGN,
                AuditEntity.USER_ROLE_ASSIGNMENT,
                assignment.id,
                closed,
                assignment,
                now,
            )
            await uow.commit()

        await self.invalidate_user(user_id)
        logger.info(
            "Role assigned to user",
            target_user_id=user_id,
            role_id=role_id,
            assigned_by=assigned_by,
            expires_at=expires_at.isoformat() if expires_at else None,
        )
        return assignment

    async def revoke_role_from_user(
        self, user_id: int, role_id: int, revoked_by: int | None
    ) -> UserRoleAssignment:
        now = self._clock()
        async with self._uow_factory() as uow:
            current = await uow.assignments.get_active(user_id, role_id)
            if current is None:
                raise NotFoundError(
                    "User does not hold this role", user_id=user_id, role_id=role_id
                )
            revoked = await uow.assignments.revoke(current.id, now)
            await self._audit(
                uow,
                revoked_by,
                AuditAction.REVOKE,
                AuditEntity.USER_ROLE_ASSIGNMENT,
                revoked.id,
                current,
                revoked,
                now,
            )
            await uow.commit()

        await self.invalidate_user(user_id)
        logger.info(
            "Role revoked from user",
            target_user_id=user_id,
            role_id=role_id,
            revoked_by=revoked_by,
        )
        return revoked

    async def assign_permission_to_role(
        self, role_id: int, permission_id: int, granted_by: int | None
    ) -> RolePermissionGrant:
        now = self._clock()
        async with self._uow_factory() as uow:
            role = await self._require_role(uow, role_id)
            permission = await self._require_permission(uow, permission_id)

            grant = await uow.permissions.add_grant(role.id, permission.id, granted_by, now)
            await self._audit(
                uow,
                granted_by,
                AuditAction.GRANT,
                AuditEntity.ROLE_PERMISSION_GRANT,
                grant.id,
                None,
                grant,
                now,
            )
            holders = await uow.assignments.list_holders(role.id)
            await uow.commit()

        await self.cache.invalidate_users(holders)
        logger.info(
            "Permission granted to role",
            role_id=role_id,
            permission=permission.name,
            granted_by=granted_by,
            invalidated_users=len(holders),
        )
        return grant

    async def remove_permission_from_role(
        self, role_id: int, permission_id: int, revoked_by: int | None
    ) -> RolePermissionGrant:
        now = self._clock()
        async with self._uow_factory() as uow:
            grant = await uow.permissions.get_active_grant(role_id, permission_id)
            if grant is None:
                raise NotFoundError(
                    "Permission is not granted to this role",
                    role_id=role_id,
                    permission_id=permission_id,
                )
            revoked = await uow.permissions.revoke_grant(grant.id, now)
            await self._audit(
                uow,
                revoked_by,
                AuditAction.REVOKE,
                AuditEntity.ROLE_PERMISSION_GRANT,
                revoked.id,
                grant,
                revoked,
                now,
            )
            holders = await uow.assignments.list_holders(role_id)
            await uow.commit()

        await self.cache.invalidate_users(holders)
        logger.info(
            "Permission revoked from role",
            role_id=role_id,
            permission_id=permission_id,
            revoked_by=revoked_by,
            invalidated_users=len(holders),
        )
        return revoked

    async def set_feature_access(
        self,
        role_id: int,
        module_id: int,
        access_level: AccessLevel | str,
        granted_by: int | None,
    ) -> RoleFeatureAccess:
        """Replace the role's active access row on a module with a fresh one."""
        level = AccessLevel(access_level)
        now = self._clock()
        async with self._uow_factory() as uow:
            role = await self._require_role(uow, role_id)
            module = await uow.features.get_module(module_id)
            if module is None or not module.is_active:
                raise NotFoundError(f"Feature module {module_id} not found")

            current = await uow.features.get_active_access(role.id, module.id)
            if current is not None:
                if current.access_level == level.value:
                    raise ConflictError(
                        f"Role already has '{level.value}' access to this module",
                        role_id=role_id,
                        module_id=module_id,
                    )
                await uow.features.revoke_access(current.id, now)

            access = await uow.features.add_access(role.id, module.id, level, granted_by, now)
            await self._audit(
                uow,
                granted_by,
                AuditAction.UPDATE if current else AuditAction.GRANT,
                AuditEntity.ROLE_FEATURE_ACCESS,
                access.id,
                current,
                access,
                now,
            )
            holders = await uow.assignments.list_holders(role.id)
            await uow.commit()

        await self.cache.invalidate_users(holders)
        logger.info(
            "Feature access set",
            role_id=role_id,
            module=module.name,
            access_level=level.value,
            granted_by=granted_by,
        )
        return access

    # =========================================================================
    # Invalidation
    # =========================================================================

    async def invalidate_user(self, user_id: int) -> None:
        await self.cache.invalidate_user(user_id)

    async def invalidate_role(self, role_id: int) -> None:
        """Drop cached checks of every holder of the role."""
        async with self._uow_factory() as uow:
            holders = await uow.assignments.list_holders(role_id)
        await self.cache.invalidate_users(holders)

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    async def _require_role(uow: UnitOfWork, role_id: int) -> Role:
        role = await uow.roles.get(role_id)
        if role is None or not role.is_active:
            raise NotFoundError(f"Role {role_id} not found")
        return role

    @staticmethod
    async def _require_permission(uow: UnitOfWork, permission_id: int) -> Permission:
        permission = await uow.permissions.get(permission_id)
        if permission is None or not permission.is_active:
            raise NotFoundError(f"Permission {permission_id} not found")
        return permission

    @staticmethod
    async def _audit(
        uow: UnitOfWork,
        actor_id: int | None,
        action: AuditAction,
        entity_type: AuditEntity,
        entity_id: int,
        before: HealthcareBaseModel | None,
        after: HealthcareBaseModel | None,
        now: datetime,
    ) -> AuditLogEntry:
        return await uow.audit.append(
            AuditLogCreate(
                actor_id=actor_id,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                before=_snapshot(before),
                after=_snapshot(after),
                created_at=now,
            )
        )
