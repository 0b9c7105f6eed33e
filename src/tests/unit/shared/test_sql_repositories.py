"""Tests for the SQLAlchemy RBAC store against SQLite (aiosqlite)."""

from datetime import timedelta

import pytest
import pytest_asyncio

from shared.database import CareAssignmentModel, UserModel
from shared.errors import ConflictError
from shared.models import AccessType, RoleCreate, utc_now
from shared.rbac import ROLE_PERMISSIONS, LocalPermissionCache, RBACEngine, seed_rbac
from shared.rbac.seed import FEATURE_MODULES, PERMISSIONS, SYSTEM_ROLES


@pytest.fixture
def sql_engine(sql_uow_factory) -> RBACEngine:
    return RBACEngine(sql_uow_factory, LocalPermissionCache())


async def add_user(session_factory, user_id: int, email: str) -> None:
    async with session_factory() as session:
        session.add(UserModel(id=user_id, email=email, name=f"User {user_id}"))
        await session.commit()


class TestSeed:
    """Test the deploy-time vocabulary."""

    async def test_seed_inserts_vocabulary(self, sql_uow_factory, sql_engine) -> None:
        report = await seed_rbac(sql_uow_factory)

        assert report.roles == len(SYSTEM_ROLES) == 6
        assert report.feature_modules == len(FEATURE_MODULES)
        assert report.permissions == len(PERMISSIONS)
        assert report.grants == sum(len(names) for names in ROLE_PERMISSIONS.values())
        assert report.assignments == 0

        roles = await sql_engine.list_roles()
        assert all(r.is_system for r in roles)

    async def test_seed_is_idempotent(self, sql_uow_factory) -> None:
        await seed_rbac(sql_uow_factory)
        second = await seed_rbac(sql_uow_factory)
        assert second.total == 0

    async def test_bootstrap_super_admin(
        self, session_factory, sql_uow_factory, sql_engine
    ) -> None:
        await add_user(session_factory, 1, "root@clinic.test")

        first = await seed_rbac(sql_uow_factory, bootstrap_super_admin_id=1)
        second = await seed_rbac(sql_uow_factory, bootstrap_super_admin_id=2)

        assert first.assignments == 1
        assert second.assignments == 0
        assert await sql_engine.has_permission(1, "system.configure_roles")
        assert not await sql_engine.has_permission(2, "system.configure_roles")

    async def test_seeded_role_permissions(self, sql_uow_factory, sql_engine) -> None:
        await seed_rbac(sql_uow_factory)
        roles = {r.name: r.id for r in await sql_engine.list_roles()}

        doctor = await sql_engine.get_role_permissions(roles["doctor"])

        assert sorted(p.name for p in doctor) == sorted(ROLE_PERMISSIONS["doctor"])


class TestSqlMutations:
    """Test edge lifecycle and uniqueness in the database."""

    @pytest_asyncio.fixture
    async def seeded(self, session_factory, sql_uow_factory, sql_engine):
        await seed_rbac(sql_uow_factory)
        await add_user(session_factory, 7, "dr.house@clinic.test")
        roles = {r.name: r.id for r in await sql_engine.list_roles()}
        permissions = {p.name: p.id for p in await sql_engine.list_permissions()}
        return roles, permissions

    async def test_duplicate_active_assignment(self, sql_engine, seeded) -> None:
        """Test the partial unique index rejects a second active assignment."""
        roles, _ = seeded
        await sql_engine.assign_role_to_user(7, roles["doctor"], 1)

        with pytest.raises(ConflictError):
            await sql_engine.assign_role_to_user(7, roles["doctor"], 1)

        entries = await sql_engine.list_audit_entries()
        assert len(entries) == 1

    async def test_revoke_then_reassign(self, sql_engine, seeded) -> None:
        """Test revoked rows are kept and do not block a new assignment."""
        roles, _ = seeded
        first = await sql_engine.assign_role_to_user(7, roles["doctor"], 1)
        revoked = await sql_engine.revoke_role_from_user(7, roles["doctor"], 1)
        second = await sql_engine.assign_role_to_user(7, roles["doctor"], 1)

        assert revoked.id == first.id
        assert revoked.revoked_at is not None
        assert second.id != first.id
        assert await sql_engine.has_any_role(7, ["doctor"])

        actions = [e.action for e in await sql_engine.list_audit_entries()]
        assert sorted(actions) == ["assign", "assign", "revoke"]

    async def test_deactivate_role_with_lapsed_holder(self, sql_engine, seeded) -> None:
        role = await sql_engine.create_role(
            RoleCreate(name="locum", display_name="Locum Doctor"), 1
        )
        await sql_engine.assign_role_to_user(
            7, role.id, 1, expires_at=utc_now() - timedelta(hours=1)
        )
        await sql_engine.assign_role_to_user(8, role.id, 1)

        with pytest.raises(ConflictError):
            await sql_engine.deactivate_role(role.id, 1)

        await sql_engine.revoke_role_from_user(8, role.id, 1)
        deactivated = await sql_engine.deactivate_role(role.id, 1)

        assert deactivated.is_active is False

    async def test_duplicate_grant(self, sql_engine, seeded) -> None:
        roles, permissions = seeded
        with pytest.raises(ConflictError):
            await sql_engine.assign_permission_to_role(
                roles["doctor"], permissions["patients.clinical_read"], 1
            )

    async def test_grant_propagates(self, sql_engine, seeded) -> None:
        roles, permissions = seeded
        await sql_engine.assign_role_to_user(7, roles["doctor"], 1)
        assert not await sql_engine.has_permission(7, "billing.read")

        await sql_engine.assign_permission_to_role(roles["doctor"], permissions["billing.read"], 1)

        assert await sql_engine.has_permission(7, "billing.read")

    async def test_feature_access_replacement(self, sql_engine, seeded) -> None:
        roles, _ = seeded
        modules = {m.name: m.id for m in await sql_engine.list_feature_modules()}
        await sql_engine.assign_role_to_user(7, roles["doctor"], 1)

        clinical = modules["clinical_management"]
        await sql_engine.set_feature_access(roles["doctor"], clinical, "write", 1)
        await sql_engine.set_feature_access(roles["doctor"], clinical, "admin", 1)

        access = await sql_engine.get_role_feature_access(roles["doctor"])
        assert [(a.module_name, a.access_level) for a in access] == [
            ("clinical_management", "admin")
        ]
        assert await sql_engine.get_user_feature_access(7) == {"clinical_management": "admin"}

    async def test_create_duplicate_role(self, sql_engine, seeded) -> None:
        with pytest.raises(ConflictError):
            await sql_engine.create_role(RoleCreate(name="doctor", display_name="Doctor"), 1)

    async def test_care_relationship(self, session_factory, sql_engine, seeded) -> None:
        roles, _ = seeded
        await sql_engine.assign_role_to_user(7, roles["doctor"], 1)
        async with session_factory() as session:
            session.add(CareAssignmentModel(patient_id=50, doctor_id=7, assignment_date=utc_now()))
            session.add(
                CareAssignmentModel(
                    patient_id=51, doctor_id=7, assignment_date=utc_now(), is_active=False
                )
            )
            await session.commit()

        assert await sql_engine.can_access_patient(7, 50, AccessType.WRITE)
        assert not await sql_engine.can_access_patient(7, 51)

    async def test_audit_snapshots_are_json(self, sql_engine, seeded) -> None:
        roles, _ = seeded
        await sql_engine.assign_role_to_user(7, roles["doctor"], 1, context={"ward": "B"})

        (entry,) = await sql_engine.list_audit_entries(entity_type="user_role_assignment")

        assert entry.after["context"] == {"ward": "B"}
        assert isinstance(entry.after["assigned_at"], str)
        assert entry.created_at.tzinfo is not None
