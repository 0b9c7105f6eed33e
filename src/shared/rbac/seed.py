"""Deploy-time RBAC vocabulary.

Seeding is idempotent: rows are matched by name and only missing roles,
modules, permissions and grants are inserted, so re-running it on every
start-up never duplicates or reactivates anything.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from shared.models import FeatureModuleCreate, PermissionCreate, RoleCreate, utc_now
from shared.observability import get_logger

from .repositories import UnitOfWork

logger = get_logger(__name__)


SYSTEM_ROLES: list[RoleCreate] = [
    RoleCreate(
        name="super_admin",
        display_name="Super Administrator",
        description="System super administrator with full access and dynamic role configuration",
        color="#dc3545",
        icon="crown",
        is_system=True,
    ),
    RoleCreate(
        name="admin",
        display_name="Administrator",
        description="System administrator with user management and audit oversight",
        color="#007bff",
        icon="shield-alt",
        is_system=True,
    ),
    RoleCreate(
        name="doctor",
        display_name="Doctor",
        description="Medical professional with clinical duties and patient care",
        color="#17a2b8",
        icon="user-md",
        is_system=True,
    ),
    RoleCreate(
        name="receptionist",
        display_name="Receptionist",
        description="Front desk operations and patient registration",
        color="#ffc107",
        icon="concierge-bell",
        is_system=True,
    ),
    RoleCreate(
        name="patient",
        display_name="Patient",
        description="Healthcare recipient with personal health record access",
        color="#6c757d",
        icon="user",
        is_system=True,
    ),
    RoleCreate(
        name="medical_coordinator",
        display_name="Medical Coordinator",
        description=(
            "Coordinates appointment scheduling and patient assignment to clinicians "
            "with limited audited access to patient histories"
        ),
        color="#20c997",
        icon="user-clock",
        is_system=True,
    ),
]


FEATURE_MODULES: list[FeatureModuleCreate] = [
    FeatureModuleCreate(
        name="user_management",
        display_name="User Management",
        description="Create, update, delete users and manage user accounts",
        icon="users",
        color="#007bff",
    ),
    FeatureModuleCreate(
        name="appointment_management",
        display_name="Appointment Management",
        description="Schedule, reschedule, cancel appointments and manage scheduling",
        icon="calendar",
        color="#28a745",
    ),
    FeatureModuleCreate(
        name="patient_management",
        display_name="Patient Management",
        description="Manage patient records, history, and personal information",
        icon="clipboard-user",
        color="#17a2b8",
    ),
    FeatureModuleCreate(
        name="clinical_management",
        display_name="Clinical Management",
        description="Medical records, treatment plans, clinical notes",
        icon="stethoscope",
        color="#dc3545",
    ),
    FeatureModuleCreate(
        name="billing_payments",
        display_name="Billing & Payments",
        description="Process payments, manage invoices, insurance claims",
        icon="credit-card",
        color="#ffc107",
    ),
    FeatureModuleCreate(
        name="front_desk",
        display_name="Front Desk Operations",
        description="Patient check-in, queue management, registration",
        icon="concierge-bell",
        color="#6f42c1",
    ),
    FeatureModuleCreate(
        name="system_admin",
        display_name="System Administration",
        description="System settings, monitoring, configuration",
        icon="cogs",
        color="#343a40",
    ),
    FeatureModuleCreate(
        name="role_management",
        display_name="Role Management",
        description="Dynamic role configuration, permissions, RBAC",
        icon="user-cog",
        color="#e83e8c",
    ),
    FeatureModuleCreate(
        name="audit_compliance",
        display_name="Audit & Compliance",
        description="Audit logs, compliance reporting, security monitoring",
        icon="shield-check",
        color="#20c997",
    ),
    FeatureModuleCreate(
        name="reports_analytics",
        display_name="Reports & Analytics",
        description="Generate reports, analytics, performance metrics",
        icon="chart-bar",
        color="#fd7e14",
    ),
]


def _permission(
    name: str,
    display_name: str,
    module: str,
    feature: str,
    action: str,
    resource: str | None = None,
) -> PermissionCreate:
    return PermissionCreate(
        name=name,
        display_name=display_name,
        module=module,
        feature=feature,
        action=action,
        resource=resource,
    )


PERMISSIONS: list[PermissionCreate] = [
    # Role configuration
    _permission("system.configure_roles", "Configure Dynamic Roles", "role_management", "role_config", "configure"),
    _permission("system.manage_permissions", "Manage Permissions Matrix", "role_management", "permissions", "manage"),
    _permission("system.feature_allocation", "Allocate Features to Roles", "role_management", "features", "allocate"),
    # User management
    _permission("users.create", "Create Users", "user_management", "users", "create"),
    _permission("users.read", "View Users", "user_management", "users", "read"),
    _permission("users.update", "Update Users", "user_management", "users", "update"),
    _permission("users.delete", "Delete Users", "user_management", "users", "delete"),
    _permission("users.assign_roles", "Assign User Roles", "user_management", "roles", "assign"),
    # Clinical
    _permission("patients.clinical_read", "View Assigned Patients", "patient_management", "patients", "read", "assigned"),
    _permission("patients.clinical_update", "Update Patient Clinical Info", "patient_management", "patients", "update", "clinical"),
    _permission("medical_records.create", "Create Medical Records", "clinical_management", "records", "create"),
    _permission("medical_records.read", "View Medical Records", "clinical_management", "records", "read"),
    _permission("medical_records.update", "Update Medical Records", "clinical_management", "records", "update"),
    _permission("appointments.doctor_read", "View Own Appointments", "appointment_management", "appointments", "read", "own"),
    _permission("appointments.doctor_update", "Update Own Appointments", "appointment_management", "appointments", "update", "own"),
    _permission("treatment_plans.create", "Create Treatment Plans", "clinical_management", "treatment", "create"),
    _permission("prescriptions.create", "Write Prescriptions", "clinical_management", "prescriptions", "create"),
    # Front desk
    _permission("front_desk.checkin", "Patient Check-in", "front_desk", "checkin", "process"),
    _permission("front_desk.registration", "Patient Registration", "front_desk", "registration", "create"),
    _permission("front_desk.queue_management", "Manage Patient Queue", "front_desk", "queue", "manage"),
    _permission("patients.basic_create", "Create Basic Patient Records", "patient_management", "patients", "create", "basic"),
    _permission("patients.basic_read", "View Basic Patient Info", "patient_management", "patients", "read", "basic"),
    # Appointments
    _permission("appointments.create", "Create Appointments", "appointment_management", "appointments", "create"),
    _permission("appointments.read", "View All Appointments", "appointment_management", "appointments", "read"),
    _permission("appointments.update", "Update All Appointments", "appointment_management", "appointments", "update"),
    _permission("appointments.delete", "Cancel Appointments", "appointment_management", "appointments", "delete"),
    _permission("appointments.resolve_conflicts", "Resolve Appointment Conflicts", "appointment_management", "conflicts", "resolve"),
    # Billing
    _permission("billing.create", "Create Invoices", "billing_payments", "invoices", "create"),
    _permission("billing.read", "View Invoices", "billing_payments", "invoices", "read"),
    _permission("billing.update", "Update Invoices", "billing_payments", "invoices", "update"),
    _permission("billing.delete", "Delete Invoices", "billing_payments", "invoices", "delete"),
    _permission("payments.process", "Process Payments", "billing_payments", "payments", "process"),
    # Patient self-service
    _permission("appointments.self_book", "Book Own Appointments", "appointment_management", "appointments", "create", "self"),
    _permission("appointments.self_read", "View Own Appointments", "appointment_management", "appointments", "read", "self"),
    _permission("medical_records.self_read", "View Own Medical Records", "clinical_management", "records", "read", "self"),
    _permission("prescriptions.self_read", "View Own Prescriptions", "clinical_management", "prescriptions", "read", "self"),
    # Administration
    _permission("audit.read", "View Audit Logs", "audit_compliance", "logs", "read"),
    _permission("system.basic_settings", "Basic System Settings", "system_admin", "settings", "configure", "basic"),
    _permission("reports.operational", "View Operational Reports", "reports_analytics", "reports", "read", "operational"),
    _permission("escalations.handle", "Handle System Escalations", "system_admin", "escalations", "handle"),
    # Care coordination
    _permission("patients.assign_clinician", "Assign Patients to Clinicians", "patient_management", "assignment", "assign"),
    _permission("patients.limited_history", "Limited Access to Patient Histories", "patient_management", "history", "read", "limited"),
]


_ADMINISTRATION = [
    "users.create",
    "users.read",
    "users.update",
    "users.delete",
    "users.assign_roles",
    "audit.read",
    "system.basic_settings",
    "reports.operational",
    "escalations.handle",
]

ROLE_PERMISSIONS: dict[str, list[str]] = {
    "super_admin": [
        "system.configure_roles",
        "system.manage_permissions",
        "system.feature_allocation",
        *_ADMINISTRATION,
    ],
    "admin": list(_ADMINISTRATION),
    "doctor": [
        "patients.clinical_read",
        "patients.clinical_update",
        "medical_records.create",
        "medical_records.read",
        "medical_records.update",
        "appointments.doctor_read",
        "appointments.doctor_update",
        "treatment_plans.create",
        "prescriptions.create",
    ],
    "receptionist": [
        "front_desk.checkin",
        "front_desk.registration",
        "front_desk.queue_management",
        "patients.basic_create",
        "patients.basic_read",
        "appointments.create",
        "appointments.read",
        "appointments.update",
        "appointments.delete",
        "appointments.resolve_conflicts",
        "billing.create",
        "billing.read",
        "billing.update",
        "billing.delete",
        "payments.process",
    ],
    "patient": [
        "appointments.self_book",
        "appointments.self_read",
        "medical_records.self_read",
        "prescriptions.self_read",
    ],
    "medical_coordinator": [
        "patients.assign_clinician",
        "patients.limited_history",
    ],
}


@dataclass
class SeedReport:
    """Rows inserted by one seeding run."""

    roles: int = 0
    feature_modules: int = 0
    permissions: int = 0
    grants: int = 0
    assignments: int = 0

    @property
    def total(self) -> int:
        return self.roles + self.feature_modules + self.permissions + self.grants + self.assignments


async def seed_rbac(
    uow_factory: Callable[[], UnitOfWork],
    bootstrap_super_admin_id: int | None = None,
) -> SeedReport:
    """Insert the missing parts of the vocabulary in one transaction.

    Args:
        uow_factory: Unit of work factory
        bootstrap_super_admin_id: User to hold ``super_admin`` when nobody does

    Returns:
        Counts of inserted rows
    """
    report = SeedReport()
    now = utc_now()

    async with uow_factory() as uow:
        role_ids: dict[str, int] = {}
        for data in SYSTEM_ROLES:
            role = await uow.roles.get_by_name(data.name)
            if role is None:
                role = await uow.roles.create(data)
                report.roles += 1
            role_ids[role.name] = role.id

        for data in FEATURE_MODULES:
            if await uow.features.get_module_by_name(data.name) is None:
                await uow.features.create_module(data)
                report.feature_modules += 1

        permission_ids: dict[str, int] = {}
        for data in PERMISSIONS:
            permission = await uow.permissions.get_by_name(data.name)
            if permission is None:
                permission = await uow.permissions.create(data)
                report.permissions += 1
            permission_ids[permission.name] = permission.id

        for role_name, permission_names in ROLE_PERMISSIONS.items():
            role_id = role_ids[role_name]
            for permission_name in permission_names:
                permission_id = permission_ids[permission_name]
                if await uow.permissions.get_active_grant(role_id, permission_id) is None:
                    await uow.permissions.add_grant(role_id, permission_id, None, now)
                    report.grants += 1

        if bootstrap_super_admin_id is not None:
            super_admin_id = role_ids["super_admin"]
            if not await uow.assignments.list_holders(super_admin_id):
                await uow.assignments.add(
                    user_id=bootstrap_super_admin_id,
                    role_id=super_admin_id,
                    assigned_by=None,
                    assigned_at=now,
                    context={"source": "bootstrap"},
                )
                report.assignments += 1

        await uow.commit()

    logger.info(
        "RBAC vocabulary seeded",
        roles=report.roles,
        feature_modules=report.feature_modules,
        permissions=report.permissions,
        grants=report.grants,
        assignments=report.assignments,
    )
    return report
