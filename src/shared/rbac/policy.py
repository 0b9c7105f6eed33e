"""Patient record ownership policy."""

from __future__ import annotations

from dataclasses import dataclass, field

from shared.config import RBACSettings


@dataclass(frozen=True)
class PatientAccessPolicy:
    """Role sets consulted by ``RBACEngine.can_access_patient``.

    Rules, first match wins:
    1. full-access role holder
    2. the patient reading their own record
    3. clinical role holder with an active care relationship to the patient
    4. front-desk role holder, decided by ``front_desk_permission``
    5. deny
    """

    full_access_roles: frozenset[str] = field(default_factory=lambda: frozenset({"super_admin"}))
    clinical_roles: frozenset[str] = field(default_factory=lambda: frozenset({"doctor"}))
    front_desk_roles: frozenset[str] = field(default_factory=lambda: frozenset({"receptionist"}))
    front_desk_permission: str = "patients.basic_read"

    @classmethod
    def from_settings(cls, settings: RBACSettings) -> PatientAccessPolicy:
        return cls(
            full_access_roles=frozenset(settings.full_access_roles),
            clinical_roles=frozenset(settings.clinical_roles),
            front_desk_roles=frozenset(settings.front_desk_roles),
            front_desk_permission=settings.front_desk_permission,
        )
