# worksmart/permissions.py
import enum
from typing import Dict, FrozenSet

from .errors import PermissionDeniedError


class StaffRole(str, enum.Enum):
    admin = "Admin"
    hub_coordinator = "Hub Coordinator"
    professional_counselor = "Professional Counselor"
    lay_counsellor = "Lay Counsellor"
    clinician = "Clinician"


class Action(str, enum.Enum):
    create_client = "create_client"
    edit_client = "edit_client"
    delete_client = "delete_client"
    update_status = "update_status"
    record_outreach = "record_outreach"
    import_clients = "import_clients"
    manage_facilities = "manage_facilities"
    view_reports = "view_reports"


# Every role can read reports and bring in a register export
_SHARED = {Action.view_reports, Action.import_clients}

DEFAULT_ROLE_PERMISSIONS: Dict[StaffRole, FrozenSet[Action]] = {
    StaffRole.admin: frozenset(_SHARED | {
        Action.edit_client, Action.delete_client, Action.update_status,
        Action.manage_facilities,
    }),
    StaffRole.hub_coordinator: frozenset(_SHARED | {
        Action.manage_facilities,
    }),
    StaffRole.professional_counselor: frozenset(_SHARED | {
        Action.create_client, Action.edit_client, Action.update_status,
        Action.record_outreach, Action.manage_facilities,
    }),
    StaffRole.lay_counsellor: frozenset(_SHARED | {
        Action.record_outreach,
    }),
    StaffRole.clinician: frozenset(_SHARED | {
        Action.create_client,
    }),
}


def permissions_for(role: StaffRole) -> FrozenSet[Action]:
    return DEFAULT_ROLE_PERMISSIONS.get(StaffRole(role), frozenset())


def ensure_permitted(role: StaffRole, permitted: FrozenSet[Action], action: Action) -> None:
    if action not in permitted:
        raise PermissionDeniedError(StaffRole(role).value, Action(action).value)
