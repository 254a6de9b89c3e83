# worksmart/security.py
from typing import FrozenSet, Optional

from fastapi import Depends, Header, HTTPException, status
from pydantic import BaseModel
import structlog

from .errors import PermissionDeniedError
from .permissions import Action, StaffRole, ensure_permitted, permissions_for

security_logger = structlog.get_logger("security")


class StaffContext(BaseModel):
    """Who is acting. Identity and role are resolved upstream; this service trusts the headers."""
    identity: Optional[str] = None
    role: StaffRole
    permissions: FrozenSet[Action]


async def get_current_staff(
    x_staff_role: Optional[str] = Header(None),
    x_staff_identity: Optional[str] = Header(None),
) -> StaffContext:
    if not x_staff_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing staff role",
        )
    try:
        role = StaffRole(x_staff_role.strip())
    except ValueError:
        security_logger.warning("unknown_staff_role", role=x_staff_role, identity=x_staff_identity)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Unknown staff role '{x_staff_role}'",
        )
    return StaffContext(identity=x_staff_identity, role=role, permissions=permissions_for(role))


def require_permission(action: Action):
    """Dependency factory for action-based access control"""
    async def permission_dependency(staff: StaffContext = Depends(get_current_staff)) -> StaffContext:
        try:
            ensure_permitted(staff.role, staff.permissions, action)
        except PermissionDeniedError as e:
            security_logger.warning("access_denied", role=staff.role.value, identity=staff.identity, action=action.value)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.message)
        return staff

    return permission_dependency
