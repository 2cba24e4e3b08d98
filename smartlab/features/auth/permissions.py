"""
Authorization kernel.

Role gates are FastAPI dependencies layered on ``get_current_user``.
Ownership checks are plain functions called by the services once the target
resource is loaded. Every denial is a 403 with a readable reason.
"""

from typing import Any

from fastapi import Depends

from smartlab.features.auth.dependencies import get_current_user
from smartlab.features.auth.models import Role, STAFF_ROLES, User
from smartlab.shared.exceptions import ForbiddenException


ROLE_DENIED = "You do not have permission to perform this action"


def require_roles(*roles: Role):
    """Dependency factory: pass iff the current principal's role is one of ``roles``."""
    allowed = frozenset(roles)

    async def dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            raise ForbiddenException(ROLE_DENIED)
        return current_user

    return dependency


# Named capabilities
require_staff = require_roles(*STAFF_ROLES)
require_superadmin = require_roles(Role.SUPERADMIN)
require_patient = require_roles(Role.PATIENT)
can_manage_patients = require_staff
can_approve = require_staff


def is_staff(user: User) -> bool:
    return user.role in STAFF_ROLES


def is_superadmin(user: User) -> bool:
    return user.role == Role.SUPERADMIN


def is_owner(user: User, owner_id: Any) -> bool:
    return owner_id is not None and str(user.id) == str(owner_id)


def ensure_owner(user: User, owner_id: Any, message: str = "You can only access your own records") -> None:
    """Ownership gate: super-admin, or the principal whose id is ``owner_id``."""
    if not (is_superadmin(user) or is_owner(user, owner_id)):
        raise ForbiddenException(message)


def ensure_patient_access(user: User, patient_id: Any, message: str = "You can only access your own records") -> None:
    """Staff pass; a patient must be the owning patient of the record."""
    if is_staff(user):
        return
    if not is_owner(user, patient_id):
        raise ForbiddenException(message)
