"""
Role permission documents.

Roles carry an opaque JSON permission blob (e.g. {"view_all": true,
"delete": true}). The data layer only parses it; what each flag allows is
decided by the consuming application.
"""

import json
import logging
from enum import Enum
from typing import Any, Dict, Optional

from crm_core.models import Role, User

logger = logging.getLogger(__name__)


class Permission(str, Enum):
    """Flags used by the seeded roles."""
    VIEW_ALL = "view_all"
    VIEW_ASSIGNED = "view_assigned"
    EDIT = "edit"
    DELETE = "delete"


# Permission documents shipped with the sample roles
DEFAULT_ROLE_PERMISSIONS = {
    "Sales_VP": {Permission.VIEW_ALL.value: True, Permission.DELETE.value: True},
    "Account_Executive": {Permission.VIEW_ASSIGNED.value: True, Permission.EDIT.value: True},
}


def serialize_permissions(permissions: Optional[Dict[str, Any]]) -> Optional[str]:
    if permissions is None:
        return None
    return json.dumps(permissions, sort_keys=True)


def parse_permissions(role: Optional[Role]) -> Dict[str, Any]:
    """Decode a role's permission blob; unreadable blobs count as no permissions."""
    if role is None or not role.permissions:
        return {}
    try:
        parsed = json.loads(role.permissions)
    except (TypeError, ValueError):
        logger.warning(f"Role {role.role_name} has malformed permissions, treating as empty")
        return {}
    if not isinstance(parsed, dict):
        logger.warning(f"Role {role.role_name} permissions are not an object, treating as empty")
        return {}
    return parsed


def has_permission(role: Optional[Role], permission) -> bool:
    """Check whether a role's permission blob sets a flag to true."""
    key = permission.value if isinstance(permission, Permission) else str(permission)
    return parse_permissions(role).get(key) is True


def user_has_permission(user: User, permission) -> bool:
    """Inactive users have no permissions."""
    if not user.is_active:
        return False
    allowed = has_permission(user.role, permission)
    if not allowed:
        logger.debug(f"Permission {permission} not granted to {user.email}")
    return allowed
