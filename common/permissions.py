import logging

from rest_framework.permissions import BasePermission

from core.models import User

logger = logging.getLogger("security.authorization")

ANY_ROLE = {User.Role.CASHIER, User.Role.SUPERVISOR, User.Role.ADMIN}
SUPERVISORS = {User.Role.SUPERVISOR, User.Role.ADMIN}

ROLE_CAPABILITY_MATRIX = {
    "inventory.view": ANY_ROLE,
    "sales.create": ANY_ROLE,
    "sales.view": ANY_ROLE,
    "sales.collect": ANY_ROLE,
    "customers.manage": ANY_ROLE,
    "consignment.view": ANY_ROLE,
    "consignment.manage": ANY_ROLE,
    "units.register": SUPERVISORS,
    "units.manage": SUPERVISORS,
    "stock.adjust": SUPERVISORS,
    "stock.thresholds": SUPERVISORS,
    "alerts.resolve": SUPERVISORS,
    "sales.cancel": SUPERVISORS,
    "sales.void": {User.Role.ADMIN},
    "rates.manage": SUPERVISORS,
}


def get_user_role(user):
    if not user or not user.is_authenticated:
        return None
    if user.is_superuser:
        return User.Role.ADMIN
    role = getattr(user, "role", None)
    if role:
        return role
    if getattr(user, "is_staff", False):
        return User.Role.ADMIN
    return User.Role.CASHIER


def user_has_capability(user, capability):
    if not user or not user.is_authenticated:
        return False
    if user.is_superuser:
        return True
    allowed_roles = ROLE_CAPABILITY_MATRIX.get(capability)
    if not allowed_roles:
        return False
    return get_user_role(user) in allowed_roles


class RoleCapabilityPermission(BasePermission):
    """Check the capability mapped to the view action and log denials."""

    message = "You do not have permission to perform this action."

    def has_permission(self, request, view):
        capability_map = getattr(view, "permission_action_map", {})
        action_key = getattr(view, "action", None) or request.method.lower()
        capability = capability_map.get(action_key)
        if capability is None:
            return True

        allowed = user_has_capability(request.user, capability)
        if not allowed:
            logger.warning(
                "permission_denied capability=%s user=%s role=%s method=%s path=%s action=%s",
                capability,
                getattr(request.user, "username", "anonymous"),
                get_user_role(request.user),
                request.method,
                request.path,
                action_key,
            )
        return allowed
