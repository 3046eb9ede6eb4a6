# permissions.py
import logging

from rest_framework import permissions

logger = logging.getLogger(__name__)


class IsHouseholdMember(permissions.BasePermission):
    """
    Any member of the caller's household, regardless of role.

    Relies on ``request.user_permissions`` built by HouseholdContextMixin.
    """

    message = "You must belong to a household to use this endpoint."

    def has_permission(self, request, view):
        permissions_data = getattr(request, "user_permissions", {})

        if not permissions_data.get("household_exists", False):
            logger.warning(
                "Household access denied - no household",
                extra={
                    "user_id": getattr(request.user, "id", None),
                    "action": "household_access_denied_not_found",
                    "component": "IsHouseholdMember",
                    "severity": "medium",
                },
            )
            return False

        is_authorized = permissions_data.get("household_role") is not None

        if not is_authorized:
            logger.warning(
                "Household membership access denied",
                extra={
                    "user_id": request.user.id,
                    "household_id": permissions_data.get("current_household_id"),
                    "action": "household_membership_denied",
                    "component": "IsHouseholdMember",
                    "severity": "medium",
                },
            )
        return is_authorized


class IsHouseholdAdmin(permissions.BasePermission):
    """
    Household admins, plus superusers who belong to the household.

    Guards balance adjustment, category management, household settings and
    member administration.
    """

    message = "Only household admins can perform this action."

    ADMIN_ROLES = ["admin"]

    def has_permission(self, request, view):
        permissions_data = getattr(request, "user_permissions", {})

        if not permissions_data.get("household_exists", False):
            logger.warning(
                "Admin access denied - no household",
                extra={
                    "user_id": getattr(request.user, "id", None),
                    "action": "admin_access_denied_not_found",
                    "component": "IsHouseholdAdmin",
                    "severity": "medium",
                },
            )
            return False

        user_role = permissions_data.get("household_role")
        is_authorized = (
            permissions_data.get("is_superuser") or user_role in self.ADMIN_ROLES
        )

        if is_authorized:
            logger.debug(
                "Admin-level access granted",
                extra={
                    "user_id": request.user.id,
                    "household_id": permissions_data.get("current_household_id"),
                    "user_role": user_role,
                    "action": "admin_access_granted",
                    "component": "IsHouseholdAdmin",
                },
            )
        else:
            logger.warning(
                "Admin-level access denied",
                extra={
                    "user_id": request.user.id,
                    "household_id": permissions_data.get("current_household_id"),
                    "user_role": user_role,
                    "view_name": view.__class__.__name__,
                    "action": "admin_access_denied",
                    "component": "IsHouseholdAdmin",
                    "severity": "high",
                },
            )
        return is_authorized
