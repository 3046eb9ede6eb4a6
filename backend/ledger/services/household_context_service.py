# ledger/services/household_context_service.py
"""
Household context service.
Resolves the caller's single household and role before permission checks run.
"""

import logging

from django.db import DatabaseError

from ..models import HouseholdMembership

logger = logging.getLogger(__name__)


class HouseholdContextService:
    """
    Builds request context for household-scoped views.

    Sets on the request:
    - ``household``: the caller's Household or None
    - ``membership``: the caller's HouseholdMembership or None
    - ``user_permissions``: dict consumed by permission classes
    """

    def build_request_context(self, request):
        """
        Populate household context on the request.

        Raises:
            DatabaseError: On database connectivity issues
        """
        self._initialize_request_defaults(request)

        if not request.user or not request.user.is_authenticated:
            return

        request.user_permissions["is_superuser"] = request.user.is_superuser

        try:
            membership = (
                HouseholdMembership.objects.select_related("household")
                .filter(user=request.user, household__is_active=True)
                .first()
            )
        except DatabaseError as e:
            logger.error(
                "Database error during household context resolution",
                extra={
                    "user_id": request.user.id,
                    "error": str(e),
                    "action": "database_error",
                    "component": "HouseholdContextService",
                    "severity": "high",
                },
            )
            raise

        if membership is None:
            logger.debug(
                "User has no active household",
                extra={
                    "user_id": request.user.id,
                    "action": "household_context_missing",
                    "component": "HouseholdContextService",
                },
            )
            return

        request.membership = membership
        request.household = membership.household
        request.user_permissions.update(
            {
                "household_exists": True,
                "household_role": membership.role,
                "current_household_id": membership.household_id,
            }
        )

        logger.debug(
            "Household context resolved",
            extra={
                "user_id": request.user.id,
                "household_id": membership.household_id,
                "household_role": membership.role,
                "action": "household_context_resolved",
                "component": "HouseholdContextService",
            },
        )

    def _initialize_request_defaults(self, request):
        request.household = None
        request.membership = None
        request.user_permissions = {
            "is_superuser": False,
            "household_role": None,
            "current_household_id": None,
            "household_exists": False,
        }
