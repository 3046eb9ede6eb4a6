# ledger/mixins/household_context.py
"""
Household context mixin.
Thin wrapper around the household context service.
"""

import logging

from ..services.household_context_service import HouseholdContextService

logger = logging.getLogger(__name__)


class HouseholdContextMixin:
    """
    Resolves the caller's household before permission checks run.
    """

    context_service = HouseholdContextService()

    def initial(self, request, *args, **kwargs):
        """
        Build household context, then run DRF's normal initial().

        Context must be set BEFORE super().initial() so permission classes
        can read ``request.user_permissions``.
        """
        self._process_household_context(request)

        logger.debug(
            "Household context initialized before permission checks",
            extra={
                "user_id": getattr(request.user, "id", "anonymous"),
                "household_exists": request.user_permissions.get("household_exists", False),
                "current_household_id": request.user_permissions.get("current_household_id"),
                "action": "household_context_pre_permissions",
                "component": "HouseholdContextMixin",
            },
        )

        super().initial(request, *args, **kwargs)

    def _process_household_context(self, request):
        try:
            self.context_service.build_request_context(request)
        except Exception as e:
            logger.error(
                "Household context processing failed",
                extra={
                    "user_id": getattr(request.user, "id", "anonymous"),
                    "error": str(e),
                    "action": "household_context_processing_failed",
                    "component": "HouseholdContextMixin",
                    "severity": "high",
                },
            )
            raise
