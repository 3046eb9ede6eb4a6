"""
Signal handlers for the ledger app.
"""

import logging

from django.db.models.signals import post_save
from django.dispatch import receiver

from .models import Household, HouseholdMembership
from .services.category_service import CategoryService

logger = logging.getLogger(__name__)


@receiver(post_save, sender=Household)
def initialize_household(sender, instance, created, **kwargs):
    """
    Give a new household its owner's admin membership and the system
    "Balance Adjustment" category.
    """
    if not created:
        return

    if not HouseholdMembership.objects.filter(user=instance.owner).exists():
        HouseholdMembership.objects.create(
            user=instance.owner,
            household=instance,
            role=HouseholdMembership.ROLE_ADMIN,
        )

    CategoryService.get_system_category(instance)

    logger.info(
        "Household initialized",
        extra={
            "household_id": instance.id,
            "owner_id": instance.owner_id,
            "action": "household_initialized",
            "component": "initialize_household",
        },
    )
