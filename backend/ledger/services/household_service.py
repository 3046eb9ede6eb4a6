# ledger/services/household_service.py
"""
Service for household setup and membership management.
"""

import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.db import transaction as db_transaction
from rest_framework.exceptions import PermissionDenied

from ..exceptions import NotFound
from ..models import Household, HouseholdMembership

logger = logging.getLogger(__name__)

User = get_user_model()


class HouseholdService:
    """Household creation, settings and member administration."""

    @staticmethod
    @db_transaction.atomic
    def create_household(user, name, base_currency=None):
        """
        Create a household owned by ``user``. The post_save signal adds the
        admin membership and the system category.

        Raises:
            ValidationError: User already belongs to a household
        """
        if HouseholdMembership.objects.filter(user=user).exists():
            raise ValidationError("User already belongs to a household")

        household = Household(
            name=(name or "").strip(),
            owner=user,
            base_currency=(base_currency or settings.LEDGER_DEFAULT_BASE_CURRENCY).upper(),
        )
        household.full_clean(exclude=["owner"])
        household.save()

        logger.info(
            "Household created",
            extra={
                "user_id": user.id,
                "household_id": household.id,
                "base_currency": household.base_currency,
                "action": "household_created",
                "component": "HouseholdService",
            },
        )
        return household

    @staticmethod
    @db_transaction.atomic
    def update_household(household, data):
        """
        Update name and base currency.

        The base currency can only change while the household has no
        transactions, since every stored posting is expressed in it.
        """
        if "name" in data:
            household.name = (data["name"] or "").strip()

        new_currency = (data.get("base_currency") or "").upper()
        if new_currency and new_currency != household.base_currency:
            if household.transactions.exists():
                raise ValidationError(
                    {"base_currency": "Base currency cannot be changed once transactions exist"}
                )
            household.base_currency = new_currency

        household.full_clean(exclude=["owner"])
        household.save()

        logger.info(
            "Household updated",
            extra={
                "household_id": household.id,
                "updated_fields": sorted(data.keys()),
                "action": "household_updated",
                "component": "HouseholdService",
            },
        )
        return household

    @staticmethod
    def list_members(household):
        return household.memberships.select_related("user").order_by("joined_at")

    @staticmethod
    @db_transaction.atomic
    def add_member(household, email, role=HouseholdMembership.ROLE_MEMBER):
        """
        Attach an existing user (by email) to the household.

        Raises:
            NotFound: No user with that email
            ValidationError: Invalid role or user already in a household
        """
        if role not in dict(HouseholdMembership.ROLE_CHOICES):
            raise ValidationError({"role": f"Invalid role: {role}"})

        user = User.objects.filter(email__iexact=(email or "").strip()).first()
        if user is None:
            raise NotFound(f"No user with email {email}.")
        if HouseholdMembership.objects.filter(user=user).exists():
            raise ValidationError({"email": "User already belongs to a household"})

        membership = HouseholdMembership.objects.create(
            household=household, user=user, role=role
        )

        logger.info(
            "Household member added",
            extra={
                "household_id": household.id,
                "member_user_id": user.id,
                "role": role,
                "action": "household_member_added",
                "component": "HouseholdService",
            },
        )
        return membership

    @staticmethod
    @db_transaction.atomic
    def update_member_role(household, acting_user, user_id, role):
        if role not in dict(HouseholdMembership.ROLE_CHOICES):
            raise ValidationError({"role": f"Invalid role: {role}"})

        membership = HouseholdService._get_membership(household, user_id)
        if membership.user_id == household.owner_id and role != HouseholdMembership.ROLE_ADMIN:
            raise PermissionDenied("The household owner must remain an admin.")
        if membership.user_id == acting_user.id and role != HouseholdMembership.ROLE_ADMIN:
            raise ValidationError({"role": "You cannot remove your own admin role"})

        membership.role = role
        membership.save(update_fields=["role"])

        logger.info(
            "Household member role changed",
            extra={
                "household_id": household.id,
                "member_user_id": membership.user_id,
                "role": role,
                "action": "household_member_role_changed",
                "component": "HouseholdService",
            },
        )
        return membership

    @staticmethod
    @db_transaction.atomic
    def remove_member(household, acting_user, user_id):
        membership = HouseholdService._get_membership(household, user_id)
        if membership.user_id == household.owner_id:
            raise PermissionDenied("The household owner cannot be removed.")
        if membership.user_id == acting_user.id:
            raise ValidationError("You cannot remove yourself from the household")

        membership.delete()

        logger.info(
            "Household member removed",
            extra={
                "household_id": household.id,
                "member_user_id": user_id,
                "action": "household_member_removed",
                "component": "HouseholdService",
                "severity": "medium",
            },
        )

    @staticmethod
    def _get_membership(household, user_id):
        membership = (
            HouseholdMembership.objects.select_related("user")
            .filter(household=household, user_id=user_id)
            .first()
        )
        if membership is None:
            raise NotFound(f"Member {user_id} not found.")
        return membership
