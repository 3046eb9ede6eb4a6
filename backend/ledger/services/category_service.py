# ledger/services/category_service.py
"""
Service for household categories.

Category type is fixed at creation. System categories are created by the
application itself and are read-only for end users.
"""

import logging
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import IntegrityError
from django.db import transaction as db_transaction
from django.utils import timezone
from rest_framework.exceptions import PermissionDenied

from ..exceptions import NotFound
from ..models import Category, TransactionLine
from ..utils.date_utils import add_months, month_start, next_month

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "icon", "color")
USER_CATEGORY_TYPES = (Category.TYPE_EXPENSE, Category.TYPE_INCOME)


class CategoryService:
    """Category CRUD with system-category protection."""

    @staticmethod
    def get_category(household, category_id, include_inactive=False):
        queryset = Category.objects.filter(household=household)
        if not include_inactive:
            queryset = queryset.filter(is_active=True)
        category = queryset.filter(pk=category_id).first()
        if category is None:
            raise NotFound(f"Category {category_id} not found.")
        return category

    @staticmethod
    @db_transaction.atomic
    def get_system_category(household, name=None):
        """
        Return the household's system category, creating it on first use.
        """
        name = name or settings.LEDGER_SYSTEM_CATEGORY_NAME
        category, created = Category.objects.get_or_create(
            household=household,
            name=name,
            category_type=Category.TYPE_SYSTEM,
            is_active=True,
            defaults={"icon": "scale", "color": "#6B7280"},
        )
        if created:
            logger.info(
                "System category created",
                extra={
                    "household_id": household.id,
                    "category_id": category.id,
                    "category_name": name,
                    "action": "system_category_created",
                    "component": "CategoryService",
                },
            )
        return category

    @staticmethod
    @db_transaction.atomic
    def create_category(household, data):
        """
        Raises:
            ValidationError: Missing name, system/unknown type or duplicate name
        """
        category_type = data.get("category_type")
        if category_type not in USER_CATEGORY_TYPES:
            raise ValidationError(
                {"category_type": "Category type must be 'expense' or 'income'"}
            )

        category = Category(
            household=household,
            name=(data.get("name") or "").strip(),
            category_type=category_type,
            icon=data.get("icon") or "",
            color=data.get("color") or "",
        )
        category.full_clean(exclude=["household"], validate_constraints=False)

        try:
            with db_transaction.atomic():
                category.save()
        except IntegrityError:
            raise ValidationError(
                {"name": f"A {category_type} category named '{category.name}' already exists"}
            )

        logger.info(
            "Category created",
            extra={
                "household_id": household.id,
                "category_id": category.id,
                "category_type": category_type,
                "action": "category_created",
                "component": "CategoryService",
            },
        )
        return category

    @staticmethod
    @db_transaction.atomic
    def update_category(category, data):
        """
        Update name and display metadata. Type changes are rejected.

        Raises:
            PermissionDenied: Category is system-reserved
            ValidationError: Attempted type change or invalid values
        """
        CategoryService._ensure_user_category(category, "edited")

        if "category_type" in data and data["category_type"] != category.category_type:
            raise ValidationError({"category_type": "Category type cannot be changed"})

        for field in EDITABLE_FIELDS:
            if field in data:
                value = data[field]
                setattr(category, field, value.strip() if isinstance(value, str) else value)

        category.full_clean(exclude=["household"], validate_constraints=False)
        try:
            with db_transaction.atomic():
                category.save()
        except IntegrityError:
            raise ValidationError({"name": f"Category '{category.name}' already exists"})

        logger.info(
            "Category updated",
            extra={
                "household_id": category.household_id,
                "category_id": category.id,
                "action": "category_updated",
                "component": "CategoryService",
            },
        )
        return category

    @staticmethod
    @db_transaction.atomic
    def deactivate_category(category):
        """Soft delete; historical lines and envelopes keep their reference."""
        CategoryService._ensure_user_category(category, "deleted")
        category.is_active = False
        category.save(update_fields=["is_active", "updated_at"])

        logger.info(
            "Category deactivated",
            extra={
                "household_id": category.household_id,
                "category_id": category.id,
                "action": "category_deactivated",
                "component": "CategoryService",
            },
        )
        return category

    @staticmethod
    def spending_history(household, category, months=6, today=None):
        """
        Monthly base-currency totals for a category, oldest month first.
        """
        months = max(1, min(int(months), 24))
        current = month_start(today or timezone.localdate())
        first = add_months(current, -(months - 1))

        lines = TransactionLine.objects.filter(
            transaction__household=household,
            category=category,
            transaction__date__gte=first,
            transaction__date__lt=next_month(current),
        ).select_related("transaction")

        totals = {add_months(first, offset): Decimal("0.00") for offset in range(months)}
        counts = {month: 0 for month in totals}
        for line in lines:
            key = month_start(line.transaction.date)
            totals[key] += line.base_amount
            counts[key] += 1

        return [
            {"month": month, "total": totals[month], "transaction_count": counts[month]}
            for month in sorted(totals)
        ]

    @staticmethod
    def _ensure_user_category(category, verb):
        if category.is_system:
            logger.warning(
                "System category modification rejected",
                extra={
                    "household_id": category.household_id,
                    "category_id": category.id,
                    "operation": verb,
                    "action": "system_category_protected",
                    "component": "CategoryService",
                    "severity": "medium",
                },
            )
            raise PermissionDenied(f"System categories cannot be {verb}.")
