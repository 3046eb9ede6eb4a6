# ledger/tests/unit/test_service_category.py
from datetime import date
from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError
from rest_framework.exceptions import PermissionDenied

from ledger.exceptions import NotFound
from ledger.models import Category
from ledger.services.category_service import CategoryService

pytestmark = pytest.mark.django_db


class TestCreateCategory:
    """Testy vytvorenia kategórie"""

    def test_create_expense_category(self, household):
        category = CategoryService.create_category(
            household, {"name": " Rent ", "category_type": "expense", "color": "#112233"}
        )

        assert category.name == "Rent"
        assert category.is_active
        assert not category.is_system

    def test_system_type_rejected(self, household):
        """Používateľ nemôže vytvoriť systémovú kategóriu"""
        with pytest.raises(ValidationError) as exc_info:
            CategoryService.create_category(household, {"name": "Mine", "category_type": "system"})

        assert "category_type" in exc_info.value.message_dict

    def test_duplicate_active_name_rejected(self, household, groceries):
        with pytest.raises(ValidationError) as exc_info:
            CategoryService.create_category(household, {"name": "Groceries", "category_type": "expense"})

        assert "name" in exc_info.value.message_dict

    def test_same_name_other_type_allowed(self, household, groceries):
        category = CategoryService.create_category(
            household, {"name": "Groceries", "category_type": "income"}
        )

        assert category.category_type == Category.TYPE_INCOME

    def test_name_reusable_after_deactivation(self, household, groceries):
        CategoryService.deactivate_category(groceries)

        category = CategoryService.create_category(
            household, {"name": "Groceries", "category_type": "expense"}
        )

        assert category.id != groceries.id

    def test_invalid_color_rejected(self, household):
        with pytest.raises(ValidationError):
            CategoryService.create_category(
                household, {"name": "Fun", "category_type": "expense", "color": "red"}
            )


class TestUpdateCategory:
    def test_rename(self, groceries):
        CategoryService.update_category(groceries, {"name": "Food", "icon": "basket"})

        groceries.refresh_from_db()
        assert (groceries.name, groceries.icon) == ("Food", "basket")

    def test_type_change_rejected(self, groceries):
        """Typ kategórie je nemenný"""
        with pytest.raises(ValidationError):
            CategoryService.update_category(groceries, {"category_type": "income"})

    def test_system_category_read_only(self, system_category):
        with pytest.raises(PermissionDenied):
            CategoryService.update_category(system_category, {"name": "Renamed"})

    def test_system_category_cannot_be_deleted(self, system_category):
        with pytest.raises(PermissionDenied):
            CategoryService.deactivate_category(system_category)

        system_category.refresh_from_db()
        assert system_category.is_active

    def test_rename_to_existing_name_rejected(self, groceries, dining):
        with pytest.raises(ValidationError):
            CategoryService.update_category(dining, {"name": "Groceries"})


class TestSystemCategory:
    def test_get_system_category_is_idempotent(self, household, system_category):
        assert CategoryService.get_system_category(household) == system_category
        assert Category.objects.filter(household=household, category_type="system").count() == 1

    def test_get_category_excludes_inactive(self, household, groceries):
        CategoryService.deactivate_category(groceries)

        with pytest.raises(NotFound):
            CategoryService.get_category(household, groceries.id)


class TestSpendingHistory:
    def test_monthly_totals_oldest_first(self, household, groceries, post_transaction, expense_line):
        """Mesiace bez výdavkov majú nulu"""
        post_transaction([expense_line("30.00")], tx_date=date(2024, 1, 15))
        post_transaction([expense_line("20.00")], tx_date=date(2024, 3, 2))
        post_transaction([expense_line("5.00")], tx_date=date(2024, 3, 30))

        history = CategoryService.spending_history(household, groceries, months=3, today=date(2024, 3, 31))

        assert history == [
            {"month": date(2024, 1, 1), "total": Decimal("30.00"), "transaction_count": 1},
            {"month": date(2024, 2, 1), "total": Decimal("0.00"), "transaction_count": 0},
            {"month": date(2024, 3, 1), "total": Decimal("25.00"), "transaction_count": 2},
        ]

    def test_months_clamped(self, household, groceries):
        history = CategoryService.spending_history(household, groceries, months=100, today=date(2024, 3, 1))

        assert len(history) == 24
