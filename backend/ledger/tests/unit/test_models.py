# ledger/tests/unit/test_models.py
from datetime import date
from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError
from django.db import IntegrityError

from ledger.models import Allocation, TransactionLine
from ledger.tests.factories import (AllocationFactory, CategoryFactory,
                                    TransactionFactory, TransactionLineFactory)

pytestmark = pytest.mark.django_db


class TestTransactionLine:
    """Odvodené sumy riadku"""

    def test_base_amount_normal(self, household):
        line = TransactionLineFactory(
            transaction__household=household,
            amount=Decimal("100.00"),
            currency="EUR",
            exchange_rate=Decimal("1.08"),
        )

        assert line.base_amount == Decimal("108.00")
        assert line.signed_base_amount == Decimal("-108.00")

    def test_signed_base_amount_income(self, household):
        line = TransactionLineFactory(
            transaction__household=household,
            direction=TransactionLine.DIRECTION_INCOME,
            amount=Decimal("10.00"),
        )

        assert line.signed_base_amount == Decimal("10.00")

    def test_amount_must_be_positive(self, household):
        with pytest.raises(IntegrityError):
            TransactionLineFactory(transaction__household=household, amount=Decimal("0"))

    def test_transaction_month(self, household):
        txn = TransactionFactory(household=household, date=date(2024, 3, 27))

        assert txn.month == date(2024, 3, 1)


class TestAllocation:
    def test_unique_per_category_and_month(self, household, groceries):
        AllocationFactory(household=household, category=groceries)

        with pytest.raises(IntegrityError):
            AllocationFactory(household=household, category=groceries)

    def test_available_cannot_go_negative(self, household, groceries):
        with pytest.raises(IntegrityError):
            AllocationFactory(household=household, category=groceries, available_amount=Decimal("-1"))

    def test_month_must_be_first_day(self, household, groceries):
        allocation = Allocation(household=household, category=groceries, month=date(2024, 3, 2))

        with pytest.raises(ValidationError) as exc_info:
            allocation.full_clean()

        assert "month" in exc_info.value.message_dict

    def test_system_category_not_budgetable(self, household, system_category):
        allocation = Allocation(household=household, category=system_category, month=date(2024, 3, 1))

        with pytest.raises(ValidationError):
            allocation.full_clean()

    def test_category_from_other_household(self, household, other_household):
        foreign = CategoryFactory(household=other_household)
        allocation = Allocation(household=household, category=foreign, month=date(2024, 3, 1))

        with pytest.raises(ValidationError):
            allocation.full_clean()

    def test_str(self, household, groceries):
        allocation = AllocationFactory(household=household, category=groceries)

        assert str(allocation) == "Groceries 2024-03"


class TestCategory:
    def test_is_system(self, system_category, groceries):
        assert system_category.is_system
        assert not groceries.is_system

    def test_color_format(self, household):
        category = CategoryFactory.build(household=household, color="blue")

        with pytest.raises(ValidationError):
            category.full_clean()
