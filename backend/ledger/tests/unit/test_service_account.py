# ledger/tests/unit/test_service_account.py
from datetime import date
from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError

from ledger.exceptions import NotFound
from ledger.models import Account, Category, Transaction, TransactionLine
from ledger.services.account_service import AccountService
from ledger.services.unallocated_funds_service import UnallocatedFundsService
from ledger.tests.factories import AccountFactory

pytestmark = pytest.mark.django_db


class TestCreateAccount:
    """Testy vytvorenia účtu"""

    def test_create_without_opening_balance(self, household, owner):
        account = AccountService.create_account(
            household, owner, {"name": " Savings ", "account_type": "bank"}
        )

        assert account.name == "Savings"
        assert account.currency == "USD"
        assert account.balance == Decimal("0.00")
        assert not Transaction.objects.filter(household=household).exists()

    def test_opening_balance_booked_as_adjustment(self, household, owner):
        """Počiatočný zostatok sa zaúčtuje cez systémovú kategóriu"""
        account = AccountService.create_account(
            household,
            owner,
            {"name": "Wallet", "account_type": "cash", "opening_balance": Decimal("1000.00")},
        )

        assert account.balance == Decimal("1000.00")
        line = TransactionLine.objects.get(account=account)
        assert line.category.category_type == Category.TYPE_SYSTEM
        assert line.direction == TransactionLine.DIRECTION_INCOME
        assert line.transaction.description == "Opening balance"

    def test_negative_opening_balance(self, household, owner):
        account = AccountService.create_account(
            household,
            owner,
            {"name": "Visa", "account_type": "credit", "opening_balance": "-250.00"},
        )

        assert account.balance == Decimal("-250.00")
        assert TransactionLine.objects.get(account=account).direction == TransactionLine.DIRECTION_EXPENSE

    def test_invalid_type_rejected(self, household, owner):
        with pytest.raises(ValidationError):
            AccountService.create_account(household, owner, {"name": "X", "account_type": "vault"})

    def test_blank_name_rejected(self, household, owner):
        with pytest.raises(ValidationError):
            AccountService.create_account(household, owner, {"name": "  ", "account_type": "bank"})


class TestUpdateAccount:
    def test_rename(self, checking):
        AccountService.update_account(checking, {"name": "Main checking"})

        checking.refresh_from_db()
        assert checking.name == "Main checking"

    def test_currency_change_before_postings(self, checking):
        AccountService.update_account(checking, {"currency": "eur"})

        checking.refresh_from_db()
        assert checking.currency == "EUR"

    def test_currency_locked_after_postings(self, checking, post_transaction, expense_line):
        """Menu nemožno zmeniť, ak už existujú riadky"""
        post_transaction([expense_line("10.00")])

        with pytest.raises(ValidationError) as exc_info:
            AccountService.update_account(checking, {"currency": "EUR"})

        assert "currency" in exc_info.value.message_dict

    def test_deactivate_keeps_balance(self, checking, post_transaction, expense_line):
        post_transaction([expense_line("10.00")])

        AccountService.deactivate_account(checking)

        account = Account.objects.get(pk=checking.pk)
        assert account.is_active is False
        assert account.balance == Decimal("-10.00")

    def test_get_account_hides_inactive(self, household):
        closed = AccountFactory(household=household, is_active=False)

        with pytest.raises(NotFound):
            AccountService.get_account(household, closed.id)
        assert AccountService.get_account(household, closed.id, include_inactive=True) == closed

    def test_get_account_other_household(self, other_household, checking):
        with pytest.raises(NotFound):
            AccountService.get_account(other_household, checking.id)


class TestAdjustBalance:
    """Testy zosúladenia zostatku"""

    def test_adjust_up(self, household, owner, checking):
        txn = AccountService.adjust_balance(
            household, owner, checking.id, Decimal("150.00"), adjustment_date=date(2024, 3, 2)
        )

        checking.refresh_from_db()
        assert checking.balance == Decimal("150.00")
        assert txn.title == "Balance Adjustment"
        assert txn.date == date(2024, 3, 2)
        line = txn.lines.get()
        assert line.direction == TransactionLine.DIRECTION_INCOME
        assert line.amount == Decimal("150.00")

    def test_adjust_down(self, household, owner, checking, post_transaction, expense_line):
        post_transaction([expense_line("10.00")])

        txn = AccountService.adjust_balance(household, owner, checking.id, "-60.00")

        checking.refresh_from_db()
        assert checking.balance == Decimal("-60.00")
        line = txn.lines.get()
        assert line.direction == TransactionLine.DIRECTION_EXPENSE
        assert line.amount == Decimal("50.00")
        assert "from -$10.00 to -$60.00" in txn.description

    def test_adjustment_counts_into_pool(self, household, owner, checking):
        """Kladná úprava je príjem a zvýši nerozdelený fond"""
        AccountService.adjust_balance(
            household, owner, checking.id, Decimal("400.00"), adjustment_date=date(2024, 3, 2)
        )

        assert UnallocatedFundsService.total_income(household, date(2024, 3, 1)) == Decimal("400.00")

    def test_no_change_rejected(self, household, owner, checking):
        with pytest.raises(ValidationError) as exc_info:
            AccountService.adjust_balance(household, owner, checking.id, Decimal("0"))

        assert "already $0.00" in str(exc_info.value.message_dict["new_balance"])

    def test_invalid_amount_rejected(self, household, owner, checking):
        with pytest.raises(ValidationError):
            AccountService.adjust_balance(household, owner, checking.id, "lots")

    def test_inactive_account(self, household, owner):
        closed = AccountFactory(household=household, is_active=False)

        with pytest.raises(NotFound):
            AccountService.adjust_balance(household, owner, closed.id, Decimal("10"))
