# ledger/services/account_service.py
"""
Service for household accounts.

Balances are never written here directly: opening balances and manual
reconciliations go through ``adjust_balance``, which books a one-line
transaction against the system "Balance Adjustment" category.
"""

import logging
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction as db_transaction
from django.utils import timezone

from ..exceptions import NotFound
from ..models import Account, TransactionLine
from ..utils.currency_utils import format_money, quantize_money
from .allocation_service import AllocationService
from .category_service import CategoryService
from .transaction_service import TransactionService

logger = logging.getLogger(__name__)


class AccountService:
    """Account lifecycle and balance reconciliation."""

    @staticmethod
    def get_account(household, account_id, include_inactive=False):
        queryset = Account.objects.filter(household=household)
        if not include_inactive:
            queryset = queryset.filter(is_active=True)
        account = queryset.filter(pk=account_id).first()
        if account is None:
            raise NotFound(f"Account {account_id} not found.")
        return account

    @staticmethod
    @db_transaction.atomic
    def create_account(household, user, data):
        """
        Create an account at zero and book any opening balance as an adjustment.

        Args:
            data: dict with ``name``, ``account_type``, ``currency`` and
                optional ``opening_balance``
        """
        account = Account(
            household=household,
            name=(data.get("name") or "").strip(),
            account_type=data.get("account_type"),
            currency=(data.get("currency") or household.base_currency).upper(),
            balance=Decimal("0.00"),
        )
        account.full_clean(exclude=["household"])
        account.save()

        logger.info(
            "Account created",
            extra={
                "user_id": getattr(user, "id", None),
                "household_id": household.id,
                "account_id": account.id,
                "account_type": account.account_type,
                "action": "account_created",
                "component": "AccountService",
            },
        )

        opening_balance = data.get("opening_balance")
        if opening_balance not in (None, "") and quantize_money(opening_balance) != 0:
            AccountService.adjust_balance(
                household,
                user,
                account.id,
                opening_balance,
                description="Opening balance",
            )
            account.refresh_from_db(fields=["balance", "updated_at"])

        return account

    @staticmethod
    @db_transaction.atomic
    def update_account(account, data):
        """
        Update name, type or active flag. Currency is immutable once any line
        references the account.
        """
        if "currency" in data and data["currency"] and data["currency"].upper() != account.currency:
            if TransactionLine.objects.filter(account=account).exists():
                raise ValidationError(
                    {"currency": "Currency cannot be changed after transactions were posted"}
                )
            account.currency = data["currency"].upper()

        if "name" in data:
            account.name = (data["name"] or "").strip()
        if "account_type" in data:
            account.account_type = data["account_type"]
        if "is_active" in data:
            account.is_active = bool(data["is_active"])

        account.full_clean(exclude=["household"])
        account.save()

        logger.info(
            "Account updated",
            extra={
                "household_id": account.household_id,
                "account_id": account.id,
                "updated_fields": sorted(data.keys()),
                "action": "account_updated",
                "component": "AccountService",
            },
        )
        return account

    @staticmethod
    @db_transaction.atomic
    def deactivate_account(account):
        """Soft delete. Later postings to the account fail with AccountNotFound."""
        account.is_active = False
        account.save(update_fields=["is_active", "updated_at"])

        logger.info(
            "Account deactivated",
            extra={
                "household_id": account.household_id,
                "account_id": account.id,
                "balance": str(account.balance),
                "action": "account_deactivated",
                "component": "AccountService",
            },
        )
        return account

    @staticmethod
    @db_transaction.atomic
    def adjust_balance(household, user, account_id, new_balance, description=None, adjustment_date=None):
        """
        Reconcile an account's stored balance to ``new_balance``.

        Books a single-line transaction through TransactionService against the
        system "Balance Adjustment" category: income when the balance goes up,
        expense when it goes down.

        Raises:
            NotFound: Account missing or inactive
            ValidationError: Invalid amount or no change needed
        """
        try:
            target = quantize_money(new_balance)
        except ValueError:
            raise ValidationError({"new_balance": "New balance must be a valid number"})

        AllocationService.lock_household(household)
        account = (
            Account.objects.select_for_update()
            .filter(household=household, pk=account_id, is_active=True)
            .first()
        )
        if account is None:
            raise NotFound(f"Account {account_id} not found.")

        currency = household.base_currency
        difference = target - account.balance
        if difference == 0:
            raise ValidationError(
                {"new_balance": f"Account balance is already {format_money(target, currency)}"}
            )

        category = CategoryService.get_system_category(household)
        direction = (
            TransactionLine.DIRECTION_INCOME
            if difference > 0
            else TransactionLine.DIRECTION_EXPENSE
        )

        data = {
            "date": adjustment_date or timezone.localdate(),
            "title": settings.LEDGER_SYSTEM_CATEGORY_NAME,
            "description": description
            or f"Balance adjusted from {format_money(account.balance, currency)} "
            f"to {format_money(target, currency)}",
            "lines": [
                {
                    "account_id": account.id,
                    "category_id": category.id,
                    "amount": abs(difference),
                    "currency": currency,
                    "direction": direction,
                }
            ],
        }

        txn = TransactionService.create_transaction(
            household, user, data, allow_system_category=True
        )

        logger.info(
            "Account balance adjusted",
            extra={
                "user_id": getattr(user, "id", None),
                "household_id": household.id,
                "account_id": account.id,
                "previous_balance": str(account.balance),
                "new_balance": str(target),
                "transaction_id": txn.id,
                "action": "account_balance_adjusted",
                "component": "AccountService",
            },
        )
        return txn
