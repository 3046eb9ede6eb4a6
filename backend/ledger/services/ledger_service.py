# ledger/services/ledger_service.py
"""
Account ledger: the only code path that changes an account's balance.

Postings are applied with a single conditional UPDATE using an F() expression,
so concurrent postings to the same account never lose an update.
"""

import logging
from decimal import Decimal

from django.db import transaction as db_transaction
from django.db.models import F
from django.utils import timezone

from ..exceptions import AccountNotFound
from ..models import Account
from ..utils.currency_utils import quantize_money

logger = logging.getLogger(__name__)


class LedgerService:
    """Applies signed base-currency postings to one account at a time."""

    @staticmethod
    @db_transaction.atomic
    def post(account_id, signed_base_amount, household=None) -> Decimal:
        """
        Add ``signed_base_amount`` to the account's balance.

        Args:
            account_id: Target account primary key
            signed_base_amount: Positive for income, negative for expense
            household: Optional Household the account must belong to

        Returns:
            Decimal: The account balance after the posting

        Raises:
            AccountNotFound: If the account is missing, soft-deleted or
                belongs to another household
        """
        amount = quantize_money(signed_base_amount)

        queryset = Account.objects.filter(pk=account_id, is_active=True)
        if household is not None:
            queryset = queryset.filter(household=household)

        updated = queryset.update(
            balance=F("balance") + amount, updated_at=timezone.now()
        )

        if not updated:
            logger.warning(
                "Posting rejected - account not found",
                extra={
                    "account_id": account_id,
                    "household_id": getattr(household, "id", None),
                    "amount": str(amount),
                    "action": "ledger_post_account_not_found",
                    "component": "LedgerService",
                    "severity": "high",
                },
            )
            raise AccountNotFound(f"Account {account_id} not found.")

        balance = Account.objects.values_list("balance", flat=True).get(pk=account_id)

        logger.debug(
            "Posting applied",
            extra={
                "account_id": account_id,
                "amount": str(amount),
                "balance": str(balance),
                "action": "ledger_post_applied",
                "component": "LedgerService",
            },
        )
        return balance

    @staticmethod
    def reverse(account_id, signed_base_amount, household=None) -> Decimal:
        """Apply the negated amount of an earlier posting."""
        return LedgerService.post(
            account_id, -quantize_money(signed_base_amount), household=household
        )
