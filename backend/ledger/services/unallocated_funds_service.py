# ledger/services/unallocated_funds_service.py
"""
Household unallocated-funds view.

Unallocated funds for a month = income postings dated in that month (base
currency) minus the funded balance of every envelope for that month.
"""

import logging
from decimal import Decimal

from ..models import Allocation, TransactionLine
from ..utils.date_utils import month_range, month_start

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


class UnallocatedFundsService:
    """Read-only aggregation over income lines and envelope balances."""

    @staticmethod
    def income_lines(household, month):
        first, next_first = month_range(month)
        return TransactionLine.objects.filter(
            transaction__household=household,
            transaction__date__gte=first,
            transaction__date__lt=next_first,
            direction=TransactionLine.DIRECTION_INCOME,
        ).only("amount", "exchange_rate", "rate_mode")

    @staticmethod
    def total_income(household, month) -> Decimal:
        return sum(
            (line.base_amount for line in UnallocatedFundsService.income_lines(household, month)),
            ZERO,
        )

    @staticmethod
    def total_available(household, month) -> Decimal:
        amounts = Allocation.objects.filter(
            household=household, month=month_start(month)
        ).values_list("available_amount", flat=True)
        return sum(amounts, ZERO)

    @staticmethod
    def get_unallocated_funds(household, month) -> Decimal:
        """
        Compute the month's unallocated pool from committed rows.

        Callers that check the pool before funding must hold the household
        row lock so the figure reflects all prior committed funding.
        """
        income = UnallocatedFundsService.total_income(household, month)
        available = UnallocatedFundsService.total_available(household, month)
        unallocated = income - available

        logger.debug(
            "Unallocated funds computed",
            extra={
                "household_id": household.id,
                "month": month_start(month).isoformat(),
                "total_income": str(income),
                "total_available": str(available),
                "unallocated": str(unallocated),
                "action": "unallocated_funds_computed",
                "component": "UnallocatedFundsService",
            },
        )
        return unallocated

    @staticmethod
    def summary(household, month) -> dict:
        income = UnallocatedFundsService.total_income(household, month)
        available = UnallocatedFundsService.total_available(household, month)
        return {
            "month": month_start(month),
            "total_income": income,
            "total_available": available,
            "unallocated_funds": income - available,
        }
