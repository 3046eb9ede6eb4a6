# ledger/services/report_service.py
"""
Read-only household reports.

Every figure is aggregated from transaction lines in Python using each line's
derived base amount, so report totals always agree with account postings.
"""

import csv
import logging
from collections import defaultdict
from decimal import ROUND_HALF_UP, Decimal

from django.core.exceptions import ValidationError
from django.db.models import Sum
from django.utils import timezone

from ..models import Account, Transaction, TransactionLine
from ..utils.date_utils import add_months, month_range, month_start, parse_date, parse_month

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
PERCENT = Decimal("0.01")

EXPORT_COLUMNS = [
    "transaction_id",
    "date",
    "title",
    "account",
    "category",
    "direction",
    "amount",
    "currency",
    "exchange_rate",
    "rate_mode",
    "base_amount",
    "base_currency",
    "notes",
]


class ReportService:
    """Dashboard, category breakdowns, trends, top expenses and CSV export."""

    @staticmethod
    def parse_range(start_date, end_date):
        """
        Raises:
            ValidationError: Missing, malformed or inverted date range
        """
        if not start_date or not end_date:
            raise ValidationError("Start date and end date are required")
        try:
            start = parse_date(start_date, "start_date")
            end = parse_date(end_date, "end_date")
        except ValueError as e:
            raise ValidationError(str(e))
        if start > end:
            raise ValidationError("start_date must be on or before end_date")
        return start, end

    @staticmethod
    def lines_between(household, start, end):
        return TransactionLine.objects.filter(
            transaction__household=household,
            transaction__date__gte=start,
            transaction__date__lte=end,
        ).select_related("transaction", "category", "account")

    @staticmethod
    def dashboard(household, month=None, recent_limit=10):
        month = parse_month(month) if month else month_start(timezone.localdate())
        first, next_first = month_range(month)

        lines = TransactionLine.objects.filter(
            transaction__household=household,
            transaction__date__gte=first,
            transaction__date__lt=next_first,
        ).only("direction", "amount", "exchange_rate", "rate_mode")

        income = expenses = ZERO
        for line in lines:
            if line.direction == TransactionLine.DIRECTION_INCOME:
                income += line.base_amount
            else:
                expenses += line.base_amount

        accounts = Account.objects.filter(household=household, is_active=True)
        total_balance = accounts.aggregate(total=Sum("balance"))["total"] or ZERO

        recent = list(
            Transaction.objects.filter(household=household)
            .prefetch_related("lines__account", "lines__category")
            .order_by("-date", "-created_at")[:recent_limit]
        )

        logger.debug(
            "Dashboard computed",
            extra={
                "household_id": household.id,
                "month": month.isoformat(),
                "action": "dashboard_computed",
                "component": "ReportService",
            },
        )
        return {
            "month": month,
            "base_currency": household.base_currency,
            "current_month": {
                "income": income,
                "expenses": expenses,
                "net": income - expenses,
            },
            "accounts": {
                "total": accounts.count(),
                "total_balance": total_balance,
            },
            "recent_transactions": recent,
        }

    @staticmethod
    def category_breakdown(household, direction, start_date, end_date, limit=None):
        """
        Totals per category for one direction with each category's share.

        Balance adjustments count like any other line and show up under the
        system category.
        """
        start, end = ReportService.parse_range(start_date, end_date)
        if direction not in (TransactionLine.DIRECTION_INCOME, TransactionLine.DIRECTION_EXPENSE):
            raise ValidationError(f"Invalid direction: {direction}")

        rows = {}
        for line in ReportService.lines_between(household, start, end).filter(direction=direction):
            row = rows.get(line.category_id)
            if row is None:
                row = rows[line.category_id] = {
                    "category_id": line.category_id,
                    "category_name": line.category.name,
                    "icon": line.category.icon,
                    "color": line.category.color,
                    "total_amount": ZERO,
                    "transaction_ids": set(),
                }
            row["total_amount"] += line.base_amount
            row["transaction_ids"].add(line.transaction_id)

        ordered = sorted(rows.values(), key=lambda row: row["total_amount"], reverse=True)
        # Shares are of the whole range, not of the top N shown
        total = sum((row["total_amount"] for row in ordered), ZERO)
        if limit:
            ordered = ordered[: int(limit)]

        categories = []
        for row in ordered:
            transaction_ids = row.pop("transaction_ids")
            row["transaction_count"] = len(transaction_ids)
            row["percentage"] = (
                (row["total_amount"] / total * 100).quantize(PERCENT, rounding=ROUND_HALF_UP)
                if total
                else ZERO
            )
            categories.append(row)

        return {
            "start_date": start,
            "end_date": end,
            "direction": direction,
            "categories": categories,
            "total": total,
            "count": len(categories),
        }

    @staticmethod
    def spending_trends(household, months=6, today=None):
        """Monthly income, expenses and net for the last ``months`` months."""
        try:
            months = int(months)
        except (TypeError, ValueError):
            raise ValidationError("months must be an integer")
        months = max(1, min(months, 24))

        current = month_start(today or timezone.localdate())
        first = add_months(current, -(months - 1))
        _, end_exclusive = month_range(current)

        buckets = {
            add_months(first, offset): {"income": ZERO, "expenses": ZERO}
            for offset in range(months)
        }
        lines = TransactionLine.objects.filter(
            transaction__household=household,
            transaction__date__gte=first,
            transaction__date__lt=end_exclusive,
        ).select_related("transaction")

        for line in lines:
            bucket = buckets[month_start(line.transaction.date)]
            key = "income" if line.direction == TransactionLine.DIRECTION_INCOME else "expenses"
            bucket[key] += line.base_amount

        trends = [
            {
                "month": month,
                "income": values["income"],
                "expenses": values["expenses"],
                "net": values["income"] - values["expenses"],
            }
            for month, values in sorted(buckets.items())
        ]
        return {"trends": trends, "count": len(trends)}

    @staticmethod
    def top_expenses(household, start_date, end_date, limit=10):
        start, end = ReportService.parse_range(start_date, end_date)
        try:
            limit = max(1, min(int(limit), 100))
        except (TypeError, ValueError):
            raise ValidationError("limit must be an integer")

        lines = ReportService.lines_between(household, start, end).filter(
            direction=TransactionLine.DIRECTION_EXPENSE
        )
        ranked = sorted(
            lines,
            key=lambda line: (line.base_amount, line.transaction.date),
            reverse=True,
        )[:limit]

        return [
            {
                "transaction_id": line.transaction_id,
                "date": line.transaction.date,
                "title": line.transaction.title,
                "category_name": line.category.name,
                "account_name": line.account.name,
                "amount": line.amount,
                "currency": line.currency,
                "base_amount": line.base_amount,
            }
            for line in ranked
        ]

    @staticmethod
    def export_rows(household, start_date=None, end_date=None):
        """One row per transaction line, oldest first."""
        lines = TransactionLine.objects.filter(transaction__household=household)
        if start_date or end_date:
            start, end = ReportService.parse_range(start_date, end_date)
            lines = lines.filter(transaction__date__gte=start, transaction__date__lte=end)

        lines = lines.select_related("transaction", "account", "category").order_by(
            "transaction__date", "transaction__id", "position"
        )
        for line in lines:
            yield {
                "transaction_id": line.transaction_id,
                "date": line.transaction.date.isoformat(),
                "title": line.transaction.title,
                "account": line.account.name,
                "category": line.category.name,
                "direction": line.direction,
                "amount": str(line.amount),
                "currency": line.currency,
                "exchange_rate": str(line.exchange_rate.normalize()),
                "rate_mode": line.rate_mode,
                "base_amount": str(line.base_amount),
                "base_currency": household.base_currency,
                "notes": line.notes,
            }

    @staticmethod
    def write_csv(household, stream, start_date=None, end_date=None):
        """Write the export to a file-like object and return the row count."""
        writer = csv.DictWriter(stream, fieldnames=EXPORT_COLUMNS)
        writer.writeheader()
        count = 0
        for row in ReportService.export_rows(household, start_date, end_date):
            writer.writerow(row)
            count += 1

        logger.info(
            "Transactions exported",
            extra={
                "household_id": household.id,
                "row_count": count,
                "action": "transactions_exported",
                "component": "ReportService",
            },
        )
        return count
