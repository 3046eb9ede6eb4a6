# ledger/services/allocation_service.py
"""
Envelope allocation engine.

Each (household, category, month) has at most one Allocation row holding a
target (``allocated_amount``) and a funded balance (``available_amount``).
Spent is recomputed from transaction lines on every read and every invariant
check; it is never cached on the row.

Lock order for writers: household row first, then allocation rows by id.
"""

import logging
from collections import defaultdict
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import IntegrityError
from django.db import transaction as db_transaction

from ..exceptions import (ConflictError, InsufficientFunds,
                          InsufficientUnallocatedFunds, NotFound)
from ..models import Allocation, Category, Household, TransactionLine
from ..utils.currency_utils import format_money, quantize_money
from ..utils.date_utils import month_range, parse_month
from .unallocated_funds_service import UnallocatedFundsService

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


class AllocationService:
    """
    Service for envelope budgeting operations.

    Every mutating operation runs in a single database transaction and is
    all-or-nothing.
    """

    # -------------------------------------------------------------------
    # DERIVED VALUES
    # -------------------------------------------------------------------

    @staticmethod
    def spent_lines(household, category_id, month):
        first, next_first = month_range(month)
        return TransactionLine.objects.filter(
            transaction__household=household,
            category_id=category_id,
            transaction__date__gte=first,
            transaction__date__lt=next_first,
        )

    @staticmethod
    def recompute_spent(household, category_id, month) -> Decimal:
        """
        Live sum of base-currency amounts of lines in (category, month).
        """
        lines = AllocationService.spent_lines(household, category_id, month).only(
            "amount", "exchange_rate", "rate_mode"
        )
        return sum((line.base_amount for line in lines), ZERO)

    @staticmethod
    def spent_by_category(household, month) -> dict:
        """Spent per category id for a whole month in one query."""
        first, next_first = month_range(month)
        lines = TransactionLine.objects.filter(
            transaction__household=household,
            transaction__date__gte=first,
            transaction__date__lt=next_first,
        ).only("category_id", "amount", "exchange_rate", "rate_mode")

        totals = defaultdict(lambda: ZERO)
        for line in lines:
            totals[line.category_id] += line.base_amount
        return totals

    @staticmethod
    def describe(allocation, spent) -> dict:
        """Allocation row plus derived spent, balance and to-fund."""
        return {
            "id": allocation.id,
            "category_id": allocation.category_id,
            "category_name": allocation.category.name,
            "category_type": allocation.category.category_type,
            "category_icon": allocation.category.icon,
            "category_color": allocation.category.color,
            "month": allocation.month,
            "allocated_amount": allocation.allocated_amount,
            "available_amount": allocation.available_amount,
            "spent": spent,
            "balance": allocation.available_amount - spent,
            "to_fund": allocation.allocated_amount - allocation.available_amount,
            "notes": allocation.notes,
        }

    @staticmethod
    def envelope_effects(household, keys) -> list:
        """
        Recompute spent for every (category_id, month) key that has an envelope.

        Keys without an allocation are unbudgeted spend and are skipped.
        """
        effects = []
        for category_id, month in sorted(keys, key=lambda key: (key[1], key[0])):
            allocation = (
                Allocation.objects.select_related("category")
                .filter(household=household, category_id=category_id, month=month)
                .first()
            )
            if allocation is None:
                continue
            spent = AllocationService.recompute_spent(household, category_id, month)
            effects.append(AllocationService.describe(allocation, spent))
        return effects

    @staticmethod
    def lock_household(household):
        """
        Take the household row lock every ledger writer starts with.

        Inserting a child row makes Postgres take a key-share lock on the
        household, so writers that skipped this step could deadlock with a
        Fund or Move already holding it.
        """
        Household.objects.select_for_update().filter(pk=household.pk).first()

    @staticmethod
    def lock_envelopes(household, keys):
        """
        Lock allocation rows touched by a line mutation.

        Callers hold the household lock first. A Move holding the same rows
        then sees the committed spend.
        """
        if not keys:
            return []
        ids = []
        for category_id, month in keys:
            ids.extend(
                Allocation.objects.filter(
                    household=household, category_id=category_id, month=month
                ).values_list("id", flat=True)
            )
        return list(
            Allocation.objects.select_for_update().filter(id__in=ids).order_by("id")
        )

    # -------------------------------------------------------------------
    # QUERIES
    # -------------------------------------------------------------------

    @staticmethod
    def list_allocations(household, month) -> dict:
        """
        Envelopes for a month with derived values and a household summary.
        """
        month = parse_month(month)
        allocations = list(
            Allocation.objects.select_related("category").filter(
                household=household, month=month
            )
        )
        spent_map = AllocationService.spent_by_category(household, month)
        rows = [
            AllocationService.describe(allocation, spent_map.get(allocation.category_id, ZERO))
            for allocation in allocations
        ]

        total_allocated = sum((row["allocated_amount"] for row in rows), ZERO)
        total_available = sum((row["available_amount"] for row in rows), ZERO)
        total_spent = sum((row["spent"] for row in rows), ZERO)
        total_income = UnallocatedFundsService.total_income(household, month)

        summary = {
            "total_allocated": total_allocated,
            "total_available": total_available,
            "total_spent": total_spent,
            "total_balance": total_available - total_spent,
            "total_income": total_income,
            "unallocated_funds": total_income - total_available,
            "to_fund": total_allocated - total_available,
        }

        logger.info(
            "Allocations listed",
            extra={
                "household_id": household.id,
                "month": month.isoformat(),
                "allocation_count": len(rows),
                "action": "allocations_listed",
                "component": "AllocationService",
            },
        )
        return {"month": month, "allocations": rows, "summary": summary}

    @staticmethod
    def unallocated_categories(household, month, category_type=Category.TYPE_EXPENSE):
        """Active budgetable categories without an envelope for the month."""
        month = parse_month(month)
        allocated_ids = Allocation.objects.filter(
            household=household, month=month
        ).values_list("category_id", flat=True)

        queryset = Category.objects.filter(household=household, is_active=True).exclude(
            category_type=Category.TYPE_SYSTEM
        )
        if category_type:
            queryset = queryset.filter(category_type=category_type)
        return queryset.exclude(id__in=allocated_ids).order_by("name")

    @staticmethod
    def allocation_transactions(household, allocation_id):
        """Lines counted in the allocation's spent figure, newest first."""
        allocation = AllocationService._get_allocation(household, allocation_id)
        return (
            AllocationService.spent_lines(household, allocation.category_id, allocation.month)
            .select_related("transaction", "account", "category")
            .order_by("-transaction__date", "-transaction__created_at", "position")
        )

    # -------------------------------------------------------------------
    # UPSERT
    # -------------------------------------------------------------------

    @staticmethod
    @db_transaction.atomic
    def upsert_allocation(
        household, category_id, month, allocated_amount, notes=None, allocation_id=None
    ):
        """
        Create or update the target for (category, month). ``available`` is
        never touched here.

        Raises:
            ValidationError: Negative target, unknown or system category, or an
                existing allocation id whose category/month differs
            NotFound: ``allocation_id`` given but missing
        """
        try:
            month = parse_month(month)
        except ValueError as e:
            raise ValidationError({"month": str(e)})

        try:
            allocated_amount = quantize_money(allocated_amount)
        except ValueError:
            raise ValidationError({"allocated_amount": "Allocated amount must be a valid number"})
        if allocated_amount < 0:
            raise ValidationError({"allocated_amount": "Allocated amount cannot be negative"})

        category = AllocationService._get_budgetable_category(household, category_id)

        AllocationService.lock_household(household)
        if allocation_id is not None:
            allocation = AllocationService._get_allocation(household, allocation_id, lock=True)
            if allocation.category_id != category.id or allocation.month != month:
                logger.warning(
                    "Allocation retarget attempt rejected",
                    extra={
                        "household_id": household.id,
                        "allocation_id": allocation.id,
                        "existing_category_id": allocation.category_id,
                        "requested_category_id": category.id,
                        "action": "allocation_retarget_rejected",
                        "component": "AllocationService",
                        "severity": "medium",
                    },
                )
                raise ValidationError(
                    {"category_id": "An allocation's category and month cannot be changed"}
                )
            created = False
        else:
            allocation = AllocationService._find_envelope(household, category, month)
            created = allocation is None
            if created:
                allocation = Allocation(
                    household=household,
                    category=category,
                    month=month,
                    available_amount=ZERO,
                )

        allocation.allocated_amount = allocated_amount
        if notes is not None:
            allocation.notes = notes
        allocation.full_clean(exclude=["household", "category"], validate_unique=False)
        try:
            with db_transaction.atomic():
                allocation.save()
        except IntegrityError:
            # Another request created the (category, month) row after our lookup
            existing = AllocationService._find_envelope(household, category, month)
            logger.warning(
                "Allocation created concurrently",
                extra={
                    "household_id": household.id,
                    "category_id": category.id,
                    "month": month.isoformat(),
                    "recovered": existing is not None and created,
                    "action": "allocation_upsert_race",
                    "component": "AllocationService",
                    "severity": "medium",
                },
            )
            if existing is None or not created:
                raise ConflictError()
            existing.allocated_amount = allocated_amount
            if notes is not None:
                existing.notes = notes
            existing.save(update_fields=["allocated_amount", "notes", "updated_at"])
            allocation, created = existing, False

        logger.info(
            "Allocation upserted",
            extra={
                "household_id": household.id,
                "allocation_id": allocation.id,
                "category_id": category.id,
                "month": month.isoformat(),
                "allocated_amount": str(allocated_amount),
                "was_created": created,
                "action": "allocation_upserted",
                "component": "AllocationService",
            },
        )

        spent = AllocationService.recompute_spent(household, category.id, month)
        return AllocationService.describe(allocation, spent)

    # -------------------------------------------------------------------
    # FUND
    # -------------------------------------------------------------------

    @staticmethod
    @db_transaction.atomic
    def fund_allocations(household, month, entries):
        """
        Move money from the month's unallocated pool into envelopes.

        Args:
            household: Household instance
            month: Month key (date or 'YYYY-MM-01')
            entries: List of {"allocation_id": int, "amount": Decimal}

        Returns:
            dict: Funded allocations and the remaining unallocated pool

        Raises:
            ValidationError: Empty batch, non-positive amount, or an
                allocation from a different month
            NotFound: Unknown allocation id
            InsufficientUnallocatedFunds: Batch total exceeds the pool
        """
        try:
            month = parse_month(month)
        except ValueError as e:
            raise ValidationError({"month": str(e)})

        if not entries:
            raise ValidationError({"funding": "At least one funding entry is required"})

        amounts = defaultdict(lambda: ZERO)
        errors = []
        for index, entry in enumerate(entries):
            try:
                amount = quantize_money(entry.get("amount"))
            except ValueError:
                errors.append(f"Entry {index + 1}: amount must be a valid number")
                continue
            if amount <= 0:
                errors.append(f"Entry {index + 1}: amount must be greater than zero")
                continue
            try:
                allocation_id = int(entry.get("allocation_id"))
            except (TypeError, ValueError):
                errors.append(f"Entry {index + 1}: allocation_id is required")
                continue
            amounts[allocation_id] += amount

        if errors:
            raise ValidationError({"funding": errors})

        AllocationService.lock_household(household)
        allocations = list(
            Allocation.objects.select_for_update(of=("self",))
            .select_related("category")
            .filter(household=household, id__in=list(amounts))
            .order_by("id")
        )

        missing = set(amounts) - {allocation.id for allocation in allocations}
        if missing:
            raise NotFound(f"Allocation(s) not found: {', '.join(str(i) for i in sorted(missing))}")

        wrong_month = [a.id for a in allocations if a.month != month]
        if wrong_month:
            raise ValidationError(
                {"funding": f"Allocations {wrong_month} do not belong to {month:%Y-%m}"}
            )

        total = sum(amounts.values(), ZERO)
        unallocated = UnallocatedFundsService.get_unallocated_funds(household, month)

        if total > unallocated:
            logger.warning(
                "Funding rejected - insufficient unallocated funds",
                extra={
                    "household_id": household.id,
                    "month": month.isoformat(),
                    "requested": str(total),
                    "unallocated": str(unallocated),
                    "action": "allocation_fund_rejected",
                    "component": "AllocationService",
                    "severity": "medium",
                },
            )
            currency = household.base_currency
            raise InsufficientUnallocatedFunds(
                f"Insufficient unallocated funds. Requested: {format_money(total, currency)}, "
                f"available to assign: {format_money(max(unallocated, ZERO), currency)}"
            )

        spent_map = AllocationService.spent_by_category(household, month)
        funded = []
        for allocation in allocations:
            allocation.available_amount = allocation.available_amount + amounts[allocation.id]
            allocation.save(update_fields=["available_amount", "updated_at"])
            funded.append(
                AllocationService.describe(
                    allocation, spent_map.get(allocation.category_id, ZERO)
                )
            )

        logger.info(
            "Allocations funded",
            extra={
                "household_id": household.id,
                "month": month.isoformat(),
                "entry_count": len(funded),
                "total_funded": str(total),
                "action": "allocations_funded",
                "component": "AllocationService",
            },
        )
        return {
            "month": month,
            "allocations": funded,
            "total_funded": total,
            "unallocated_funds": unallocated - total,
        }

    # -------------------------------------------------------------------
    # MOVE
    # -------------------------------------------------------------------

    @staticmethod
    @db_transaction.atomic
    def move_funds(household, from_allocation_id, to_allocation_id, amount):
        """
        Move un-spent funded balance from one envelope to another.

        Raises:
            ValidationError: Same source and destination, or amount <= 0
            NotFound: Either allocation missing
            InsufficientFunds: amount > source.available - source.spent
        """
        try:
            from_allocation_id = int(from_allocation_id)
            to_allocation_id = int(to_allocation_id)
        except (TypeError, ValueError):
            raise ValidationError(
                {"from_allocation_id": "Source and destination allocations are required"}
            )
        if from_allocation_id == to_allocation_id:
            raise ValidationError(
                {"to_allocation_id": "Source and destination must be different allocations"}
            )
        try:
            amount = quantize_money(amount)
        except ValueError:
            raise ValidationError({"amount": "Amount must be a valid number"})
        if amount <= 0:
            raise ValidationError({"amount": "Amount must be greater than zero"})

        AllocationService.lock_household(household)
        locked = {
            allocation.id: allocation
            for allocation in Allocation.objects.select_for_update(of=("self",))
            .select_related("category")
            .filter(household=household, id__in=[from_allocation_id, to_allocation_id])
            .order_by("id")
        }
        source = locked.get(from_allocation_id)
        destination = locked.get(to_allocation_id)
        if source is None:
            raise NotFound(f"Allocation {from_allocation_id} not found.")
        if destination is None:
            raise NotFound(f"Allocation {to_allocation_id} not found.")

        source_spent = AllocationService.recompute_spent(
            household, source.category_id, source.month
        )
        spendable = source.available_amount - source_spent

        if amount > spendable:
            logger.warning(
                "Move rejected - insufficient funds",
                extra={
                    "household_id": household.id,
                    "from_allocation_id": source.id,
                    "to_allocation_id": destination.id,
                    "amount": str(amount),
                    "spendable": str(spendable),
                    "action": "allocation_move_rejected",
                    "component": "AllocationService",
                    "severity": "medium",
                },
            )
            raise InsufficientFunds(
                "Insufficient funds. Available: "
                f"{format_money(max(spendable, ZERO), household.base_currency)}"
            )

        source.available_amount = source.available_amount - amount
        destination.available_amount = destination.available_amount + amount
        source.save(update_fields=["available_amount", "updated_at"])
        destination.save(update_fields=["available_amount", "updated_at"])

        destination_spent = AllocationService.recompute_spent(
            household, destination.category_id, destination.month
        )

        logger.info(
            "Funds moved between allocations",
            extra={
                "household_id": household.id,
                "from_allocation_id": source.id,
                "to_allocation_id": destination.id,
                "amount": str(amount),
                "action": "allocation_move_applied",
                "component": "AllocationService",
            },
        )
        return {
            "amount": amount,
            "from_allocation": AllocationService.describe(source, source_spent),
            "to_allocation": AllocationService.describe(destination, destination_spent),
        }

    # -------------------------------------------------------------------
    # DELETE
    # -------------------------------------------------------------------

    @staticmethod
    @db_transaction.atomic
    def delete_allocation(household, allocation_id):
        """
        Delete an envelope. Posted transactions are untouched; its category
        spend simply becomes unbudgeted and its funded balance returns to the
        month's unallocated pool.
        """
        AllocationService.lock_household(household)
        allocation = AllocationService._get_allocation(household, allocation_id, lock=True)
        snapshot = {
            "id": allocation.id,
            "category_id": allocation.category_id,
            "month": allocation.month,
            "released_amount": allocation.available_amount,
        }
        allocation.delete()

        logger.info(
            "Allocation deleted",
            extra={
                "household_id": household.id,
                "allocation_id": snapshot["id"],
                "released_amount": str(snapshot["released_amount"]),
                "action": "allocation_deleted",
                "component": "AllocationService",
            },
        )
        return snapshot

    # -------------------------------------------------------------------
    # HELPERS
    # -------------------------------------------------------------------

    @staticmethod
    def _find_envelope(household, category, month):
        return (
            Allocation.objects.select_for_update(of=("self",))
            .select_related("category")
            .filter(household=household, category=category, month=month)
            .first()
        )

    @staticmethod
    def _get_allocation(household, allocation_id, lock=False):
        queryset = Allocation.objects.select_related("category").filter(household=household)
        if lock:
            queryset = queryset.select_for_update(of=("self",))
        allocation = queryset.filter(pk=allocation_id).first()
        if allocation is None:
            raise NotFound(f"Allocation {allocation_id} not found.")
        return allocation

    @staticmethod
    def _get_budgetable_category(household, category_id):
        category = Category.objects.filter(
            household=household, pk=category_id, is_active=True
        ).first()
        if category is None:
            raise ValidationError({"category_id": f"Category {category_id} not found"})
        if category.is_system:
            raise ValidationError({"category_id": "System categories cannot be budgeted"})
        return category
