# ledger/services/transaction_service.py
"""
Transaction engine for multi-line, multi-currency transactions.

Create, update and delete each run as one database transaction:
- every line is validated before anything is written
- each line's signed base-currency amount is posted to its account
- edits reverse all original postings and re-apply the new line set
- affected envelopes get their spent figure recomputed

Writers lock the household row, then the touched envelopes.
"""

import logging

from django.core.exceptions import ValidationError
from django.db import transaction as db_transaction

from ..exceptions import InvalidRate, NotFound
from ..models import CURRENCY_CHOICES, Account, Category, Transaction, TransactionLine
from ..utils.currency_utils import (RATE_MODE_NORMAL, convert_to_base,
                                    resolve_line_rate, to_decimal)
from ..utils.date_utils import month_start, parse_date
from .allocation_service import AllocationService
from .ledger_service import LedgerService

logger = logging.getLogger(__name__)

VALID_DIRECTIONS = (TransactionLine.DIRECTION_INCOME, TransactionLine.DIRECTION_EXPENSE)
SUPPORTED_CURRENCIES = {code for code, _ in CURRENCY_CHOICES}


class TransactionService:
    """
    Service for creating, replacing and deleting transactions atomically.

    All public methods return model instances; create/update/delete attach
    ``envelope_effects`` listing the recomputed envelopes they touched.
    """

    @staticmethod
    @db_transaction.atomic
    def create_transaction(household, user, data, allow_system_category=False):
        """
        Validate and persist a transaction with its lines, then post to accounts.

        Args:
            household: Household the transaction belongs to
            user: Author (stored as ``created_by``)
            data: dict with ``date``, ``title``, optional ``description`` and
                ``lines`` (list of dicts with ``account_id``, ``category_id``,
                ``amount``, ``currency``, optional ``direction``,
                ``exchange_rate``, ``rate_mode``, ``notes``)
            allow_system_category: Internal callers (balance adjustment) may
                post against system categories

        Returns:
            Transaction: Created transaction with ``envelope_effects`` attached

        Raises:
            ValidationError: Field-level problems; nothing is written
            InvalidRate: Missing or non-positive rate on a foreign line
        """
        header = TransactionService._validate_header(data)
        prepared = TransactionService._validate_lines(
            household, data.get("lines"), allow_system_category
        )

        logger.info(
            "Creating transaction",
            extra={
                "user_id": getattr(user, "id", None),
                "household_id": household.id,
                "line_count": len(prepared),
                "action": "transaction_create_start",
                "component": "TransactionService",
            },
        )

        month = month_start(header["date"])
        keys = {(line["category"].id, month) for line in prepared}
        AllocationService.lock_household(household)
        AllocationService.lock_envelopes(household, keys)

        txn = Transaction.objects.create(
            household=household,
            created_by=user,
            date=header["date"],
            title=header["title"],
            description=header["description"],
        )
        TransactionService._apply_lines(household, txn, prepared)

        txn.envelope_effects = AllocationService.envelope_effects(household, keys)

        logger.info(
            "Transaction created",
            extra={
                "user_id": getattr(user, "id", None),
                "household_id": household.id,
                "transaction_id": txn.id,
                "line_count": len(prepared),
                "envelopes_touched": len(txn.envelope_effects),
                "action": "transaction_created",
                "component": "TransactionService",
            },
        )
        return txn

    @staticmethod
    @db_transaction.atomic
    def update_transaction(household, user, transaction_id, data):
        """
        Replace a transaction's header and full line set.

        Reverses every original posting, validates the new lines and applies
        them exactly as create does. Readers never see a half-applied edit.

        Raises:
            NotFound: Transaction does not exist in this household
            ValidationError / InvalidRate: New line set is invalid
        """
        AllocationService.lock_household(household)
        txn = TransactionService._get_locked_transaction(household, transaction_id)
        old_lines = list(txn.lines.select_related("category"))
        old_keys = {(line.category_id, txn.month) for line in old_lines}

        header = TransactionService._validate_header(data)
        allow_system = any(line.category.is_system for line in old_lines)
        prepared = TransactionService._validate_lines(
            household, data.get("lines"), allow_system
        )

        new_month = month_start(header["date"])
        new_keys = {(line["category"].id, new_month) for line in prepared}
        AllocationService.lock_envelopes(household, old_keys | new_keys)

        TransactionService._reverse_lines(household, old_lines)
        txn.lines.all().delete()

        txn.date = header["date"]
        txn.title = header["title"]
        txn.description = header["description"]
        txn.save(update_fields=["date", "title", "description", "updated_at"])

        TransactionService._apply_lines(household, txn, prepared)
        txn.envelope_effects = AllocationService.envelope_effects(
            household, old_keys | new_keys
        )

        logger.info(
            "Transaction replaced",
            extra={
                "user_id": getattr(user, "id", None),
                "household_id": household.id,
                "transaction_id": txn.id,
                "reversed_lines": len(old_lines),
                "applied_lines": len(prepared),
                "action": "transaction_updated",
                "component": "TransactionService",
            },
        )
        return txn

    @staticmethod
    @db_transaction.atomic
    def delete_transaction(household, user, transaction_id):
        """
        Reverse every posting of a transaction and delete it.

        A second delete of the same id raises NotFound; callers retrying after
        a confirmed success should treat that as already done.

        Returns:
            dict: ``id`` of the deleted transaction and ``envelope_effects``
        """
        AllocationService.lock_household(household)
        txn = TransactionService._get_locked_transaction(household, transaction_id)
        lines = list(txn.lines.all())
        keys = {(line.category_id, txn.month) for line in lines}
        AllocationService.lock_envelopes(household, keys)

        TransactionService._reverse_lines(household, lines)
        deleted_id = txn.id
        txn.delete()

        effects = AllocationService.envelope_effects(household, keys)

        logger.info(
            "Transaction deleted",
            extra={
                "user_id": getattr(user, "id", None),
                "household_id": household.id,
                "transaction_id": deleted_id,
                "reversed_lines": len(lines),
                "action": "transaction_deleted",
                "component": "TransactionService",
            },
        )
        return {"id": deleted_id, "envelope_effects": effects}

    # -------------------------------------------------------------------
    # QUERIES
    # -------------------------------------------------------------------

    @staticmethod
    def filter_transactions(household, filters=None):
        """
        Household transactions filtered by date range, account, category and
        line direction. Filters match if any line matches.
        """
        filters = filters or {}
        queryset = Transaction.objects.filter(household=household)

        if filters.get("start_date"):
            queryset = queryset.filter(date__gte=filters["start_date"])
        if filters.get("end_date"):
            queryset = queryset.filter(date__lte=filters["end_date"])
        if filters.get("account"):
            queryset = queryset.filter(lines__account_id=filters["account"])
        if filters.get("category"):
            queryset = queryset.filter(lines__category_id=filters["category"])
        if filters.get("direction") in VALID_DIRECTIONS:
            queryset = queryset.filter(lines__direction=filters["direction"])

        return (
            queryset.distinct()
            .select_related("created_by")
            .prefetch_related("lines__account", "lines__category")
        )

    # -------------------------------------------------------------------
    # VALIDATION
    # -------------------------------------------------------------------

    @staticmethod
    def _validate_header(data):
        errors = {}
        if not isinstance(data, dict):
            raise ValidationError("Transaction data must be an object")

        tx_date = None
        try:
            tx_date = parse_date(data.get("date"))
        except ValueError as e:
            errors["date"] = str(e)

        title = (data.get("title") or "").strip()
        if not title:
            errors["title"] = "Title is required"
        elif len(title) > 200:
            errors["title"] = "Title must be at most 200 characters"

        if errors:
            logger.warning(
                "Transaction header validation failed",
                extra={
                    "errors": errors,
                    "action": "transaction_validation_failed",
                    "component": "TransactionService",
                    "severity": "medium",
                },
            )
            raise ValidationError(errors)

        return {
            "date": tx_date,
            "title": title,
            "description": data.get("description") or "",
        }

    @staticmethod
    def _validate_lines(household, lines, allow_system_category=False):
        """
        Validate a full line set and resolve accounts, categories and rates.

        Returns:
            list[dict]: Prepared lines with resolved objects and base amounts

        Raises:
            ValidationError: ``{"lines": [...]}`` with one message per bad line
            InvalidRate: When the only problem is a bad exchange rate
        """
        if not lines or not isinstance(lines, (list, tuple)):
            raise ValidationError({"lines": "At least one transaction line is required"})

        account_ids = {line.get("account_id") for line in lines if isinstance(line, dict)}
        category_ids = {line.get("category_id") for line in lines if isinstance(line, dict)}
        accounts = {
            account.id: account
            for account in Account.objects.filter(
                household=household, is_active=True, id__in=[i for i in account_ids if i]
            )
        }
        categories = {
            category.id: category
            for category in Category.objects.filter(
                household=household, is_active=True, id__in=[i for i in category_ids if i]
            )
        }

        prepared = []
        errors = []
        rate_errors = []

        for index, line in enumerate(lines):
            label = f"Line {index + 1}"
            if not isinstance(line, dict):
                errors.append(f"{label}: must be an object")
                continue

            account = accounts.get(line.get("account_id"))
            if account is None:
                errors.append(f"{label}: account {line.get('account_id')} not found")

            category = categories.get(line.get("category_id"))
            if category is None:
                errors.append(f"{label}: category {line.get('category_id')} not found")
            elif category.is_system and not allow_system_category:
                errors.append(f"{label}: system categories cannot be used directly")

            try:
                amount = to_decimal(line.get("amount"), "amount")
            except ValueError:
                errors.append(f"{label}: amount must be a valid number")
                amount = None
            if amount is not None:
                if amount <= 0:
                    errors.append(f"{label}: amount must be greater than zero")
                elif amount.as_tuple().exponent < -2:
                    errors.append(f"{label}: amount must have at most 2 decimal places")

            currency = (line.get("currency") or "").upper()
            if currency not in SUPPORTED_CURRENCIES:
                errors.append(f"{label}: unsupported currency '{line.get('currency')}'")

            direction = line.get("direction")
            if category is not None:
                direction = TransactionService._resolve_direction(
                    label, category, direction, errors
                )
            elif direction not in VALID_DIRECTIONS:
                errors.append(f"{label}: direction must be 'income' or 'expense'")

            rate, rate_mode = None, line.get("rate_mode") or RATE_MODE_NORMAL
            if currency in SUPPORTED_CURRENCIES:
                try:
                    rate, rate_mode = resolve_line_rate(
                        currency, household.base_currency, line.get("exchange_rate"), rate_mode
                    )
                except InvalidRate as e:
                    rate_errors.append(f"{label}: {e.detail}")
                except ValueError as e:
                    errors.append(f"{label}: {e}")

            if errors or rate_errors:
                continue

            prepared.append(
                {
                    "position": index,
                    "account": account,
                    "category": category,
                    "direction": direction,
                    "amount": amount,
                    "currency": currency,
                    "exchange_rate": rate,
                    "rate_mode": rate_mode,
                    "notes": line.get("notes") or "",
                    "base_amount": convert_to_base(amount, rate, rate_mode),
                }
            )

        if errors:
            logger.warning(
                "Transaction line validation failed",
                extra={
                    "household_id": household.id,
                    "error_count": len(errors),
                    "errors": errors,
                    "action": "transaction_lines_invalid",
                    "component": "TransactionService",
                    "severity": "medium",
                },
            )
            raise ValidationError({"lines": errors})

        if rate_errors:
            raise InvalidRate("; ".join(rate_errors))

        return prepared

    @staticmethod
    def _resolve_direction(label, category, direction, errors):
        """Derive direction from the category type, or check it matches."""
        if category.is_system:
            if direction not in VALID_DIRECTIONS:
                errors.append(f"{label}: direction is required for system categories")
            return direction

        if direction in (None, ""):
            return category.category_type
        if direction != category.category_type:
            errors.append(
                f"{label}: direction '{direction}' does not match "
                f"{category.category_type} category '{category.name}'"
            )
        return direction

    # -------------------------------------------------------------------
    # POSTING
    # -------------------------------------------------------------------

    @staticmethod
    def _apply_lines(household, txn, prepared):
        TransactionLine.objects.bulk_create(
            [
                TransactionLine(
                    transaction=txn,
                    position=line["position"],
                    account=line["account"],
                    category=line["category"],
                    direction=line["direction"],
                    amount=line["amount"],
                    currency=line["currency"],
                    exchange_rate=line["exchange_rate"],
                    rate_mode=line["rate_mode"],
                    notes=line["notes"],
                )
                for line in prepared
            ]
        )
        for line in prepared:
            signed = (
                line["base_amount"]
                if line["direction"] == TransactionLine.DIRECTION_INCOME
                else -line["base_amount"]
            )
            LedgerService.post(line["account"].id, signed, household=household)

    @staticmethod
    def _reverse_lines(household, lines):
        for line in lines:
            LedgerService.reverse(line.account_id, line.signed_base_amount, household=household)

    @staticmethod
    def _get_locked_transaction(household, transaction_id):
        txn = (
            Transaction.objects.select_for_update()
            .filter(household=household, pk=transaction_id)
            .first()
        )
        if txn is None:
            logger.warning(
                "Transaction not found",
                extra={
                    "household_id": household.id,
                    "transaction_id": transaction_id,
                    "action": "transaction_not_found",
                    "component": "TransactionService",
                    "severity": "medium",
                },
            )
            raise NotFound(f"Transaction {transaction_id} not found.")
        return txn
