"""
Domain exceptions for the ledger and envelope budgeting core.

Every error carries an HTTP status and a stable machine-readable code so the
service layer can raise it directly and views can propagate it unchanged.
Field-level input problems are raised as Django ``ValidationError`` and
translated by ``ServiceExceptionHandlerMixin``.
"""

from rest_framework import status
from rest_framework.exceptions import APIException


class LedgerError(APIException):
    """Base class for ledger domain failures."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Ledger operation failed."
    default_code = "ledger_error"


class NotFound(LedgerError):
    """Referenced account, category, allocation or transaction does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Resource not found."
    default_code = "not_found"


class AccountNotFound(NotFound):
    """Posting target is missing or soft-deleted."""

    default_detail = "Account not found."
    default_code = "account_not_found"


class InsufficientFunds(LedgerError):
    """Move exceeds the source envelope's spendable balance."""

    default_detail = "Insufficient funds."
    default_code = "insufficient_funds"


class InsufficientUnallocatedFunds(LedgerError):
    """Fund batch exceeds the month's unallocated pool."""

    default_detail = "Insufficient unallocated funds."
    default_code = "insufficient_unallocated_funds"


class InvalidRate(LedgerError):
    """Exchange rate is missing, zero or negative where one is required."""

    default_detail = "Exchange rate must be greater than zero."
    default_code = "invalid_rate"


class ConflictError(LedgerError):
    """Lock or serialization failure under concurrent writes; safe to retry."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = "Concurrent update detected, please retry."
    default_code = "conflict"
