# ledger/services/__init__.py
from .account_service import AccountService
from .allocation_service import AllocationService
from .category_service import CategoryService
from .household_context_service import HouseholdContextService
from .household_service import HouseholdService
from .ledger_service import LedgerService
from .report_service import ReportService
from .transaction_service import TransactionService
from .unallocated_funds_service import UnallocatedFundsService

__all__ = [
    "AccountService",
    "AllocationService",
    "CategoryService",
    "HouseholdContextService",
    "HouseholdService",
    "LedgerService",
    "ReportService",
    "TransactionService",
    "UnallocatedFundsService",
]
