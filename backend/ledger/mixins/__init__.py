# ledger/mixins/__init__.py
from .household_context import HouseholdContextMixin
from .service_exception_handler import ServiceExceptionHandlerMixin

__all__ = [
    "HouseholdContextMixin",
    "ServiceExceptionHandlerMixin",
]
