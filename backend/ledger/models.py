"""
Database models for the household ledger.

This module defines households and their members, accounts, categories,
multi-line multi-currency transactions and per-category monthly envelopes.
Derived figures (a line's base-currency amount, an envelope's spent total)
are computed on read and never stored.
"""

import logging

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q

from .utils.currency_utils import (RATE_MODE_INVERTED, RATE_MODE_NORMAL,
                                   convert_to_base)

logger = logging.getLogger(__name__)

CURRENCY_CHOICES = [
    ("USD", "US Dollar"),
    ("EUR", "Euro"),
    ("GBP", "British Pound"),
    ("CHF", "Swiss Franc"),
    ("CZK", "Czech Koruna"),
    ("PLN", "Polish Zloty"),
    ("HUF", "Hungarian Forint"),
    ("CAD", "Canadian Dollar"),
    ("AUD", "Australian Dollar"),
    ("JPY", "Japanese Yen"),
]

MONEY_DIGITS = 14
MONEY_PLACES = 2

# -------------------------------------------------------------------
# HOUSEHOLD & MEMBERSHIP
# -------------------------------------------------------------------
# Every user belongs to exactly one household; all data is household-scoped


class Household(models.Model):
    """
    A household sharing accounts, categories and budgets.

    All ledger postings and envelope balances are expressed in
    ``base_currency``.
    """

    name = models.CharField(max_length=100)
    base_currency = models.CharField(
        max_length=3, choices=CURRENCY_CHOICES, default="USD"
    )
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="owned_households",
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return f"{self.name} ({self.base_currency})"

    def clean(self):
        super().clean()
        if not self.name or not self.name.strip():
            raise ValidationError({"name": "Household name cannot be empty"})
        if self.base_currency not in dict(CURRENCY_CHOICES):
            raise ValidationError(
                {"base_currency": f"Unsupported currency: {self.base_currency}"}
            )


class HouseholdMembership(models.Model):
    """Links a user to their single household with a role."""

    ROLE_ADMIN = "admin"
    ROLE_MEMBER = "member"
    ROLE_CHOICES = [
        (ROLE_ADMIN, "Admin"),
        (ROLE_MEMBER, "Member"),
    ]

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="household_membership",
    )
    household = models.ForeignKey(
        Household, on_delete=models.CASCADE, related_name="memberships"
    )
    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default=ROLE_MEMBER)
    joined_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [models.Index(fields=["household", "role"], name="idx_membership_role")]
        ordering = ["joined_at"]

    def __str__(self):
        return f"{self.user} in {self.household.name} ({self.role})"

    @property
    def is_admin(self):
        return self.role == self.ROLE_ADMIN


# -------------------------------------------------------------------
# ACCOUNTS
# -------------------------------------------------------------------


class Account(models.Model):
    """
    A money container (bank account, cash, credit card, wallet).

    ``balance`` is changed only by ledger postings. Accounts are soft-deleted
    so historical lines keep their reference.
    """

    TYPE_CHOICES = [
        ("bank", "Bank"),
        ("cash", "Cash"),
        ("credit", "Credit"),
        ("wallet", "Wallet"),
    ]

    household = models.ForeignKey(
        Household, on_delete=models.CASCADE, related_name="accounts"
    )
    name = models.CharField(max_length=100)
    account_type = models.CharField(max_length=10, choices=TYPE_CHOICES)
    currency = models.CharField(max_length=3, choices=CURRENCY_CHOICES)
    balance = models.DecimalField(
        max_digits=MONEY_DIGITS, decimal_places=MONEY_PLACES, default=0
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [models.Index(fields=["household", "is_active"], name="idx_account_active")]
        ordering = ["name"]

    def __str__(self):
        return f"{self.name} ({self.account_type}, {self.currency})"

    def clean(self):
        super().clean()
        if not self.name or not self.name.strip():
            raise ValidationError({"name": "Account name cannot be empty"})


# -------------------------------------------------------------------
# CATEGORIES
# -------------------------------------------------------------------


class Category(models.Model):
    """
    Expense, income or system-reserved category.

    Type is fixed at creation. System categories (e.g. "Balance Adjustment")
    are maintained by the application and cannot be edited by end users.
    """

    TYPE_EXPENSE = "expense"
    TYPE_INCOME = "income"
    TYPE_SYSTEM = "system"
    TYPE_CHOICES = [
        (TYPE_EXPENSE, "Expense"),
        (TYPE_INCOME, "Income"),
        (TYPE_SYSTEM, "System"),
    ]

    household = models.ForeignKey(
        Household, on_delete=models.CASCADE, related_name="categories"
    )
    name = models.CharField(max_length=100)
    category_type = models.CharField(max_length=10, choices=TYPE_CHOICES)
    icon = models.CharField(max_length=50, blank=True)
    color = models.CharField(max_length=7, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = "categories"
        constraints = [
            models.UniqueConstraint(
                fields=["household", "name", "category_type"],
                condition=Q(is_active=True),
                name="uniq_active_category_name",
            )
        ]
        indexes = [models.Index(fields=["household", "category_type"], name="idx_category_type")]
        ordering = ["category_type", "name"]

    def __str__(self):
        return f"{self.name} ({self.category_type})"

    @property
    def is_system(self):
        return self.category_type == self.TYPE_SYSTEM

    def clean(self):
        super().clean()
        if not self.name or not self.name.strip():
            raise ValidationError({"name": "Category name cannot be empty"})
        if self.color and not (self.color.startswith("#") and len(self.color) == 7):
            raise ValidationError({"color": "Color must be a hex value like #AABBCC"})


# -------------------------------------------------------------------
# TRANSACTIONS
# -------------------------------------------------------------------


class Transaction(models.Model):
    """
    A dated, titled set of one or more lines created and edited as one unit.
    """

    household = models.ForeignKey(
        Household, on_delete=models.CASCADE, related_name="transactions"
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="ledger_transactions",
    )
    date = models.DateField()
    title = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["household", "date"], name="idx_household_date"),
        ]
        ordering = ["-date", "-created_at"]

    def __str__(self):
        return f"{self.date} {self.title}"

    @property
    def month(self):
        return self.date.replace(day=1)


class TransactionLine(models.Model):
    """
    One posting of a transaction.

    ``amount`` is in the line's own currency. The base-currency amount is
    derived from (amount, exchange_rate, rate_mode) on every read.
    """

    DIRECTION_INCOME = "income"
    DIRECTION_EXPENSE = "expense"
    DIRECTION_CHOICES = [
        (DIRECTION_INCOME, "Income"),
        (DIRECTION_EXPENSE, "Expense"),
    ]

    RATE_MODE_CHOICES = [
        (RATE_MODE_NORMAL, "1 line currency = rate x base"),
        (RATE_MODE_INVERTED, "1 base currency = rate x line currency"),
    ]

    transaction = models.ForeignKey(
        Transaction, on_delete=models.CASCADE, related_name="lines"
    )
    position = models.PositiveSmallIntegerField(default=0)
    account = models.ForeignKey(
        Account, on_delete=models.PROTECT, related_name="lines"
    )
    category = models.ForeignKey(
        Category, on_delete=models.PROTECT, related_name="lines"
    )
    direction = models.CharField(max_length=10, choices=DIRECTION_CHOICES)
    amount = models.DecimalField(max_digits=MONEY_DIGITS, decimal_places=MONEY_PLACES)
    currency = models.CharField(max_length=3, choices=CURRENCY_CHOICES)
    exchange_rate = models.DecimalField(max_digits=18, decimal_places=8, default=1)
    rate_mode = models.CharField(
        max_length=10, choices=RATE_MODE_CHOICES, default=RATE_MODE_NORMAL
    )
    notes = models.TextField(blank=True)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0), name="line_amount_positive"
            ),
            models.CheckConstraint(
                condition=Q(exchange_rate__gt=0), name="line_rate_positive"
            ),
        ]
        indexes = [models.Index(fields=["category", "direction"], name="idx_line_category_direction")]
        ordering = ["position", "id"]

    def __str__(self):
        return f"{self.direction} {self.amount} {self.currency}"

    @property
    def base_amount(self):
        return convert_to_base(self.amount, self.exchange_rate, self.rate_mode)

    @property
    def signed_base_amount(self):
        """Positive for income lines, negative for expense lines."""
        amount = self.base_amount
        return amount if self.direction == self.DIRECTION_INCOME else -amount


# -------------------------------------------------------------------
# ENVELOPES
# -------------------------------------------------------------------


class Allocation(models.Model):
    """
    Per-category, per-month budget envelope.

    ``allocated_amount`` is the target, ``available_amount`` the funded
    balance. Spent, balance and to-fund are derived by AllocationService.
    """

    household = models.ForeignKey(
        Household, on_delete=models.CASCADE, related_name="allocations"
    )
    category = models.ForeignKey(
        Category, on_delete=models.PROTECT, related_name="allocations"
    )
    month = models.DateField()
    allocated_amount = models.DecimalField(
        max_digits=MONEY_DIGITS, decimal_places=MONEY_PLACES, default=0
    )
    available_amount = models.DecimalField(
        max_digits=MONEY_DIGITS, decimal_places=MONEY_PLACES, default=0
    )
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["household", "category", "month"],
                name="uniq_allocation_category_month",
            ),
            models.CheckConstraint(
                condition=Q(allocated_amount__gte=0),
                name="allocation_allocated_non_negative",
            ),
            models.CheckConstraint(
                condition=Q(available_amount__gte=0),
                name="allocation_available_non_negative",
            ),
        ]
        indexes = [models.Index(fields=["household", "month"], name="idx_allocation_month")]
        ordering = ["month", "category__name"]

    def __str__(self):
        return f"{self.category.name} {self.month:%Y-%m}"

    def clean(self):
        super().clean()
        if self.month and self.month.day != 1:
            raise ValidationError({"month": "Month must be the first day of the month"})
        if self.category_id and self.category.is_system:
            logger.warning(
                "Allocation validation failed - system category",
                extra={
                    "allocation_id": self.id if self.id else "new",
                    "category_id": self.category_id,
                    "action": "allocation_validation_failed",
                    "component": "Allocation",
                    "severity": "medium",
                },
            )
            raise ValidationError(
                {"category": "System categories cannot be budgeted"}
            )
        if self.category_id and self.household_id and self.category.household_id != self.household_id:
            raise ValidationError(
                {"category": "Category belongs to a different household"}
            )
