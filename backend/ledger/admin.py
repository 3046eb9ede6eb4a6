from django.contrib import admin

from .models import (Account, Allocation, Category, Household,
                     HouseholdMembership, Transaction, TransactionLine)


class HouseholdMembershipInline(admin.TabularInline):
    model = HouseholdMembership
    extra = 0


@admin.register(Household)
class HouseholdAdmin(admin.ModelAdmin):
    list_display = ("name", "base_currency", "owner", "is_active", "created_at")
    list_filter = ("base_currency", "is_active")
    search_fields = ("name", "owner__email")
    inlines = [HouseholdMembershipInline]


@admin.register(Account)
class AccountAdmin(admin.ModelAdmin):
    list_display = ("name", "household", "account_type", "currency", "balance", "is_active")
    list_filter = ("account_type", "currency", "is_active")
    search_fields = ("name",)
    # Balances change only through ledger postings
    readonly_fields = ("balance",)


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ("name", "household", "category_type", "is_active")
    list_filter = ("category_type", "is_active")
    search_fields = ("name",)


class TransactionLineInline(admin.TabularInline):
    model = TransactionLine
    extra = 0
    can_delete = False
    readonly_fields = (
        "position",
        "account",
        "category",
        "direction",
        "amount",
        "currency",
        "exchange_rate",
        "rate_mode",
        "notes",
    )


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    """Read-only: edits must go through TransactionService to keep balances right."""

    list_display = ("date", "title", "household", "created_by")
    list_filter = ("date",)
    search_fields = ("title", "description")
    inlines = [TransactionLineInline]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Allocation)
class AllocationAdmin(admin.ModelAdmin):
    list_display = ("category", "household", "month", "allocated_amount", "available_amount")
    list_filter = ("month",)
    readonly_fields = ("available_amount",)
