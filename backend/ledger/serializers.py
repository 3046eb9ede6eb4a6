"""
Serializers for the household ledger API.

Input serializers only check shape and types. Domain rules (line validation,
rates, envelope invariants) are enforced by the service layer so that every
failure surfaces with its own error kind.

Architecture Pattern:
Input Serializer (shape) → Service (rules + atomic write) → Output Serializer
"""

import logging

from rest_framework import serializers

from .models import (CURRENCY_CHOICES, Account, Category, Household,
                     HouseholdMembership, Transaction, TransactionLine)
from .utils.currency_utils import RATE_MODE_NORMAL, RATE_MODES

logger = logging.getLogger(__name__)


def money_field(**kwargs):
    return serializers.DecimalField(max_digits=14, decimal_places=2, **kwargs)


# -------------------------------------------------------------------
# ENVELOPES
# -------------------------------------------------------------------


class AllocationRowSerializer(serializers.Serializer):
    """Allocation row with derived spent, balance and to-fund."""

    id = serializers.IntegerField()
    category_id = serializers.IntegerField()
    category_name = serializers.CharField()
    category_type = serializers.CharField()
    category_icon = serializers.CharField(allow_blank=True)
    category_color = serializers.CharField(allow_blank=True)
    month = serializers.DateField()
    allocated_amount = money_field()
    available_amount = money_field()
    spent = money_field()
    balance = money_field()
    to_fund = money_field()
    notes = serializers.CharField(allow_blank=True)


class AllocationSummarySerializer(serializers.Serializer):
    total_allocated = money_field()
    total_available = money_field()
    total_spent = money_field()
    total_balance = money_field()
    total_income = money_field()
    unallocated_funds = money_field()
    to_fund = money_field()


class AllocationListSerializer(serializers.Serializer):
    month = serializers.DateField()
    allocations = AllocationRowSerializer(many=True)
    summary = AllocationSummarySerializer()


class UnallocatedFundsSerializer(serializers.Serializer):
    month = serializers.DateField()
    total_income = money_field()
    total_available = money_field()
    unallocated_funds = money_field()


class AllocationUpsertSerializer(serializers.Serializer):
    id = serializers.IntegerField(required=False, allow_null=True)
    category_id = serializers.IntegerField()
    month = serializers.CharField()
    allocated_amount = money_field()
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class FundEntrySerializer(serializers.Serializer):
    allocation_id = serializers.IntegerField()
    amount = money_field()


class FundSerializer(serializers.Serializer):
    month = serializers.CharField()
    entries = FundEntrySerializer(many=True)


class FundResultSerializer(serializers.Serializer):
    month = serializers.DateField()
    allocations = AllocationRowSerializer(many=True)
    total_funded = money_field()
    unallocated_funds = money_field()


class MoveSerializer(serializers.Serializer):
    from_allocation_id = serializers.IntegerField()
    to_allocation_id = serializers.IntegerField()
    amount = money_field()


class MoveResultSerializer(serializers.Serializer):
    amount = money_field()
    from_allocation = AllocationRowSerializer()
    to_allocation = AllocationRowSerializer()


class AllocationDeleteResultSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    category_id = serializers.IntegerField()
    month = serializers.DateField()
    released_amount = money_field()


# -------------------------------------------------------------------
# TRANSACTIONS
# -------------------------------------------------------------------


class TransactionLineInputSerializer(serializers.Serializer):
    """
    One incoming line. Amount sign, direction/category agreement and rates
    are checked by TransactionService.
    """

    account_id = serializers.IntegerField()
    category_id = serializers.IntegerField()
    amount = money_field()
    currency = serializers.CharField(max_length=3)
    direction = serializers.ChoiceField(
        choices=TransactionLine.DIRECTION_CHOICES,
        required=False,
        allow_null=True,
        allow_blank=True,
    )
    exchange_rate = serializers.DecimalField(
        max_digits=18, decimal_places=8, required=False, allow_null=True
    )
    rate_mode = serializers.ChoiceField(choices=RATE_MODES, default=RATE_MODE_NORMAL)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class TransactionInputSerializer(serializers.Serializer):
    date = serializers.DateField()
    title = serializers.CharField(max_length=200)
    description = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    lines = TransactionLineInputSerializer(many=True)


class TransactionLineSerializer(serializers.ModelSerializer):
    account_name = serializers.CharField(source="account.name", read_only=True)
    category_name = serializers.CharField(source="category.name", read_only=True)
    base_amount = money_field(read_only=True)

    class Meta:
        model = TransactionLine
        fields = [
            "id",
            "position",
            "account",
            "account_name",
            "category",
            "category_name",
            "direction",
            "amount",
            "currency",
            "exchange_rate",
            "rate_mode",
            "base_amount",
            "notes",
        ]
        read_only_fields = fields


class TransactionSerializer(serializers.ModelSerializer):
    """
    Persisted transaction with each line's computed base-currency amount.

    ``envelope_effects`` is included only when the service attached it
    (create/update responses).
    """

    lines = TransactionLineSerializer(many=True, read_only=True)
    month = serializers.DateField(read_only=True)
    created_by = serializers.PrimaryKeyRelatedField(read_only=True)

    class Meta:
        model = Transaction
        fields = [
            "id",
            "date",
            "month",
            "title",
            "description",
            "created_by",
            "lines",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def to_representation(self, instance):
        data = super().to_representation(instance)
        effects = getattr(instance, "envelope_effects", None)
        if effects is not None:
            data["envelope_effects"] = AllocationRowSerializer(effects, many=True).data
        return data


class TransactionDeleteResultSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    envelope_effects = AllocationRowSerializer(many=True)


class AllocationLineSerializer(serializers.ModelSerializer):
    """Line counted in an envelope's spent figure."""

    transaction_id = serializers.IntegerField(read_only=True)
    date = serializers.DateField(source="transaction.date", read_only=True)
    title = serializers.CharField(source="transaction.title", read_only=True)
    account_name = serializers.CharField(source="account.name", read_only=True)
    base_amount = money_field(read_only=True)

    class Meta:
        model = TransactionLine
        fields = [
            "id",
            "transaction_id",
            "date",
            "title",
            "account",
            "account_name",
            "direction",
            "amount",
            "currency",
            "base_amount",
            "notes",
        ]
        read_only_fields = fields


# -------------------------------------------------------------------
# ACCOUNTS
# -------------------------------------------------------------------


class AccountSerializer(serializers.ModelSerializer):
    opening_balance = money_field(write_only=True, required=False, allow_null=True)

    class Meta:
        model = Account
        fields = [
            "id",
            "name",
            "account_type",
            "currency",
            "balance",
            "is_active",
            "opening_balance",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "balance", "created_at", "updated_at"]
        extra_kwargs = {"currency": {"required": False}}


class AdjustBalanceSerializer(serializers.Serializer):
    new_balance = money_field()
    description = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    date = serializers.DateField(required=False, allow_null=True)


# -------------------------------------------------------------------
# CATEGORIES
# -------------------------------------------------------------------


class CategorySerializer(serializers.ModelSerializer):
    is_system = serializers.BooleanField(read_only=True)

    class Meta:
        model = Category
        fields = [
            "id",
            "name",
            "category_type",
            "icon",
            "color",
            "is_active",
            "is_system",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "is_active", "is_system", "created_at", "updated_at"]


class CategorySpendingSerializer(serializers.Serializer):
    month = serializers.DateField()
    total = money_field()
    transaction_count = serializers.IntegerField()


# -------------------------------------------------------------------
# HOUSEHOLD
# -------------------------------------------------------------------


class HouseholdSerializer(serializers.ModelSerializer):
    owner_email = serializers.CharField(source="owner.email", read_only=True)
    member_count = serializers.SerializerMethodField()
    user_role = serializers.SerializerMethodField()
    base_currency = serializers.ChoiceField(choices=CURRENCY_CHOICES, required=False)

    class Meta:
        model = Household
        fields = [
            "id",
            "name",
            "base_currency",
            "owner",
            "owner_email",
            "member_count",
            "user_role",
            "created_at",
        ]
        read_only_fields = ["id", "owner", "owner_email", "created_at"]

    def get_member_count(self, obj):
        return obj.memberships.count()

    def get_user_role(self, obj):
        """Role from the request context built before permission checks."""
        request = self.context.get("request")
        if request is None:
            return None
        return getattr(request, "user_permissions", {}).get("household_role")


class MembershipSerializer(serializers.ModelSerializer):
    user_id = serializers.IntegerField(source="user.id", read_only=True)
    email = serializers.EmailField(source="user.email", read_only=True)
    display_name = serializers.CharField(source="user.public_name", read_only=True)
    is_owner = serializers.SerializerMethodField()

    class Meta:
        model = HouseholdMembership
        fields = ["user_id", "email", "display_name", "role", "is_owner", "joined_at"]
        read_only_fields = fields

    def get_is_owner(self, obj):
        return obj.user_id == obj.household.owner_id


class AddMemberSerializer(serializers.Serializer):
    email = serializers.EmailField()
    role = serializers.ChoiceField(
        choices=HouseholdMembership.ROLE_CHOICES, default=HouseholdMembership.ROLE_MEMBER
    )


class MemberRoleSerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=HouseholdMembership.ROLE_CHOICES)


# -------------------------------------------------------------------
# REPORTS
# -------------------------------------------------------------------


class MonthTotalsSerializer(serializers.Serializer):
    income = money_field()
    expenses = money_field()
    net = money_field()


class AccountTotalsSerializer(serializers.Serializer):
    total = serializers.IntegerField()
    total_balance = money_field()


class DashboardSerializer(serializers.Serializer):
    month = serializers.DateField()
    base_currency = serializers.CharField()
    current_month = MonthTotalsSerializer()
    accounts = AccountTotalsSerializer()
    recent_transactions = TransactionSerializer(many=True)


class CategoryBreakdownRowSerializer(serializers.Serializer):
    category_id = serializers.IntegerField()
    category_name = serializers.CharField()
    icon = serializers.CharField(allow_blank=True)
    color = serializers.CharField(allow_blank=True)
    total_amount = money_field()
    transaction_count = serializers.IntegerField()
    percentage = serializers.DecimalField(max_digits=5, decimal_places=2)


class CategoryBreakdownSerializer(serializers.Serializer):
    start_date = serializers.DateField()
    end_date = serializers.DateField()
    direction = serializers.CharField()
    categories = CategoryBreakdownRowSerializer(many=True)
    total = money_field()
    count = serializers.IntegerField()


class TrendRowSerializer(serializers.Serializer):
    month = serializers.DateField()
    income = money_field()
    expenses = money_field()
    net = money_field()


class TrendsSerializer(serializers.Serializer):
    trends = TrendRowSerializer(many=True)
    count = serializers.IntegerField()


class TopExpenseSerializer(serializers.Serializer):
    transaction_id = serializers.IntegerField()
    date = serializers.DateField()
    title = serializers.CharField()
    category_name = serializers.CharField()
    account_name = serializers.CharField()
    amount = money_field()
    currency = serializers.CharField()
    base_amount = money_field()
