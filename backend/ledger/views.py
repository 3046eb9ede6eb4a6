"""
API views for the household ledger.

Thin ViewSets: input serializers check shape, services own every rule and
every write, output serializers render the result. All lookups are scoped to
the caller's household, so an id from another household is a plain 404.
"""

import logging

from django.conf import settings
from django.http import HttpResponse
from django.utils import timezone
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.pagination import LimitOffsetPagination
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from .exceptions import NotFound
from .mixins.household_context import HouseholdContextMixin
from .mixins.service_exception_handler import ServiceExceptionHandlerMixin
from .models import Account, Category, Transaction
from .permissions import IsHouseholdAdmin, IsHouseholdMember
from .serializers import (AccountSerializer, AddMemberSerializer,
                          AdjustBalanceSerializer, AllocationDeleteResultSerializer,
                          AllocationLineSerializer, AllocationListSerializer,
                          AllocationRowSerializer, AllocationUpsertSerializer,
                          CategoryBreakdownSerializer, CategorySerializer,
                          CategorySpendingSerializer, DashboardSerializer,
                          FundResultSerializer, FundSerializer, HouseholdSerializer,
                          MemberRoleSerializer, MembershipSerializer,
                          MoveResultSerializer, MoveSerializer,
                          TopExpenseSerializer, TransactionDeleteResultSerializer,
                          TransactionInputSerializer, TransactionSerializer,
                          TrendsSerializer, UnallocatedFundsSerializer)
from .services.account_service import AccountService
from .services.allocation_service import AllocationService
from .services.category_service import CategoryService
from .services.household_service import HouseholdService
from .services.report_service import ReportService
from .services.transaction_service import TransactionService
from .services.unallocated_funds_service import UnallocatedFundsService
from .utils.date_utils import parse_date, parse_month

logger = logging.getLogger(__name__)


def month_param(request, required=True):
    """Read ``?month=`` as a month key, defaulting to the current month."""
    raw = request.query_params.get("month")
    if not raw:
        if required:
            raise ValidationError({"month": "month query parameter is required (YYYY-MM-01)"})
        return timezone.localdate().replace(day=1)
    try:
        return parse_month(raw)
    except ValueError as e:
        raise ValidationError({"month": str(e)})


class BaseHouseholdViewSet(HouseholdContextMixin, viewsets.ModelViewSet):
    """
    Base ViewSet for household-scoped resources.

    HouseholdContextMixin.initial() runs before DRF's permission checks, so
    permission classes and views can rely on ``request.household``.
    """

    permission_classes = [IsAuthenticated, IsHouseholdMember]


# -------------------------------------------------------------------
# ACCOUNTS
# -------------------------------------------------------------------


class AccountViewSet(BaseHouseholdViewSet, ServiceExceptionHandlerMixin):
    """
    Household accounts. Balances change only through transactions; deletes
    are soft.
    """

    serializer_class = AccountSerializer

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.account_service = AccountService()

    def get_permissions(self):
        if self.action == "adjust_balance":
            return [IsAuthenticated(), IsHouseholdAdmin()]
        return [IsAuthenticated(), IsHouseholdMember()]

    def get_queryset(self):
        queryset = Account.objects.filter(household=self.request.household)
        if self.request.query_params.get("include_inactive") != "true":
            queryset = queryset.filter(is_active=True)
        return queryset

    def get_object(self):
        include_inactive = self.action in ["update", "partial_update"]
        return self.account_service.get_account(
            self.request.household, self.kwargs["pk"], include_inactive=include_inactive
        )

    def perform_create(self, serializer):
        account = self.handle_service_call(
            self.account_service.create_account,
            self.request.household,
            self.request.user,
            serializer.validated_data,
        )
        serializer.instance = account

    def perform_update(self, serializer):
        serializer.instance = self.handle_service_call(
            self.account_service.update_account,
            serializer.instance,
            serializer.validated_data,
        )

    def perform_destroy(self, instance):
        self.handle_service_call(self.account_service.deactivate_account, instance)

    @action(detail=True, methods=["post"], url_path="adjust-balance")
    def adjust_balance(self, request, pk=None):
        """Reconcile the stored balance to a caller-supplied value."""
        serializer = AdjustBalanceSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        txn = self.handle_service_call(
            self.account_service.adjust_balance,
            request.household,
            request.user,
            pk,
            serializer.validated_data["new_balance"],
            description=serializer.validated_data.get("description"),
            adjustment_date=serializer.validated_data.get("date"),
        )
        account = self.account_service.get_account(request.household, pk)

        logger.info(
            "Balance adjustment completed",
            extra={
                "user_id": request.user.id,
                "account_id": account.id,
                "transaction_id": txn.id,
                "action": "adjust_balance_completed",
                "component": "AccountViewSet",
            },
        )
        return Response(
            {
                "account": AccountSerializer(account).data,
                "transaction": TransactionSerializer(txn).data,
            },
            status=status.HTTP_201_CREATED,
        )


# -------------------------------------------------------------------
# CATEGORIES
# -------------------------------------------------------------------


class CategoryViewSet(BaseHouseholdViewSet, ServiceExceptionHandlerMixin):
    """Members read categories; admins manage them. System categories are read-only."""

    serializer_class = CategorySerializer

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.category_service = CategoryService()

    def get_permissions(self):
        if self.action in ["create", "update", "partial_update", "destroy"]:
            return [IsAuthenticated(), IsHouseholdAdmin()]
        return [IsAuthenticated(), IsHouseholdMember()]

    def get_queryset(self):
        queryset = Category.objects.filter(household=self.request.household, is_active=True)
        category_type = self.request.query_params.get("type")
        if category_type:
            queryset = queryset.filter(category_type=category_type)
        return queryset

    def get_object(self):
        return self.category_service.get_category(self.request.household, self.kwargs["pk"])

    def perform_create(self, serializer):
        serializer.instance = self.handle_service_call(
            self.category_service.create_category,
            self.request.household,
            serializer.validated_data,
        )

    def perform_update(self, serializer):
        serializer.instance = self.handle_service_call(
            self.category_service.update_category,
            serializer.instance,
            serializer.validated_data,
        )

    def perform_destroy(self, instance):
        self.handle_service_call(self.category_service.deactivate_category, instance)

    @action(detail=True, methods=["get"])
    def spending(self, request, pk=None):
        """Monthly totals for the last ``?months=`` months (default 6, max 24)."""
        category = self.get_object()
        try:
            months = int(request.query_params.get("months", 6))
        except ValueError:
            raise ValidationError({"months": "months must be an integer"})

        history = self.category_service.spending_history(
            request.household, category, months=months
        )
        return Response(
            {
                "category": CategorySerializer(category).data,
                "history": CategorySpendingSerializer(history, many=True).data,
            }
        )


# -------------------------------------------------------------------
# TRANSACTIONS
# -------------------------------------------------------------------


class TransactionPagination(LimitOffsetPagination):
    default_limit = settings.LEDGER_TRANSACTION_PAGE_SIZE
    max_limit = 200


class TransactionViewSet(BaseHouseholdViewSet, ServiceExceptionHandlerMixin):
    """
    Multi-line transactions. Every write goes through TransactionService
    and is all-or-nothing; edits replace the whole line set.
    """

    serializer_class = TransactionSerializer
    pagination_class = TransactionPagination
    http_method_names = ["get", "post", "put", "delete", "head", "options"]

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.transaction_service = TransactionService()

    def get_queryset(self):
        filters = self._parse_filters(self.request.query_params)
        return self.transaction_service.filter_transactions(self.request.household, filters)

    def get_object(self):
        txn = (
            Transaction.objects.filter(household=self.request.household, pk=self.kwargs["pk"])
            .select_related("created_by")
            .prefetch_related("lines__account", "lines__category")
            .first()
        )
        if txn is None:
            raise NotFound(f"Transaction {self.kwargs['pk']} not found.")
        return txn

    def create(self, request, *args, **kwargs):
        serializer = TransactionInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        txn = self.handle_service_call(
            self.transaction_service.create_transaction,
            request.household,
            request.user,
            serializer.validated_data,
        )
        return Response(TransactionSerializer(txn).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        serializer = TransactionInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        txn = self.handle_service_call(
            self.transaction_service.update_transaction,
            request.household,
            request.user,
            kwargs["pk"],
            serializer.validated_data,
        )
        return Response(TransactionSerializer(txn).data)

    def destroy(self, request, *args, **kwargs):
        result = self.handle_service_call(
            self.transaction_service.delete_transaction,
            request.household,
            request.user,
            kwargs["pk"],
        )
        return Response(TransactionDeleteResultSerializer(result).data)

    def _parse_filters(self, params):
        filters = {}
        for name in ("start_date", "end_date"):
            if params.get(name):
                try:
                    filters[name] = parse_date(params[name], name)
                except ValueError as e:
                    raise ValidationError({name: str(e)})
        for name in ("account", "category"):
            if params.get(name):
                try:
                    filters[name] = int(params[name])
                except ValueError:
                    raise ValidationError({name: f"{name} must be an integer id"})
        if params.get("direction"):
            filters["direction"] = params["direction"]
        return filters


# -------------------------------------------------------------------
# ALLOCATIONS
# -------------------------------------------------------------------


class AllocationViewSet(HouseholdContextMixin, ServiceExceptionHandlerMixin, viewsets.ViewSet):
    """
    Envelope budgeting: upsert targets, fund from the unallocated pool,
    move between envelopes. Routed explicitly in urls.py.
    """

    permission_classes = [IsAuthenticated, IsHouseholdMember]

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.allocation_service = AllocationService()

    def list(self, request):
        month = month_param(request)
        result = self.handle_service_call(
            self.allocation_service.list_allocations, request.household, month
        )
        return Response(AllocationListSerializer(result).data)

    def upsert(self, request):
        serializer = AllocationUpsertSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        row = self.handle_service_call(
            self.allocation_service.upsert_allocation,
            request.household,
            data["category_id"],
            data["month"],
            data["allocated_amount"],
            notes=data.get("notes"),
            allocation_id=data.get("id"),
        )
        return Response(AllocationRowSerializer(row).data)

    def fund(self, request):
        serializer = FundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = self.handle_service_call(
            self.allocation_service.fund_allocations,
            request.household,
            serializer.validated_data["month"],
            serializer.validated_data["entries"],
        )
        return Response(FundResultSerializer(result).data)

    def move(self, request):
        serializer = MoveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = self.handle_service_call(
            self.allocation_service.move_funds,
            request.household,
            data["from_allocation_id"],
            data["to_allocation_id"],
            data["amount"],
        )
        return Response(MoveResultSerializer(result).data)

    def destroy(self, request, pk=None):
        result = self.handle_service_call(
            self.allocation_service.delete_allocation, request.household, pk
        )
        return Response(AllocationDeleteResultSerializer(result).data)

    def transactions(self, request, pk=None):
        lines = self.handle_service_call(
            self.allocation_service.allocation_transactions, request.household, pk
        )
        return Response(AllocationLineSerializer(lines, many=True).data)

    def unallocated_categories(self, request):
        month = month_param(request)
        categories = self.allocation_service.unallocated_categories(
            request.household, month, category_type=request.query_params.get("type", "expense")
        )
        return Response(CategorySerializer(categories, many=True).data)

    def unallocated_funds(self, request):
        month = month_param(request)
        summary = UnallocatedFundsService.summary(request.household, month)
        return Response(UnallocatedFundsSerializer(summary).data)


# -------------------------------------------------------------------
# HOUSEHOLD
# -------------------------------------------------------------------


class HouseholdViewSet(HouseholdContextMixin, ServiceExceptionHandlerMixin, viewsets.ViewSet):
    """The caller's own household and its members. Routed explicitly in urls.py."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.household_service = HouseholdService()

    def get_permissions(self):
        if self.action == "create":
            return [IsAuthenticated()]
        if self.action in ["partial_update", "add_member", "update_member", "remove_member"]:
            return [IsAuthenticated(), IsHouseholdAdmin()]
        return [IsAuthenticated(), IsHouseholdMember()]

    def retrieve(self, request):
        return Response(HouseholdSerializer(request.household, context={"request": request}).data)

    def create(self, request):
        serializer = HouseholdSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        household = self.handle_service_call(
            self.household_service.create_household,
            request.user,
            serializer.validated_data["name"],
            serializer.validated_data.get("base_currency"),
        )
        return Response(
            HouseholdSerializer(household).data, status=status.HTTP_201_CREATED
        )

    def partial_update(self, request):
        serializer = HouseholdSerializer(request.household, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        household = self.handle_service_call(
            self.household_service.update_household,
            request.household,
            serializer.validated_data,
        )
        return Response(HouseholdSerializer(household, context={"request": request}).data)

    def members(self, request):
        memberships = self.household_service.list_members(request.household)
        return Response(MembershipSerializer(memberships, many=True).data)

    def add_member(self, request):
        serializer = AddMemberSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        membership = self.handle_service_call(
            self.household_service.add_member,
            request.household,
            serializer.validated_data["email"],
            serializer.validated_data["role"],
        )
        return Response(MembershipSerializer(membership).data, status=status.HTTP_201_CREATED)

    def update_member(self, request, user_id=None):
        serializer = MemberRoleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        membership = self.handle_service_call(
            self.household_service.update_member_role,
            request.household,
            request.user,
            user_id,
            serializer.validated_data["role"],
        )
        return Response(MembershipSerializer(membership).data)

    def remove_member(self, request, user_id=None):
        self.handle_service_call(
            self.household_service.remove_member, request.household, request.user, user_id
        )
        return Response(status=status.HTTP_204_NO_CONTENT)


# -------------------------------------------------------------------
# REPORTS
# -------------------------------------------------------------------


class ReportViewSet(HouseholdContextMixin, ServiceExceptionHandlerMixin, viewsets.ViewSet):
    """Read-only reports aggregated from transaction lines."""

    permission_classes = [IsAuthenticated, IsHouseholdMember]

    @action(detail=False, methods=["get"])
    def dashboard(self, request):
        month = month_param(request, required=False)
        result = self.handle_service_call(ReportService.dashboard, request.household, month)
        return Response(DashboardSerializer(result).data)

    @action(detail=False, methods=["get"], url_path="expenses-by-category")
    def expenses_by_category(self, request):
        return self._breakdown(request, "expense")

    @action(detail=False, methods=["get"], url_path="income-by-category")
    def income_by_category(self, request):
        return self._breakdown(request, "income")

    @action(detail=False, methods=["get"], url_path="spending-trends")
    def spending_trends(self, request):
        result = self.handle_service_call(
            ReportService.spending_trends,
            request.household,
            request.query_params.get("months", 6),
        )
        return Response(TrendsSerializer(result).data)

    @action(detail=False, methods=["get"], url_path="top-expenses")
    def top_expenses(self, request):
        rows = self.handle_service_call(
            ReportService.top_expenses,
            request.household,
            request.query_params.get("start_date"),
            request.query_params.get("end_date"),
            request.query_params.get("limit", 10),
        )
        return Response(TopExpenseSerializer(rows, many=True).data)

    @action(detail=False, methods=["get"], url_path="export/csv")
    def export_csv(self, request):
        household = request.household
        response = HttpResponse(content_type="text/csv")
        response["Content-Disposition"] = (
            f'attachment; filename="transactions-{household.id}-{timezone.localdate():%Y%m%d}.csv"'
        )
        self.handle_service_call(
            ReportService.write_csv,
            household,
            response,
            request.query_params.get("start_date"),
            request.query_params.get("end_date"),
        )
        return response

    def _breakdown(self, request, direction):
        result = self.handle_service_call(
            ReportService.category_breakdown,
            request.household,
            direction,
            request.query_params.get("start_date"),
            request.query_params.get("end_date"),
            request.query_params.get("limit"),
        )
        return Response(CategoryBreakdownSerializer(result).data)
