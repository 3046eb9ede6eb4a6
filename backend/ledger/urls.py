"""
URL configuration for the household ledger API.

Accounts, categories, transactions and reports are router-generated.
Allocations and the household endpoints have no id-based collection shape,
so they are routed explicitly.
"""

import logging

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from . import views

logger = logging.getLogger(__name__)

router = DefaultRouter()

# Accounts (+ adjust-balance action)
router.register(r"accounts", views.AccountViewSet, basename="account")

# Categories (+ spending history action)
router.register(r"categories", views.CategoryViewSet, basename="category")

# Multi-line transactions
router.register(r"transactions", views.TransactionViewSet, basename="transaction")

# Read-only reports
router.register(r"reports", views.ReportViewSet, basename="report")

urlpatterns = [
    path("", include(router.urls)),
    # Envelope list and upsert
    path(
        "allocations/",
        views.AllocationViewSet.as_view({"get": "list", "put": "upsert", "post": "upsert"}),
        name="allocation-list",
    ),
    path(
        "allocations/fund/",
        views.AllocationViewSet.as_view({"post": "fund"}),
        name="allocation-fund",
    ),
    path(
        "allocations/move/",
        views.AllocationViewSet.as_view({"post": "move"}),
        name="allocation-move",
    ),
    path(
        "allocations/unallocated-categories/",
        views.AllocationViewSet.as_view({"get": "unallocated_categories"}),
        name="allocation-unallocated-categories",
    ),
    path(
        "allocations/unallocated-funds/",
        views.AllocationViewSet.as_view({"get": "unallocated_funds"}),
        name="allocation-unallocated-funds",
    ),
    path(
        "allocations/<int:pk>/",
        views.AllocationViewSet.as_view({"delete": "destroy"}),
        name="allocation-detail",
    ),
    path(
        "allocations/<int:pk>/transactions/",
        views.AllocationViewSet.as_view({"get": "transactions"}),
        name="allocation-transactions",
    ),
    # The caller's household
    path(
        "household/",
        views.HouseholdViewSet.as_view(
            {"get": "retrieve", "patch": "partial_update", "post": "create"}
        ),
        name="household",
    ),
    path(
        "household/members/",
        views.HouseholdViewSet.as_view({"get": "members", "post": "add_member"}),
        name="household-members",
    ),
    path(
        "household/members/<int:user_id>/",
        views.HouseholdViewSet.as_view({"patch": "update_member", "delete": "remove_member"}),
        name="household-member-detail",
    ),
]

custom_endpoints_count = len(urlpatterns) - 1
logger.info(
    "Ledger API URLs configured",
    extra={
        "total_routes": len(router.urls) + custom_endpoints_count,
        "viewset_endpoints": len(router.registry),
        "custom_endpoints": custom_endpoints_count,
        "action": "url_configuration_loaded",
        "component": "urls",
    },
)
