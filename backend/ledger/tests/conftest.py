# ledger/tests/conftest.py
from datetime import date
from decimal import Decimal

import pytest
from rest_framework.test import APIClient

from ledger.models import Category, HouseholdMembership
from ledger.services.transaction_service import TransactionService

from .factories import (AccountFactory, CategoryFactory, HouseholdFactory,
                        HouseholdMembershipFactory, UserFactory)

# =============================================================================
# USER FIXTURES
# =============================================================================


@pytest.fixture
def owner(db):
    """Vlastník domácnosti (admin)"""
    return UserFactory(username="owner", email="owner@example.com")


@pytest.fixture
def member(db):
    """Bežný člen domácnosti"""
    return UserFactory(username="member", email="member@example.com")


@pytest.fixture
def outsider(db):
    """Používateľ bez domácnosti"""
    return UserFactory(username="outsider", email="outsider@example.com")


# =============================================================================
# HOUSEHOLD FIXTURES
# =============================================================================


@pytest.fixture
def household(db, owner):
    """Domácnosť v USD; signál vytvorí admin členstvo a systémovú kategóriu"""
    return HouseholdFactory(name="Test Household", base_currency="USD", owner=owner)


@pytest.fixture
def member_membership(db, household, member):
    return HouseholdMembershipFactory(
        household=household, user=member, role=HouseholdMembership.ROLE_MEMBER
    )


@pytest.fixture
def other_household(db):
    """Cudzia domácnosť pre testy izolácie"""
    return HouseholdFactory(name="Other Household")


# =============================================================================
# ACCOUNT & CATEGORY FIXTURES
# =============================================================================


@pytest.fixture
def checking(db, household):
    """USD účet so zostatkom 0"""
    return AccountFactory(household=household, name="Checking", account_type="bank", currency="USD")


@pytest.fixture
def cash(db, household):
    return AccountFactory(household=household, name="Cash", account_type="cash", currency="USD")


@pytest.fixture
def euro_card(db, household):
    """Účet v EUR v USD domácnosti"""
    return AccountFactory(household=household, name="Euro Card", account_type="credit", currency="EUR")


@pytest.fixture
def groceries(db, household):
    return CategoryFactory(household=household, name="Groceries", category_type=Category.TYPE_EXPENSE)


@pytest.fixture
def dining(db, household):
    return CategoryFactory(household=household, name="Dining", category_type=Category.TYPE_EXPENSE)


@pytest.fixture
def salary(db, household):
    return CategoryFactory(household=household, name="Salary", category_type=Category.TYPE_INCOME)


@pytest.fixture
def system_category(db, household):
    """Systémová kategória vytvorená signálom"""
    return Category.objects.get(household=household, category_type=Category.TYPE_SYSTEM)


# =============================================================================
# LEDGER HELPERS
# =============================================================================


@pytest.fixture
def month():
    """Rozpočtový mesiac používaný v testoch"""
    return date(2024, 3, 1)


@pytest.fixture
def post_transaction(household, owner):
    """Vytvorí transakciu cez TransactionService (s účtovaním na účty)"""

    def _post(lines, tx_date=date(2024, 3, 10), title="Test transaction", **kwargs):
        data = {"date": tx_date, "title": title, "lines": lines, **kwargs}
        return TransactionService.create_transaction(household, owner, data)

    return _post


@pytest.fixture
def expense_line(checking, groceries):
    """Továreň na výdavkový riadok v USD"""

    def _line(amount, account=None, category=None, **overrides):
        line = {
            "account_id": (account or checking).id,
            "category_id": (category or groceries).id,
            "amount": Decimal(amount),
            "currency": "USD",
        }
        line.update(overrides)
        return line

    return _line


@pytest.fixture
def monthly_income(post_transaction, checking, salary):
    """Príjem 3000 USD v marci 2024 - naplní nerozdelený fond"""
    return post_transaction(
        [
            {
                "account_id": checking.id,
                "category_id": salary.id,
                "amount": Decimal("3000.00"),
                "currency": "USD",
            }
        ],
        tx_date=date(2024, 3, 1),
        title="March salary",
    )


# =============================================================================
# API CLIENT FIXTURES
# =============================================================================


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def admin_client(household, owner):
    """Klient prihlásený ako admin domácnosti"""
    client = APIClient()
    client.force_authenticate(user=owner)
    return client


@pytest.fixture
def member_client(member_membership, member):
    """Klient prihlásený ako bežný člen"""
    client = APIClient()
    client.force_authenticate(user=member)
    return client


@pytest.fixture
def outsider_client(outsider):
    client = APIClient()
    client.force_authenticate(user=outsider)
    return client
