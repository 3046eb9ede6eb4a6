# ledger/tests/unit/test_service_transaction.py
from datetime import date
from decimal import Decimal
from unittest.mock import Mock, patch

import pytest
from django.core.exceptions import ValidationError

from ledger.exceptions import InvalidRate, NotFound
from ledger.models import Account, Transaction, TransactionLine
from ledger.services.allocation_service import AllocationService
from ledger.services.transaction_service import TransactionService
from ledger.tests.factories import AccountFactory, AllocationFactory, CategoryFactory

pytestmark = pytest.mark.django_db


def balances(*accounts):
    return {
        account.id: Account.objects.get(pk=account.id).balance for account in accounts
    }


# =============================================================================
# CREATE
# =============================================================================


class TestCreateTransaction:
    """Testy vytvorenia transakcie"""

    def test_basic_expense(self, post_transaction, expense_line, checking, groceries):
        """Výdavok 50 USD zníži zostatok na -50 a bez obálky nemá efekty"""
        txn = post_transaction([expense_line("50.00")], title="Groceries run")

        checking.refresh_from_db()
        assert checking.balance == Decimal("-50.00")
        assert txn.envelope_effects == []

        line = txn.lines.get()
        assert line.direction == TransactionLine.DIRECTION_EXPENSE
        assert line.exchange_rate == Decimal("1")
        assert line.rate_mode == "normal"
        assert line.base_amount == Decimal("50.00")
        assert txn.title == "Groceries run"
        assert txn.created_by is not None

    def test_direction_derived_from_category(self, post_transaction, checking, salary):
        """Bez smeru sa smer odvodí z typu kategórie"""
        txn = post_transaction(
            [{"account_id": checking.id, "category_id": salary.id, "amount": "1200.00", "currency": "USD"}]
        )

        assert txn.lines.get().direction == TransactionLine.DIRECTION_INCOME
        checking.refresh_from_db()
        assert checking.balance == Decimal("1200.00")

    def test_multi_line_posts_each_account(
        self, post_transaction, expense_line, checking, cash, dining
    ):
        """Každý riadok sa zaúčtuje na svoj účet"""
        post_transaction(
            [
                expense_line("30.00"),
                expense_line("12.40", account=cash, category=dining),
            ]
        )

        assert balances(checking, cash) == {
            checking.id: Decimal("-30.00"),
            cash.id: Decimal("-12.40"),
        }

    def test_lines_keep_input_order(self, post_transaction, expense_line, dining):
        txn = post_transaction([expense_line("1.00"), expense_line("2.00", category=dining)])

        assert [line.amount for line in txn.lines.all()] == [Decimal("1.00"), Decimal("2.00")]

    def test_foreign_line_normal_rate(self, post_transaction, expense_line, checking):
        """100 EUR pri kurze 1.08 zaúčtuje 108.00 USD"""
        txn = post_transaction(
            [expense_line("100.00", currency="EUR", exchange_rate=Decimal("1.08"))]
        )

        line = txn.lines.get()
        assert line.exchange_rate == Decimal("1.08")
        assert line.base_amount == Decimal("108.00")
        checking.refresh_from_db()
        assert checking.balance == Decimal("-108.00")

    def test_foreign_line_inverted_rate(self, post_transaction, expense_line, checking):
        post_transaction(
            [
                expense_line(
                    "100.00",
                    currency="EUR",
                    exchange_rate=Decimal("0.9259"),
                    rate_mode="inverted",
                )
            ]
        )

        checking.refresh_from_db()
        assert checking.balance == Decimal("-108.00")

    def test_foreign_account_posts_in_base_currency(
        self, post_transaction, expense_line, euro_card
    ):
        """Zostatok EUR účtu je vedený v základnej mene domácnosti"""
        post_transaction(
            [
                expense_line(
                    "10.00", account=euro_card, currency="EUR", exchange_rate=Decimal("1.10")
                )
            ]
        )

        euro_card.refresh_from_db()
        assert euro_card.balance == Decimal("-11.00")

    def test_base_currency_line_ignores_rate(self, post_transaction, expense_line):
        txn = post_transaction(
            [expense_line("20.00", exchange_rate=Decimal("3"), rate_mode="inverted")]
        )

        line = txn.lines.get()
        assert (line.exchange_rate, line.rate_mode) == (Decimal("1"), "normal")
        assert line.base_amount == Decimal("20.00")

    def test_envelope_effects_reported(self, post_transaction, expense_line, household, groceries):
        """Dotknutá obálka vráti prepočítané minuté"""
        allocation = AllocationFactory(
            household=household,
            category=groceries,
            allocated_amount=Decimal("200.00"),
            available_amount=Decimal("150.00"),
        )

        txn = post_transaction([expense_line("50.00")])

        assert len(txn.envelope_effects) == 1
        effect = txn.envelope_effects[0]
        assert effect["id"] == allocation.id
        assert effect["spent"] == Decimal("50.00")
        assert effect["balance"] == Decimal("100.00")
        assert effect["to_fund"] == Decimal("50.00")

    def test_system_category_allowed_for_internal_callers(
        self, household, owner, checking, system_category
    ):
        data = {
            "date": date(2024, 3, 5),
            "title": "Balance Adjustment",
            "lines": [
                {
                    "account_id": checking.id,
                    "category_id": system_category.id,
                    "amount": Decimal("15.00"),
                    "currency": "USD",
                    "direction": "income",
                }
            ],
        }

        TransactionService.create_transaction(household, owner, data, allow_system_category=True)

        checking.refresh_from_db()
        assert checking.balance == Decimal("15.00")


# =============================================================================
# VALIDATION
# =============================================================================


class TestCreateValidation:
    """Neplatné vstupy nič nezapíšu"""

    def test_non_positive_amount_rejected(self, post_transaction, expense_line, checking):
        with pytest.raises(ValidationError) as exc_info:
            post_transaction([expense_line("-5.00")])

        assert "lines" in exc_info.value.message_dict
        assert Transaction.objects.count() == 0
        checking.refresh_from_db()
        assert checking.balance == Decimal("0.00")

    def test_zero_amount_rejected(self, post_transaction, expense_line):
        with pytest.raises(ValidationError):
            post_transaction([expense_line("0")])

    def test_too_many_decimals_rejected(self, post_transaction, expense_line):
        with pytest.raises(ValidationError) as exc_info:
            post_transaction([expense_line("10.005")])

        assert "2 decimal places" in str(exc_info.value.message_dict["lines"])

    def test_invalid_line_rolls_back_whole_set(
        self, post_transaction, expense_line, checking, cash
    ):
        """Jeden zlý riadok zruší celú transakciu"""
        with pytest.raises(ValidationError):
            post_transaction([expense_line("10.00"), expense_line("-1.00", account=cash)])

        assert Transaction.objects.count() == 0
        assert TransactionLine.objects.count() == 0
        assert balances(checking, cash) == {checking.id: Decimal("0.00"), cash.id: Decimal("0.00")}

    def test_missing_rate_on_foreign_line(self, post_transaction, expense_line, checking):
        with pytest.raises(InvalidRate):
            post_transaction([expense_line("100.00", currency="EUR")])

        assert Transaction.objects.count() == 0

    def test_zero_rate_on_foreign_line(self, post_transaction, expense_line):
        with pytest.raises(InvalidRate):
            post_transaction([expense_line("100.00", currency="EUR", exchange_rate=Decimal("0"))])

    def test_field_errors_take_precedence_over_rate(self, post_transaction, expense_line):
        """Ak sú aj iné chyby, vráti sa ValidationError so všetkými riadkami"""
        with pytest.raises(ValidationError):
            post_transaction(
                [
                    expense_line("100.00", currency="EUR"),
                    expense_line("-1.00"),
                ]
            )

    def test_system_category_rejected(self, post_transaction, expense_line, system_category):
        with pytest.raises(ValidationError) as exc_info:
            post_transaction([expense_line("10.00", category=system_category, direction="expense")])

        assert "system categories" in str(exc_info.value.message_dict["lines"])

    def test_direction_mismatch_rejected(self, post_transaction, expense_line):
        with pytest.raises(ValidationError) as exc_info:
            post_transaction([expense_line("10.00", direction="income")])

        assert "does not match" in str(exc_info.value.message_dict["lines"])

    def test_other_household_account_rejected(self, post_transaction, expense_line, other_household):
        foreign = AccountFactory(household=other_household)

        with pytest.raises(ValidationError) as exc_info:
            post_transaction([expense_line("10.00", account=foreign)])

        assert "not found" in str(exc_info.value.message_dict["lines"])

    def test_other_household_category_rejected(self, post_transaction, expense_line, other_household):
        foreign = CategoryFactory(household=other_household)

        with pytest.raises(ValidationError):
            post_transaction([expense_line("10.00", category=foreign)])

    def test_inactive_account_rejected(self, post_transaction, expense_line, household):
        closed = AccountFactory(household=household, is_active=False)

        with pytest.raises(ValidationError):
            post_transaction([expense_line("10.00", account=closed)])

    def test_unsupported_currency_rejected(self, post_transaction, expense_line):
        with pytest.raises(ValidationError):
            post_transaction([expense_line("10.00", currency="XYZ")])

    def test_empty_lines_rejected(self, post_transaction):
        with pytest.raises(ValidationError) as exc_info:
            post_transaction([])

        assert "lines" in exc_info.value.message_dict

    def test_missing_title_rejected(self, post_transaction, expense_line):
        with pytest.raises(ValidationError) as exc_info:
            post_transaction([expense_line("10.00")], title="   ")

        assert "title" in exc_info.value.message_dict

    def test_invalid_date_rejected(self, post_transaction, expense_line):
        with pytest.raises(ValidationError) as exc_info:
            post_transaction([expense_line("10.00")], tx_date="not-a-date")

        assert "date" in exc_info.value.message_dict


# =============================================================================
# UPDATE
# =============================================================================


class TestUpdateTransaction:
    """Úprava = storno pôvodných riadkov + aplikácia nových"""

    def test_update_matches_fresh_create(
        self, household, owner, post_transaction, expense_line, checking, cash, dining
    ):
        """Zostatky po úprave sú rovnaké ako po zmazaní a novom vytvorení"""
        original = post_transaction([expense_line("40.00"), expense_line("10.00", account=cash)])
        new_lines = [
            expense_line("25.00", account=cash, category=dining),
            expense_line("100.00", currency="EUR", exchange_rate=Decimal("1.08")),
        ]

        TransactionService.update_transaction(
            household,
            owner,
            original.id,
            {"date": date(2024, 3, 12), "title": "Edited", "lines": new_lines},
        )
        after_update = balances(checking, cash)

        TransactionService.delete_transaction(household, owner, original.id)
        assert balances(checking, cash) == {checking.id: Decimal("0.00"), cash.id: Decimal("0.00")}

        post_transaction(new_lines, tx_date=date(2024, 3, 12), title="Fresh")
        assert balances(checking, cash) == after_update
        assert after_update == {checking.id: Decimal("-108.00"), cash.id: Decimal("-25.00")}

    def test_update_replaces_header_and_lines(
        self, household, owner, post_transaction, expense_line
    ):
        txn = post_transaction([expense_line("40.00"), expense_line("10.00")])
        old_line_ids = set(txn.lines.values_list("id", flat=True))

        updated = TransactionService.update_transaction(
            household,
            owner,
            txn.id,
            {
                "date": "2024-03-20",
                "title": "Renamed",
                "description": "edited",
                "lines": [expense_line("5.00")],
            },
        )

        updated.refresh_from_db()
        assert updated.title == "Renamed"
        assert updated.description == "edited"
        assert updated.date == date(2024, 3, 20)
        assert updated.lines.count() == 1
        assert not old_line_ids & set(updated.lines.values_list("id", flat=True))

    def test_invalid_update_leaves_original(
        self, household, owner, post_transaction, expense_line, checking
    ):
        """Neplatná úprava ponechá pôvodné riadky aj zostatky"""
        txn = post_transaction([expense_line("40.00")])

        with pytest.raises(ValidationError):
            TransactionService.update_transaction(
                household,
                owner,
                txn.id,
                {"date": "2024-03-10", "title": "Broken", "lines": [expense_line("-1.00")]},
            )

        txn.refresh_from_db()
        checking.refresh_from_db()
        assert txn.title == "Test transaction"
        assert txn.lines.get().amount == Decimal("40.00")
        assert checking.balance == Decimal("-40.00")

    def test_update_moving_month_reports_both_envelopes(
        self, household, owner, post_transaction, expense_line, groceries
    ):
        march = AllocationFactory(household=household, category=groceries, month=date(2024, 3, 1))
        april = AllocationFactory(household=household, category=groceries, month=date(2024, 4, 1))
        txn = post_transaction([expense_line("30.00")])

        updated = TransactionService.update_transaction(
            household,
            owner,
            txn.id,
            {"date": "2024-04-02", "title": "Moved", "lines": [expense_line("30.00")]},
        )

        effects = {effect["id"]: effect["spent"] for effect in updated.envelope_effects}
        assert effects == {march.id: Decimal("0.00"), april.id: Decimal("30.00")}

    def test_update_other_household_not_found(
        self, other_household, owner, post_transaction, expense_line
    ):
        txn = post_transaction([expense_line("40.00")])

        with pytest.raises(NotFound):
            TransactionService.update_transaction(
                other_household,
                owner,
                txn.id,
                {"date": "2024-03-10", "title": "x", "lines": [expense_line("1.00")]},
            )


# =============================================================================
# DELETE
# =============================================================================


class TestDeleteTransaction:
    def test_create_then_delete_conserves_balances(
        self, household, owner, post_transaction, expense_line, checking, cash, dining
    ):
        """Vytvorenie a zmazanie nechá zostatky presne ako predtým"""
        post_transaction([expense_line("99.99")])
        before = balances(checking, cash)

        txn = post_transaction(
            [
                expense_line("12.34", account=cash, category=dining),
                expense_line("50.00", currency="GBP", exchange_rate=Decimal("1.2713")),
            ]
        )
        result = TransactionService.delete_transaction(household, owner, txn.id)

        assert result["id"] == txn.id
        assert balances(checking, cash) == before
        assert not Transaction.objects.filter(pk=txn.id).exists()

    def test_second_delete_not_found(self, household, owner, post_transaction, expense_line):
        """Opakované zmazanie vráti NotFound a nezmení zostatky druhýkrát"""
        txn = post_transaction([expense_line("10.00")])
        TransactionService.delete_transaction(household, owner, txn.id)

        with pytest.raises(NotFound):
            TransactionService.delete_transaction(household, owner, txn.id)

    def test_delete_reports_envelope_effects(
        self, household, owner, post_transaction, expense_line, groceries
    ):
        allocation = AllocationFactory(household=household, category=groceries)
        txn = post_transaction([expense_line("10.00")])

        result = TransactionService.delete_transaction(household, owner, txn.id)

        assert [effect["id"] for effect in result["envelope_effects"]] == [allocation.id]
        assert result["envelope_effects"][0]["spent"] == Decimal("0.00")


# =============================================================================
# QUERIES
# =============================================================================


class TestFilterTransactions:
    def test_filters(
        self, household, post_transaction, expense_line, checking, cash, salary, dining
    ):
        expense = post_transaction([expense_line("10.00")], tx_date=date(2024, 3, 5))
        income = post_transaction(
            [{"account_id": cash.id, "category_id": salary.id, "amount": "500.00", "currency": "USD"}],
            tx_date=date(2024, 3, 25),
        )
        mixed = post_transaction(
            [expense_line("5.00", category=dining), expense_line("6.00", account=cash)],
            tx_date=date(2024, 4, 2),
        )

        def ids(**filters):
            return set(
                TransactionService.filter_transactions(household, filters).values_list("id", flat=True)
            )

        assert ids() == {expense.id, income.id, mixed.id}
        assert ids(direction="income") == {income.id}
        assert ids(account=cash.id) == {income.id, mixed.id}
        assert ids(category=dining.id) == {mixed.id}
        assert ids(start_date=date(2024, 3, 10), end_date=date(2024, 3, 31)) == {income.id}

    def test_household_isolation(self, other_household, post_transaction, expense_line):
        post_transaction([expense_line("10.00")])

        assert TransactionService.filter_transactions(other_household).count() == 0


# =============================================================================
# LOCK ORDER
# =============================================================================


@pytest.fixture
def lock_calls():
    """Zaznamená poradie zámkov, ktoré zápis transakcie získa"""
    recorder = Mock()
    targets = [
        (AllocationService, "lock_household"),
        (TransactionService, "_get_locked_transaction"),
        (AllocationService, "lock_envelopes"),
    ]
    patchers = [
        patch.object(service, name, wraps=getattr(service, name)) for service, name in targets
    ]
    for patcher, (_, name) in zip(patchers, targets):
        recorder.attach_mock(patcher.start(), name)
    yield recorder
    for patcher in patchers:
        patcher.stop()


def lock_order(recorder):
    return [recorded_call[0] for recorded_call in recorder.mock_calls]


@pytest.mark.django_db(transaction=True)
class TestLockOrder:
    """Zápisy zamykajú domácnosť pred obálkami, rovnako ako Fund a Move"""

    @pytest.fixture(autouse=True)
    def envelope(self, household, groceries, month):
        return AllocationFactory(household=household, category=groceries, month=month)

    def test_create(self, lock_calls, post_transaction, expense_line):
        post_transaction([expense_line("25.00")])

        assert lock_order(lock_calls) == ["lock_household", "lock_envelopes"]

    def test_update(self, household, owner, lock_calls, post_transaction, expense_line):
        txn = post_transaction([expense_line("25.00")])
        lock_calls.reset_mock()

        TransactionService.update_transaction(
            household,
            owner,
            txn.id,
            {"date": date(2024, 3, 11), "title": "Edited", "lines": [expense_line("30.00")]},
        )

        assert lock_order(lock_calls) == [
            "lock_household",
            "_get_locked_transaction",
            "lock_envelopes",
        ]

    def test_delete(self, household, owner, lock_calls, post_transaction, expense_line):
        txn = post_transaction([expense_line("25.00")])
        lock_calls.reset_mock()

        TransactionService.delete_transaction(household, owner, txn.id)

        assert lock_order(lock_calls) == [
            "lock_household",
            "_get_locked_transaction",
            "lock_envelopes",
        ]
