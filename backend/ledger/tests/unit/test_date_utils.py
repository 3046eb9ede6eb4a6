# ledger/tests/unit/test_date_utils.py
from datetime import date, datetime

import pytest

from ledger.utils.date_utils import (add_months, month_range, month_start,
                                     next_month, parse_date, parse_month)


class TestMonthKeys:
    """Testy pomocných funkcií pre mesačné kľúče"""

    def test_month_start(self):
        assert month_start(date(2024, 3, 17)) == date(2024, 3, 1)

    def test_next_month_handles_year_end(self):
        assert next_month(date(2024, 12, 31)) == date(2025, 1, 1)

    def test_next_month_from_long_month(self):
        assert next_month(date(2024, 1, 31)) == date(2024, 2, 1)

    @pytest.mark.parametrize(
        "start,months,expected",
        [
            (date(2024, 3, 1), 1, date(2024, 4, 1)),
            (date(2024, 3, 1), -3, date(2023, 12, 1)),
            (date(2024, 1, 1), -13, date(2022, 12, 1)),
            (date(2024, 11, 1), 14, date(2026, 1, 1)),
        ],
    )
    def test_add_months(self, start, months, expected):
        assert add_months(start, months) == expected

    def test_month_range_is_half_open(self):
        assert month_range(date(2024, 2, 10)) == (date(2024, 2, 1), date(2024, 3, 1))


class TestParsing:
    def test_parse_month_first_day(self):
        assert parse_month("2024-03-01") == date(2024, 3, 1)

    def test_parse_month_normalizes_day(self):
        """Akýkoľvek deň v mesiaci sa normalizuje na prvý deň"""
        assert parse_month("2024-03-15") == date(2024, 3, 1)

    def test_parse_month_short_form(self):
        assert parse_month("2024-03") == date(2024, 3, 1)

    def test_parse_month_accepts_date_and_datetime(self):
        assert parse_month(date(2024, 5, 20)) == date(2024, 5, 1)
        assert parse_month(datetime(2024, 5, 20, 12, 0)) == date(2024, 5, 1)

    @pytest.mark.parametrize("value", [None, "", "2024-13-01", "March"])
    def test_parse_month_invalid(self, value):
        with pytest.raises(ValueError):
            parse_month(value)

    def test_parse_date(self):
        assert parse_date("2024-03-10") == date(2024, 3, 10)

    def test_parse_date_invalid_names_field(self):
        with pytest.raises(ValueError, match="start_date"):
            parse_date("10/03/2024", "start_date")
