"""
Month-key helpers. A budgeting month is stored as the first day of the month.
"""

from datetime import date, datetime, timedelta


def month_start(value: date) -> date:
    return value.replace(day=1)


def next_month(value: date) -> date:
    first = month_start(value)
    return (first + timedelta(days=32)).replace(day=1)


def add_months(value: date, months: int) -> date:
    """Shift a month key by a signed number of months."""
    index = value.year * 12 + (value.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def month_range(month: date):
    """Return (first_day, first_day_of_next_month) for a month key."""
    first = month_start(month)
    return first, next_month(first)


def parse_month(value) -> date:
    """
    Parse 'YYYY-MM-01' (or 'YYYY-MM') into a month key.

    Raises:
        ValueError: If the value is not a valid month
    """
    if isinstance(value, datetime):
        return month_start(value.date())
    if isinstance(value, date):
        return month_start(value)
    if not value:
        raise ValueError("month is required (YYYY-MM-01)")

    text = str(value).strip()
    for fmt in ("%Y-%m-%d", "%Y-%m"):
        try:
            return month_start(datetime.strptime(text, fmt).date())
        except ValueError:
            continue
    raise ValueError(f"Invalid month '{value}', expected YYYY-MM-01")


def parse_date(value, field_name="date") -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip(), "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise ValueError(f"{field_name} must be a date in YYYY-MM-DD format")
