"""
Currency conversion utilities for the household ledger.

Converts a line amount entered in any currency into the household's base
currency using a caller-supplied exchange rate. Conversion is purely numeric
and deterministic so reversing and re-applying a posting always yields the
same figure that was originally posted.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from ..exceptions import InvalidRate

logger = logging.getLogger(__name__)

MINOR_UNIT = Decimal("0.01")

RATE_MODE_NORMAL = "normal"
RATE_MODE_INVERTED = "inverted"
RATE_MODES = (RATE_MODE_NORMAL, RATE_MODE_INVERTED)


def to_decimal(value, field_name="amount") -> Decimal:
    """
    Coerce an int, str or Decimal to Decimal.

    Raises:
        ValueError: If the value is not a finite number
    """
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, TypeError, ValueError):
            raise ValueError(f"{field_name} must be a valid number")
    if not result.is_finite():
        raise ValueError(f"{field_name} must be a valid number")
    return result


def quantize_money(value) -> Decimal:
    """Round half-up to the currency's minor unit (2 decimals)."""
    return to_decimal(value).quantize(MINOR_UNIT, rounding=ROUND_HALF_UP)


def validate_rate(rate) -> Decimal:
    """
    Return the rate as a Decimal, failing with InvalidRate unless rate > 0.
    """
    if rate is None or rate == "":
        raise InvalidRate("Exchange rate is required for foreign-currency lines.")
    try:
        rate = to_decimal(rate, "exchange_rate")
    except ValueError:
        raise InvalidRate("Exchange rate must be a valid number.")
    if rate <= 0:
        logger.warning(
            "Rejected non-positive exchange rate",
            extra={
                "rate": str(rate),
                "action": "invalid_rate_rejected",
                "component": "validate_rate",
                "severity": "medium",
            },
        )
        raise InvalidRate(f"Exchange rate must be greater than zero, got {rate}.")
    return rate


def convert_to_base(amount, rate, rate_mode=RATE_MODE_NORMAL) -> Decimal:
    """
    Convert a line amount into the base currency.

    ``normal``: 1 line-currency = rate x base-currency, so base = amount * rate.
    ``inverted``: 1 base-currency = rate x line-currency, so base = amount / rate.

    Args:
        amount: Line amount in the line's own currency
        rate: Exchange rate, must be > 0
        rate_mode: 'normal' or 'inverted'

    Returns:
        Decimal: Base-currency amount rounded half-up to 2 decimals

    Raises:
        InvalidRate: If rate is missing or not positive
        ValueError: If rate_mode is unknown or amount is not numeric
    """
    rate = validate_rate(rate)
    amount = to_decimal(amount)

    if rate_mode == RATE_MODE_NORMAL:
        raw = amount * rate
    elif rate_mode == RATE_MODE_INVERTED:
        raw = amount / rate
    else:
        raise ValueError(f"Unknown rate mode: {rate_mode}")

    return quantize_money(raw)


def resolve_line_rate(currency, base_currency, rate, rate_mode):
    """
    Normalize the (rate, rate_mode) pair stored on a transaction line.

    Lines in the base currency always convert 1:1; foreign-currency lines must
    carry a positive rate.

    Returns:
        tuple[Decimal, str]: (rate, rate_mode)
    """
    if currency == base_currency:
        return Decimal("1"), RATE_MODE_NORMAL

    if rate_mode not in RATE_MODES:
        raise ValueError(f"rate_mode must be one of: {', '.join(RATE_MODES)}")

    return validate_rate(rate), rate_mode


CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£"}


def format_money(value, currency="USD") -> str:
    """
    Render an amount the way error messages show it.

    ``$42.00`` for currencies with a well-known prefix symbol, ``42.00 CZK``
    for the rest.
    """
    value = quantize_money(value)
    sign = "-" if value < 0 else ""
    symbol = CURRENCY_SYMBOLS.get(currency)
    if symbol:
        return f"{sign}{symbol}{abs(value):,.2f}"
    return f"{sign}{abs(value):,.2f} {currency}"
