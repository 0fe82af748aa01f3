"""Currency and date formatting helpers used in tool messages."""

from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Union


CURRENCY_SYMBOLS = {
    "USD": "$",
    "CAD": "CA$",
    "AUD": "A$",
    "GBP": "£",
    "EUR": "€",
    "JPY": "¥",
    "INR": "₹",
}

# Currencies without minor units
ZERO_DECIMAL_CURRENCIES = {"JPY", "KRW"}


def format_currency(amount: Union[int, float, Decimal], currency: str = "USD") -> str:
    """Format an amount for display.

    Examples:
        >>> format_currency(1234.5)
        '$1,234.50'
        >>> format_currency(-20, "GBP")
        '-£20.00'
        >>> format_currency(99, "CHF")
        'CHF 99.00'
    """
    code = (currency or "USD").upper()
    places = Decimal("1") if code in ZERO_DECIMAL_CURRENCIES else Decimal("0.01")
    value = Decimal(str(amount)).quantize(places, rounding=ROUND_HALF_UP)

    sign = "-" if value < 0 else ""
    body = f"{abs(value):,.{0 if places == Decimal('1') else 2}f}"

    symbol = CURRENCY_SYMBOLS.get(code)
    if symbol:
        return f"{sign}{symbol}{body}"
    return f"{sign}{code} {body}"


def format_date(value: Union[str, date, datetime]) -> str:
    """Format an ISO date as 'January 15, 2025'."""
    if isinstance(value, str):
        value = date.fromisoformat(value[:10])
    return f"{value.strftime('%B')} {value.day}, {value.year}"
