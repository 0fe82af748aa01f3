"""Money arithmetic for tools.

Amounts are stored as REAL but every derived figure is computed in Decimal
and rounded half-up to cents, so ``total == amount + round(amount * rate / 100)``
holds exactly for stored records.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Tuple

CENT = Decimal("0.01")


def to_decimal(value) -> Decimal:
    return Decimal(str(value or 0))


def round_money(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_tax(amount, tax_rate) -> Tuple[float, float]:
    """Tax amount and total with tax for a base amount and a percentage rate."""
    base = round_money(amount)
    tax = round_money(base * to_decimal(tax_rate) / 100)
    return float(tax), float(base + tax)


def line_totals(quantity, rate, tax_rate) -> Tuple[float, float, float]:
    """Net, tax, and gross for one invoice line."""
    net = round_money(to_decimal(quantity) * to_decimal(rate))
    tax = round_money(net * to_decimal(tax_rate) / 100)
    return float(net), float(tax), float(net + tax)


def sum_money(values: Iterable) -> float:
    return float(sum((round_money(v) for v in values), Decimal("0")))
