"""Money arithmetic on integer cents.

Amounts cross the API as decimal numbers (``12.5``) and are stored as cents. Rates are
percentages (``21`` means 21%). Rounding is half-up to the cent, as on paper invoices.
"""
from __future__ import annotations
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Optional

_CENT = Decimal('1')
_TWO_PLACES = Decimal('0.01')


def to_cents(value: Any) -> int:
    """Convert a user supplied amount (int/float/str) to integer cents.

    Raises ValueError on anything that is not a finite number.
    """
    if isinstance(value, bool) or value is None:
        raise ValueError('amount must be a number')
    try:
        d = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError('amount must be a number')
    if not d.is_finite():
        raise ValueError('amount must be a number')
    return int((d * 100).quantize(_CENT, rounding=ROUND_HALF_UP))


def from_cents(cents: Optional[int]) -> Optional[float]:
    if cents is None:
        return None
    return float(Decimal(cents) / 100)


def percent_of(cents: int, rate: float) -> int:
    """cents * rate / 100, half-up to the cent."""
    d = Decimal(cents) * Decimal(str(rate)) / Decimal(100)
    return int(d.quantize(_CENT, rounding=ROUND_HALF_UP))


def margin(cost_cents: int, sale_cents: int):
    """Return (margin_cents, margin_percentage); percentage is 0 when cost is 0."""
    margin_cents = sale_cents - cost_cents
    if cost_cents == 0:
        return margin_cents, 0.0
    pct = (Decimal(margin_cents) / Decimal(cost_cents) * 100).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)
    return margin_cents, float(pct)


def percentage_change(current: float, previous: float) -> float:
    """Change versus a previous period; from zero it is 100 when current is positive, else 0."""
    if not previous:
        return 100.0 if current > 0 else 0.0
    pct = (Decimal(str(current)) - Decimal(str(previous))) / Decimal(str(previous)) * 100
    return float(pct.quantize(_TWO_PLACES, rounding=ROUND_HALF_UP))

__all__ = ['to_cents', 'from_cents', 'percent_of', 'margin', 'percentage_change']
