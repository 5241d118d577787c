# Overview: Decimal helpers for monetary and percentage arithmetic.

"""
Money arithmetic rules (authoritative)

- Money is decimal.Decimal, stored as NUMERIC(12, 2).
- Rounding is half-up, applied at each step of a calculation, never only at
  the end. Callers must round in the same order the pricing rules describe.
- Percentages are converted to fractions at 4 decimal places (half-up)
  before they are applied, so 18% becomes 0.1800 and 12.345% becomes 0.1235.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")

_CENT = Decimal("0.01")
_FRACTION = Decimal("0.0001")


def to_decimal(value) -> Decimal:
    """Coerce int/str/float/Decimal/None to Decimal without float artefacts."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def round2(value) -> Decimal:
    return to_decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP)


def percent_fraction(percent) -> Decimal:
    """18 -> Decimal('0.1800')"""
    return (to_decimal(percent) / HUNDRED).quantize(_FRACTION, rounding=ROUND_HALF_UP)


def tax_divisor(tax_percent) -> Decimal:
    """Divisor that strips tax out of a tax-inclusive amount: 1 + rate."""
    return ONE + percent_fraction(tax_percent)


def discount_factor(discount_percent) -> Decimal:
    """Multiplier left after a percentage discount: 1 - rate."""
    return ONE - percent_fraction(discount_percent)


def money_str(value) -> str | None:
    """Serialise money for JSON as a fixed 2dp string."""
    if value is None:
        return None
    return str(round2(value))
