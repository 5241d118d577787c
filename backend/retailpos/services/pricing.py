# Overview: Pure pricing arithmetic for settling a sale.

"""
Sale Pricing Rules (authoritative)

Unit prices are tax-inclusive (MRP-style). Tax is extracted, never added.
Rounding is half-up to 2dp at every step listed, in this order:

1. discount_factor = 1 - item_discount_percent/100
   effective_unit_price = round2(unit_price * discount_factor)
   line_amount = effective_unit_price * qty
2. subtotal = sum(line_amount)
3. tax_divisor = 1 + tax_percent/100
   taxable_value = round2(subtotal / tax_divisor)
   tax_amount = subtotal - taxable_value
4. discount_amount = round2(subtotal * header_discount_percent / 100)
   total = subtotal - discount_amount
5. Per line, on a tax-exclusive, discount-adjusted basis:
   revenue = round2(round2(line_amount / tax_divisor) * (1 - header_discount_percent/100))
   profit = revenue - unit_cost_at_sale * qty

Percent-to-fraction conversions are quantized to 4dp (see money.py).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Sequence

from ..money import HUNDRED, ZERO, discount_factor, round2, tax_divisor, to_decimal
from ..validation import SaleLineInput


@dataclass(frozen=True)
class PricedLine:
    effective_unit_price: Decimal
    line_amount: Decimal
    revenue: Decimal

    def profit(self, unit_cost, qty: int) -> Decimal:
        return self.revenue - to_decimal(unit_cost) * qty


@dataclass(frozen=True)
class SaleQuote:
    tax_percent: Decimal
    discount_percent: Decimal
    subtotal: Decimal
    taxable_value: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total: Decimal
    lines: list[PricedLine] = field(default_factory=list)


def price_line(line: SaleLineInput, divisor: Decimal, header_factor: Decimal) -> PricedLine:
    effective_unit_price = round2(to_decimal(line.unit_price) * discount_factor(line.item_discount_percent))
    line_amount = effective_unit_price * line.qty
    revenue = round2(round2(line_amount / divisor) * header_factor)
    return PricedLine(
        effective_unit_price=effective_unit_price,
        line_amount=line_amount,
        revenue=revenue,
    )


def price_sale(lines: Sequence[SaleLineInput], tax_percent, discount_percent=ZERO) -> SaleQuote:
    """Compute header figures and per-line revenue; lines keep input order."""
    tax_percent = to_decimal(tax_percent)
    discount_percent = to_decimal(discount_percent)
    divisor = tax_divisor(tax_percent)
    header_factor = discount_factor(discount_percent)

    priced = [price_line(line, divisor, header_factor) for line in lines]

    subtotal = sum((p.line_amount for p in priced), ZERO)
    taxable_value = round2(subtotal / divisor)
    tax_amount = subtotal - taxable_value

    discount_amount = round2(subtotal * discount_percent / HUNDRED)
    total = subtotal - discount_amount

    return SaleQuote(
        tax_percent=tax_percent,
        discount_percent=discount_percent,
        subtotal=subtotal,
        taxable_value=taxable_value,
        tax_amount=tax_amount,
        discount_amount=discount_amount,
        total=total,
        lines=priced,
    )
