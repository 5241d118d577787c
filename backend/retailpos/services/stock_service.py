# Overview: Service-layer operations for the per-variant stock ledger.

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable

from ..errors import BusinessRuleError, NotFoundError, ValidationError, insufficient_stock
from ..extensions import db
from ..models import SaleItem, Variant
from ..money import ZERO, round2, to_decimal
from .concurrency import lock_for_update

"""
Stock Ledger Invariants (authoritative)

Ownership:
- This module is the ONLY code that writes Variant.stock_qty / Variant.avg_cost.
- Engines (sales, purchases, adjustments) call the four primitives below and
  never assign those columns themselves.

Locking:
- Every primitive reads the variant row with SELECT ... FOR UPDATE inside the
  caller's transaction, so read-check-write is atomic per variant.
- Multi-variant transactions call lock_variants() first. It locks rows one by
  one in ascending id order; the same order is used by every caller, so two
  transactions touching the same pair of variants cannot deadlock.
- Locks are released by the caller's commit or rollback, never here.
- Global order: sale row -> variant rows (ascending id) -> shop settings row.

Business invariants:
- stock_qty >= 0 at all times.
- avg_cost changes only in increase_on_purchase(). Sales, voids and
  adjustments move quantity only.
- decrease_on_sale() returns avg_cost as it was BEFORE the decrement; that
  value is frozen onto the sale line.
- restore_on_void() is not idempotent. The void engine guards it with the
  one-way COMPLETED -> VOIDED transition.
"""

logger = logging.getLogger(__name__)


def _variant_not_found(variant_id: int) -> NotFoundError:
    return NotFoundError("VARIANT_NOT_FOUND", f"Variant not found with ID: {variant_id}")


def get_variant(variant_id: int) -> Variant:
    """Unlocked read. Use for existence checks and display only."""
    variant = db.session.get(Variant, variant_id)
    if variant is None:
        raise _variant_not_found(variant_id)
    return variant


def _lock_variant(variant_id: int) -> Variant:
    query = db.session.query(Variant).filter_by(id=variant_id)
    variant = lock_for_update(query).populate_existing().first()
    if variant is None:
        raise _variant_not_found(variant_id)
    return variant


def lock_variants(variant_ids: Iterable[int]) -> dict[int, Variant]:
    """
    Lock every listed variant for the rest of the transaction.

    Rows are locked in ascending id order regardless of input order.
    Raises VARIANT_NOT_FOUND for the first missing id.
    """
    locked: dict[int, Variant] = {}
    for variant_id in sorted(set(variant_ids)):
        locked[variant_id] = _lock_variant(variant_id)
    return locked


def increase_on_purchase(variant_id: int, qty: int, unit_cost) -> Variant:
    """
    Receive qty units at unit_cost and fold them into the weighted average.

    new_avg = (old_qty * old_avg + qty * unit_cost) / (old_qty + qty)
    rounded half-up to 2dp. When the combined quantity is zero the new
    average is simply unit_cost.
    """
    if qty <= 0:
        raise ValidationError("Quantity must be at least 1", code="INVALID_QUANTITY")
    unit_cost = round2(unit_cost)
    if unit_cost < ZERO:
        raise ValidationError("Unit cost must be non-negative")

    variant = _lock_variant(variant_id)
    old_qty = variant.stock_qty
    old_avg = to_decimal(variant.avg_cost)

    new_qty = old_qty + qty
    if new_qty == 0:
        new_avg = unit_cost
    else:
        new_avg = round2((old_qty * old_avg + qty * unit_cost) / Decimal(new_qty))

    variant.stock_qty = new_qty
    variant.avg_cost = new_avg
    db.session.flush()

    logger.debug(
        "Stock increased for variant %s: +%d at %s (qty %d -> %d, avg_cost %s -> %s)",
        variant.sku, qty, unit_cost, old_qty, new_qty, old_avg, new_avg,
    )
    return variant


def decrease_on_sale(variant_id: int, qty: int) -> Decimal:
    """
    Deduct qty units for a sale and return the avg_cost they leave at.

    The availability check and the decrement happen under the same row lock.
    """
    if qty <= 0:
        raise ValidationError("Quantity must be at least 1", code="INVALID_QUANTITY")

    variant = _lock_variant(variant_id)
    if variant.stock_qty < qty:
        logger.warning(
            "Insufficient stock for variant %s: available=%d, required=%d",
            variant.sku, variant.stock_qty, qty,
        )
        raise insufficient_stock(variant.sku, variant.stock_qty, qty)

    unit_cost = to_decimal(variant.avg_cost)
    variant.stock_qty = variant.stock_qty - qty
    db.session.flush()

    logger.debug("Stock decreased for variant %s: -%d (avg_cost %s)", variant.sku, qty, unit_cost)
    return unit_cost


def restore_on_void(sale_id: int) -> dict[int, int]:
    """
    Put back every line quantity of a sale. avg_cost is left as it is now.

    Returns {variant_id: quantity restored}.
    """
    items = db.session.query(SaleItem).filter_by(sale_id=sale_id).all()

    restored: dict[int, int] = {}
    for item in items:
        restored[item.variant_id] = restored.get(item.variant_id, 0) + item.qty

    variants = lock_variants(restored.keys())
    for variant_id, qty in restored.items():
        variant = variants[variant_id]
        variant.stock_qty = variant.stock_qty + qty
        logger.debug("Stock restored for variant %s: +%d (sale %s)", variant.sku, qty, sale_id)

    db.session.flush()
    return restored


def adjust_by_delta(variant_id: int, delta: int) -> Variant:
    """Apply a signed quantity change; the result must stay >= 0."""
    if delta == 0:
        raise BusinessRuleError("INVALID_QUANTITY", "Delta quantity cannot be zero")

    variant = _lock_variant(variant_id)
    new_qty = variant.stock_qty + delta
    if new_qty < 0:
        logger.warning(
            "Insufficient stock for adjustment of %s. Current: %d, Requested: %d",
            variant.sku, variant.stock_qty, delta,
        )
        raise BusinessRuleError(
            "INSUFFICIENT_STOCK",
            f"Cannot reduce stock below zero. Current stock: {variant.stock_qty}",
            details={"sku": variant.sku, "available": variant.stock_qty, "requested": -delta},
        )

    variant.stock_qty = new_qty
    db.session.flush()
    return variant
