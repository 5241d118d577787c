# Overview: Service-layer operations for stock adjustments and inventory views.

from __future__ import annotations

import logging

from sqlalchemy import func

from ..audit import ACTION_ADJUSTMENT, ENTITY_STOCK_ADJUSTMENT, audited
from ..errors import BusinessRuleError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product, Purchase, PurchaseItem, Sale, SaleItem, StockAdjustment, Supplier, Variant
from ..models.catalog import VARIANT_ACTIVE
from ..models.purchases import PURCHASE_VOIDED
from ..models.sales import SALE_VOIDED
from ..money import ZERO, money_str, round2, to_decimal
from ..time_utils import parse_date_range, to_utc_z, utcnow
from ..validation import coerce_adjustment_reason, coerce_int, optional_text
from .concurrency import begin_write_transaction, run_with_retry
from .settings_service import get_low_stock_threshold
from .stock_service import adjust_by_delta, get_variant, lock_variants

"""
Inventory Adjustment & Movement Semantics (authoritative)

Adjustments:
- delta_qty is signed and never zero; avg_cost is untouched.
- The StockAdjustment row and the stock change commit together. A rejected
  adjustment (stock would go negative) leaves no row behind.

Movements (per variant, newest first):
- PURCHASE    +qty at purchased_at (every receipt, voided or not; the void
              itself shows up as a CORRECTION adjustment)
- SALE        -qty at sold_at (every settled sale, voided or not)
- SALE_VOID   +qty at voided_at
- ADJUSTMENT  signed delta at created_at
Summing delta_qty over all movements of a variant gives its stock_qty.
"""

logger = logging.getLogger(__name__)

MOVEMENT_PURCHASE = "PURCHASE"
MOVEMENT_SALE = "SALE"
MOVEMENT_SALE_VOID = "SALE_VOID"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"

MOVEMENT_TYPES = (MOVEMENT_PURCHASE, MOVEMENT_SALE, MOVEMENT_SALE_VOID, MOVEMENT_ADJUSTMENT)


def _describe_adjustment(adjustment: StockAdjustment) -> tuple[int, str]:
    return adjustment.id, (
        f"Stock adjusted for variant {adjustment.variant_id}: "
        f"{adjustment.delta_qty:+d} ({adjustment.reason})"
    )


@audited(ENTITY_STOCK_ADJUSTMENT, ACTION_ADJUSTMENT, _describe_adjustment)
def adjust_stock(
    *,
    variant_id,
    delta_qty,
    reason,
    notes: str | None = None,
    actor_id: int | None = None,
) -> StockAdjustment:
    """
    Record an ad-hoc signed stock change.

    Raises:
        NotFoundError: VARIANT_NOT_FOUND
        BusinessRuleError: INVALID_QUANTITY (delta 0), INSUFFICIENT_STOCK
        LockTimeoutError: lock not acquired in time; safe to retry
    """
    if variant_id is None:
        raise ValidationError("variant_id is required")
    variant_id = coerce_int(variant_id, "variant_id")
    if delta_qty is None:
        raise ValidationError("delta_qty is required")
    delta_qty = coerce_int(delta_qty, "delta_qty")
    reason = coerce_adjustment_reason(reason)
    notes = optional_text(notes, "notes", 500)

    if delta_qty == 0:
        raise BusinessRuleError("INVALID_QUANTITY", "Delta quantity cannot be zero")

    logger.info("Creating stock adjustment for variant %s: delta=%d, reason=%s", variant_id, delta_qty, reason)

    def _op():
        begin_write_transaction()

        variant = lock_variants([variant_id])[variant_id]
        if variant.stock_qty + delta_qty < 0:
            logger.warning(
                "Insufficient stock for adjustment of %s. Current: %d, Requested: %d",
                variant.sku, variant.stock_qty, delta_qty,
            )
            raise BusinessRuleError(
                "INSUFFICIENT_STOCK",
                f"Cannot reduce stock below zero. Current stock: {variant.stock_qty}",
                details={"sku": variant.sku, "available": variant.stock_qty, "requested": -delta_qty},
            )

        adjustment = StockAdjustment(
            variant_id=variant_id,
            delta_qty=delta_qty,
            reason=reason,
            notes=notes,
            created_by=actor_id,
            created_at=utcnow(),
        )
        db.session.add(adjustment)
        adjust_by_delta(variant_id, delta_qty)

        db.session.commit()
        logger.info(
            "Stock adjustment created. ID: %s, variant %s now at %d",
            adjustment.id, variant.sku, variant.stock_qty,
        )
        return adjustment

    return run_with_retry(_op)


def get_adjustment(adjustment_id: int) -> StockAdjustment:
    adjustment = db.session.get(StockAdjustment, adjustment_id)
    if adjustment is None:
        raise NotFoundError("ADJUSTMENT_NOT_FOUND", f"Stock adjustment not found with ID: {adjustment_id}")
    return adjustment


def _movement(
    *,
    movement_id: int,
    variant_id: int,
    movement_type: str,
    movement_date,
    delta_qty: int,
    reference_id: int | None = None,
    reference_no: str | None = None,
    supplier_name: str | None = None,
    unit_cost=None,
    notes: str | None = None,
    created_by: int | None = None,
) -> dict:
    return {
        "id": movement_id,
        "variant_id": variant_id,
        "movement_type": movement_type,
        "movement_date": movement_date,
        "delta_qty": delta_qty,
        "reference_id": reference_id,
        "reference_no": reference_no,
        "supplier_name": supplier_name,
        "unit_cost": money_str(unit_cost),
        "notes": notes,
        "created_by": created_by,
    }


def list_stock_movements(
    variant_id: int,
    *,
    start_date: str | None = None,
    end_date: str | None = None,
    movement_type: str | None = None,
) -> list[dict]:
    """
    Every stock movement of one variant, newest first.

    Dates are YYYY-MM-DD and filter on the movement date; end_date is
    inclusive. movement_type narrows to one of MOVEMENT_TYPES.
    """
    get_variant(variant_id)

    try:
        start, end = parse_date_range(start_date, end_date)
    except ValueError:
        raise ValidationError("Invalid date format. Use YYYY-MM-DD", code="INVALID_DATE")

    if movement_type:
        movement_type = movement_type.strip().upper()
        if movement_type not in MOVEMENT_TYPES:
            raise ValidationError(f"type must be one of: {', '.join(MOVEMENT_TYPES)}")

    def wanted(kind: str) -> bool:
        return not movement_type or movement_type == kind

    def in_range(column, q):
        if start is not None:
            q = q.filter(column >= start)
        if end is not None:
            q = q.filter(column < end)
        return q

    movements: list[dict] = []

    if wanted(MOVEMENT_PURCHASE):
        q = (
            db.session.query(PurchaseItem, Purchase, Supplier)
            .join(Purchase, PurchaseItem.purchase_id == Purchase.id)
            .join(Supplier, Purchase.supplier_id == Supplier.id)
            .filter(PurchaseItem.variant_id == variant_id)
        )
        for item, purchase, supplier in in_range(Purchase.purchased_at, q).all():
            movements.append(_movement(
                movement_id=item.id,
                variant_id=variant_id,
                movement_type=MOVEMENT_PURCHASE,
                movement_date=purchase.purchased_at,
                delta_qty=item.qty,
                reference_id=purchase.id,
                reference_no=purchase.invoice_no,
                supplier_name=supplier.name,
                unit_cost=item.unit_cost,
                notes=purchase.notes,
                created_by=purchase.created_by,
            ))

    if wanted(MOVEMENT_SALE):
        q = (
            db.session.query(SaleItem, Sale)
            .join(Sale, SaleItem.sale_id == Sale.id)
            .filter(SaleItem.variant_id == variant_id)
        )
        for item, sale in in_range(Sale.sold_at, q).all():
            movements.append(_movement(
                movement_id=item.id,
                variant_id=variant_id,
                movement_type=MOVEMENT_SALE,
                movement_date=sale.sold_at,
                delta_qty=-item.qty,
                reference_id=sale.id,
                reference_no=sale.bill_no,
                unit_cost=item.unit_cost_at_sale,
                created_by=sale.created_by,
            ))

    if wanted(MOVEMENT_SALE_VOID):
        q = (
            db.session.query(SaleItem, Sale)
            .join(Sale, SaleItem.sale_id == Sale.id)
            .filter(SaleItem.variant_id == variant_id, Sale.status == SALE_VOIDED)
        )
        for item, sale in in_range(Sale.voided_at, q).all():
            movements.append(_movement(
                movement_id=item.id,
                variant_id=variant_id,
                movement_type=MOVEMENT_SALE_VOID,
                movement_date=sale.voided_at,
                delta_qty=item.qty,
                reference_id=sale.id,
                reference_no=sale.bill_no,
                notes=sale.void_reason,
                created_by=sale.voided_by,
            ))

    if wanted(MOVEMENT_ADJUSTMENT):
        q = db.session.query(StockAdjustment).filter(StockAdjustment.variant_id == variant_id)
        for adjustment in in_range(StockAdjustment.created_at, q).all():
            movements.append(_movement(
                movement_id=adjustment.id,
                variant_id=variant_id,
                movement_type=MOVEMENT_ADJUSTMENT,
                movement_date=adjustment.created_at,
                delta_qty=adjustment.delta_qty,
                reference_id=adjustment.purchase_id,
                reference_no=adjustment.reason,
                notes=adjustment.notes,
                created_by=adjustment.created_by,
            ))

    movements.sort(key=lambda m: (m["movement_date"], m["id"]), reverse=True)
    for m in movements:
        m["movement_date"] = to_utc_z(m["movement_date"])
    return movements


def get_inventory_summary() -> dict:
    """Totals over ACTIVE variants. Values are Σ qty·avg_cost and Σ qty·selling_price."""
    threshold = get_low_stock_threshold()
    variants = db.session.query(Variant).filter(Variant.status == VARIANT_ACTIVE).all()

    total_items = 0
    total_cost_value = ZERO
    total_retail_value = ZERO
    low_stock_count = 0
    out_of_stock_count = 0
    for variant in variants:
        qty = variant.stock_qty
        total_items += qty
        total_cost_value += to_decimal(variant.avg_cost) * qty
        total_retail_value += to_decimal(variant.selling_price) * qty
        if qty == 0:
            out_of_stock_count += 1
        elif qty <= threshold:
            low_stock_count += 1

    return {
        "total_skus": len(variants),
        "total_items": total_items,
        "total_cost_value": money_str(total_cost_value),
        "total_retail_value": money_str(total_retail_value),
        "low_stock_count": low_stock_count,
        "out_of_stock_count": out_of_stock_count,
        "low_stock_threshold": threshold,
    }


def list_low_stock(threshold: int | None = None) -> list[dict]:
    """Active variants with 0 < stock_qty <= threshold, lowest stock first."""
    if threshold is None:
        threshold = get_low_stock_threshold()

    rows = (
        db.session.query(Variant, Product)
        .join(Product, Variant.product_id == Product.id)
        .filter(
            Variant.status == VARIANT_ACTIVE,
            Variant.stock_qty > 0,
            Variant.stock_qty <= threshold,
        )
        .order_by(Variant.stock_qty.asc(), Variant.sku.asc())
        .all()
    )
    return [
        {
            "variant_id": variant.id,
            "product_name": product.name,
            "sku": variant.sku,
            "size": variant.size,
            "color": variant.color,
            "stock_qty": variant.stock_qty,
            "threshold": threshold,
        }
        for variant, product in rows
    ]


def get_supplier_summary(variant_id: int) -> list[dict]:
    """
    Who this variant was bought from: per supplier total qty, number of
    purchases, last purchase date and plain average unit cost. Voided
    purchases are excluded.
    """
    get_variant(variant_id)

    rows = (
        db.session.query(
            Supplier.id.label("supplier_id"),
            Supplier.name.label("supplier_name"),
            func.sum(PurchaseItem.qty).label("total_qty"),
            func.count(func.distinct(Purchase.id)).label("purchase_count"),
            func.max(Purchase.purchased_at).label("last_purchase_date"),
            func.sum(PurchaseItem.unit_cost).label("unit_cost_sum"),
            func.count(PurchaseItem.id).label("line_count"),
        )
        .join(Purchase, PurchaseItem.purchase_id == Purchase.id)
        .join(Supplier, Purchase.supplier_id == Supplier.id)
        .filter(PurchaseItem.variant_id == variant_id, Purchase.status != PURCHASE_VOIDED)
        .group_by(Supplier.id, Supplier.name)
        .order_by(func.max(Purchase.purchased_at).desc())
        .all()
    )
    return [
        {
            "supplier_id": row.supplier_id,
            "supplier_name": row.supplier_name,
            "total_qty": int(row.total_qty or 0),
            "purchase_count": int(row.purchase_count or 0),
            "last_purchase_date": to_utc_z(row.last_purchase_date),
            "avg_unit_cost": money_str(round2(to_decimal(row.unit_cost_sum) / row.line_count)),
        }
        for row in rows
    ]
