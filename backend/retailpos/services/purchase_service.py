# Overview: Service-layer operations for receiving and voiding supplier purchases.

from __future__ import annotations

import logging

from sqlalchemy import or_

from ..audit import ACTION_CREATE, ACTION_UPDATE, ACTION_VOID, ENTITY_PURCHASE, audited
from ..errors import BusinessRuleError, NotFoundError, ValidationError, insufficient_stock
from ..extensions import db
from ..models import Purchase, PurchaseItem, Sale, SaleItem, StockAdjustment, Supplier
from ..models.purchases import PURCHASE_COMPLETED, PURCHASE_VOIDED
from ..models.sales import SALE_VOIDED
from ..money import ZERO, round2
from ..time_utils import parse_date_range, utcnow
from ..validation import (
    PurchaseLineInput,
    coerce_datetime,
    coerce_purchase_lines,
    optional_text,
    required_text,
)
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .stock_service import adjust_by_delta, increase_on_purchase, lock_variants

"""
Purchase Receiving Invariants (authoritative)

Receiving:
- One transaction per purchase: header, lines and every stock increase
  commit together or not at all.
- Each line folds into the variant's weighted-average cost in input order;
  duplicate variants in one purchase are applied one after another.
- total_cost = sum(unit_cost * qty), each product exact at 2dp.
- Inactive variants can still be received; inactive suppliers cannot.

Voiding:
- COMPLETED -> VOIDED is one-way.
- Stock is taken back with CORRECTION adjustments linked via purchase_id,
  so the movement history shows the reversal explicitly.
- avg_cost is NOT recomputed on void.
- The void is refused if any variant no longer holds the quantity received
  (the goods were already sold); nothing is written in that case.

Editing lines:
- Only COMPLETED purchases; one line per variant.
- A variant whose line changes is refused (SUBSEQUENT_MOVEMENTS) when it has
  any stock movement dated after purchased_at other than this receipt.
- Increases go through the weighted average at the new unit_cost;
  decreases and dropped lines move quantity only and must keep stock >= 0.
- total_cost is recomputed from the new lines.

Locking:
- Void and line edits: purchase row -> variant rows (ascending id).
"""

logger = logging.getLogger(__name__)

CORRECTION_REASON = "CORRECTION"


def _purchase_not_found(purchase_id: int) -> NotFoundError:
    return NotFoundError("PURCHASE_NOT_FOUND", f"Purchase not found with ID: {purchase_id}")


def _load_active_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.get(Supplier, supplier_id)
    if supplier is None:
        raise NotFoundError("SUPPLIER_NOT_FOUND", f"Supplier not found with ID: {supplier_id}")
    if not supplier.is_active:
        raise BusinessRuleError("SUPPLIER_INACTIVE", f"Supplier {supplier.name} is inactive")
    return supplier


def _purchase_total(lines: list[PurchaseLineInput]):
    return sum((round2(line.unit_cost) * line.qty for line in lines), ZERO)


def _describe_purchase(purchase: Purchase) -> tuple[int, str]:
    return purchase.id, (
        f"Purchase {purchase.invoice_no or '#' + str(purchase.id)} received. "
        f"Total: {purchase.total_cost}, items: {len(purchase.items)}"
    )


def _describe_purchase_void(purchase: Purchase) -> tuple[int, str]:
    return purchase.id, f"Purchase #{purchase.id} voided. Reason: {purchase.void_reason}"


def _describe_purchase_update(purchase: Purchase) -> tuple[int, str]:
    return purchase.id, f"Purchase #{purchase.id} details updated"


def _describe_purchase_items_update(purchase: Purchase) -> tuple[int, str]:
    return purchase.id, (
        f"Purchase #{purchase.id} items updated. "
        f"Total: {purchase.total_cost}, items: {len(purchase.items)}"
    )


@audited(ENTITY_PURCHASE, ACTION_CREATE, _describe_purchase)
def receive_purchase(
    *,
    supplier_id,
    items,
    invoice_no: str | None = None,
    purchased_at=None,
    notes: str | None = None,
    actor_id: int | None = None,
) -> Purchase:
    """
    Receive goods from a supplier.

    Raises:
        ValidationError: malformed input (nothing touched)
        NotFoundError: SUPPLIER_NOT_FOUND, VARIANT_NOT_FOUND
        BusinessRuleError: SUPPLIER_INACTIVE
        LockTimeoutError: locks not acquired in time; safe to retry
    """
    if supplier_id is None:
        raise ValidationError("supplier_id is required")
    lines = coerce_purchase_lines(items)
    invoice_no = optional_text(invoice_no, "invoice_no", 50)
    notes = optional_text(notes, "notes", 1000)
    purchased_at = coerce_datetime(purchased_at, "purchased_at") or utcnow()

    logger.info("Creating purchase for supplier %s with %d items", supplier_id, len(lines))

    def _op():
        begin_write_transaction()

        _load_active_supplier(supplier_id)
        lock_variants(line.variant_id for line in lines)

        purchase = Purchase(
            supplier_id=supplier_id,
            invoice_no=invoice_no,
            purchased_at=purchased_at,
            total_cost=_purchase_total(lines),
            notes=notes,
            status=PURCHASE_COMPLETED,
            created_by=actor_id,
        )
        db.session.add(purchase)
        db.session.flush()

        for line_no, line in enumerate(lines, start=1):
            db.session.add(PurchaseItem(
                purchase_id=purchase.id,
                line_no=line_no,
                variant_id=line.variant_id,
                qty=line.qty,
                unit_cost=round2(line.unit_cost),
            ))
            increase_on_purchase(line.variant_id, line.qty, line.unit_cost)

        db.session.commit()
        logger.info("Purchase created successfully. ID: %s, Total: %s", purchase.id, purchase.total_cost)
        return purchase

    return run_with_retry(_op)


@audited(ENTITY_PURCHASE, ACTION_VOID, _describe_purchase_void)
def void_purchase(purchase_id: int, *, reason: str, actor_id: int | None = None) -> Purchase:
    """Void a COMPLETED purchase and take its stock back out."""
    reason = required_text(reason, "reason", 500)
    logger.info("Voiding purchase ID: %s with reason: %s", purchase_id, reason)

    def _op():
        begin_write_transaction()

        query = db.session.query(Purchase).filter_by(id=purchase_id)
        purchase = lock_for_update(query).populate_existing().first()
        if purchase is None:
            raise _purchase_not_found(purchase_id)
        if purchase.status == PURCHASE_VOIDED:
            raise BusinessRuleError("PURCHASE_ALREADY_VOIDED", f"Purchase #{purchase.id} is already voided")

        returned: dict[int, int] = {}
        for item in purchase.items:
            returned[item.variant_id] = returned.get(item.variant_id, 0) + item.qty

        variants = lock_variants(returned.keys())
        for variant_id, qty in returned.items():
            variant = variants[variant_id]
            if variant.stock_qty < qty:
                logger.warning(
                    "Cannot void purchase %s: variant %s holds %d, purchase received %d",
                    purchase.id, variant.sku, variant.stock_qty, qty,
                )
                raise insufficient_stock(variant.sku, variant.stock_qty, qty)

        now = utcnow()
        note = f"Void purchase #{purchase.id}: {reason}"
        for variant_id, qty in returned.items():
            db.session.add(StockAdjustment(
                variant_id=variant_id,
                delta_qty=-qty,
                reason=CORRECTION_REASON,
                notes=note,
                purchase_id=purchase.id,
                created_by=actor_id,
                created_at=now,
            ))
            adjust_by_delta(variant_id, -qty)

        purchase.status = PURCHASE_VOIDED
        purchase.voided_at = now
        purchase.voided_by = actor_id
        purchase.void_reason = reason

        db.session.commit()
        logger.info("Purchase voided successfully. ID: %s", purchase.id)
        return purchase

    return run_with_retry(_op)


@audited(ENTITY_PURCHASE, ACTION_UPDATE, _describe_purchase_update)
def update_purchase_metadata(
    purchase_id: int,
    *,
    invoice_no=None,
    purchased_at=None,
    notes=None,
    actor_id: int | None = None,
) -> Purchase:
    """
    Edit header details only. Lines are changed through update_purchase_items.
    """
    invoice_no = optional_text(invoice_no, "invoice_no", 50)
    notes = optional_text(notes, "notes", 1000)
    purchased_at = coerce_datetime(purchased_at, "purchased_at")

    def _op():
        purchase = db.session.get(Purchase, purchase_id)
        if purchase is None:
            raise _purchase_not_found(purchase_id)
        if purchase.status == PURCHASE_VOIDED:
            raise BusinessRuleError("PURCHASE_VOIDED", "Cannot update a voided purchase")

        if invoice_no is not None:
            purchase.invoice_no = invoice_no
        if purchased_at is not None:
            purchase.purchased_at = purchased_at
        if notes is not None:
            purchase.notes = notes

        db.session.commit()
        return purchase

    return run_with_retry(_op)


def _has_later_movements(variant_id: int, purchase: Purchase) -> bool:
    """Any stock movement of the variant dated after this purchase, other than its own receipt."""
    after = purchase.purchased_at
    checks = (
        db.session.query(PurchaseItem.id)
        .join(Purchase, PurchaseItem.purchase_id == Purchase.id)
        .filter(
            PurchaseItem.variant_id == variant_id,
            Purchase.id != purchase.id,
            Purchase.purchased_at > after,
        ),
        db.session.query(SaleItem.id)
        .join(Sale, SaleItem.sale_id == Sale.id)
        .filter(SaleItem.variant_id == variant_id, Sale.sold_at > after),
        db.session.query(SaleItem.id)
        .join(Sale, SaleItem.sale_id == Sale.id)
        .filter(SaleItem.variant_id == variant_id, Sale.status == SALE_VOIDED, Sale.voided_at > after),
        db.session.query(StockAdjustment.id)
        .filter(StockAdjustment.variant_id == variant_id, StockAdjustment.created_at > after),
    )
    return any(q.limit(1).first() is not None for q in checks)


@audited(ENTITY_PURCHASE, ACTION_UPDATE, _describe_purchase_items_update)
def update_purchase_items(purchase_id: int, items, *, actor_id: int | None = None) -> Purchase:
    """
    Replace the lines of a COMPLETED purchase.

    Lines are matched by variant. A new variant is received at its
    unit_cost, a higher qty receives the extra units at the new unit_cost,
    and a lower qty or a dropped line takes units back out without touching
    avg_cost. A cost-only change rewrites the line and total_cost only.

    Raises:
        ValidationError: malformed input, DUPLICATE_VARIANT
        NotFoundError: PURCHASE_NOT_FOUND, VARIANT_NOT_FOUND
        BusinessRuleError: PURCHASE_VOIDED, SUBSEQUENT_MOVEMENTS, INSUFFICIENT_STOCK
        LockTimeoutError: locks not acquired in time; safe to retry
    """
    lines = coerce_purchase_lines(items)
    seen: set[int] = set()
    for line in lines:
        if line.variant_id in seen:
            raise ValidationError(
                "Duplicate variant in purchase items",
                details={"variant_id": line.variant_id},
                code="DUPLICATE_VARIANT",
            )
        seen.add(line.variant_id)

    logger.info("Updating items of purchase %s (%d lines)", purchase_id, len(lines))

    def _op():
        begin_write_transaction()

        query = db.session.query(Purchase).filter_by(id=purchase_id)
        purchase = lock_for_update(query).populate_existing().first()
        if purchase is None:
            raise _purchase_not_found(purchase_id)
        if purchase.status == PURCHASE_VOIDED:
            raise BusinessRuleError("PURCHASE_VOIDED", "Cannot edit a voided purchase")
        db.session.expire(purchase, ["items"])

        existing = {
            item.variant_id: item
            for item in db.session.query(PurchaseItem).filter_by(purchase_id=purchase.id).all()
        }
        wanted = {line.variant_id: line for line in lines}
        lock_variants(set(existing) | set(wanted))

        touched = set(existing) - set(wanted)
        for line in lines:
            item = existing.get(line.variant_id)
            if item is None or item.qty != line.qty or item.unit_cost != round2(line.unit_cost):
                touched.add(line.variant_id)

        for variant_id in sorted(touched):
            if _has_later_movements(variant_id, purchase):
                raise BusinessRuleError(
                    "SUBSEQUENT_MOVEMENTS",
                    f"Cannot edit purchase items for variant {variant_id} due to later stock movements",
                    details={"variant_id": variant_id},
                )

        next_line_no = max((item.line_no for item in existing.values()), default=0) + 1
        for line in lines:
            item = existing.get(line.variant_id)
            old_qty = item.qty if item is not None else 0
            delta = line.qty - old_qty
            if delta > 0:
                increase_on_purchase(line.variant_id, delta, line.unit_cost)
            elif delta < 0:
                adjust_by_delta(line.variant_id, delta)

            if item is None:
                db.session.add(PurchaseItem(
                    purchase_id=purchase.id,
                    line_no=next_line_no,
                    variant_id=line.variant_id,
                    qty=line.qty,
                    unit_cost=round2(line.unit_cost),
                ))
                next_line_no += 1
            else:
                item.qty = line.qty
                item.unit_cost = round2(line.unit_cost)

        for variant_id, item in existing.items():
            if variant_id not in wanted:
                adjust_by_delta(variant_id, -item.qty)
                db.session.delete(item)

        purchase.total_cost = _purchase_total(lines)

        db.session.commit()
        logger.info("Purchase items updated. ID: %s, Total: %s", purchase.id, purchase.total_cost)
        return purchase

    return run_with_retry(_op)


def get_purchase(purchase_id: int) -> Purchase:
    purchase = db.session.get(Purchase, purchase_id)
    if purchase is None:
        raise _purchase_not_found(purchase_id)
    return purchase


def list_purchases(
    *,
    supplier_id: int | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    status: str | None = None,
    search: str | None = None,
    limit: int = 200,
) -> list[Purchase]:
    """List purchases newest first. Dates are YYYY-MM-DD; end_date is inclusive."""
    try:
        start, end = parse_date_range(start_date, end_date)
    except ValueError:
        raise ValidationError("Invalid date format. Use YYYY-MM-DD", code="INVALID_DATE")

    q = db.session.query(Purchase)
    if supplier_id is not None:
        q = q.filter(Purchase.supplier_id == supplier_id)
    if start is not None:
        q = q.filter(Purchase.purchased_at >= start)
    if end is not None:
        q = q.filter(Purchase.purchased_at < end)
    if status:
        q = q.filter(Purchase.status == status.upper())
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        q = q.join(Supplier, Purchase.supplier_id == Supplier.id).filter(or_(
            Purchase.invoice_no.ilike(pattern),
            Supplier.name.ilike(pattern),
        ))

    return q.order_by(Purchase.purchased_at.desc(), Purchase.id.desc()).limit(limit).all()
