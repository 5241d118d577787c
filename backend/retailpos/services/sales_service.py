"""
Sales Service - settlement (checkout) and void of sales.

WHY: A sale is settled in one transaction: stock is deducted, cost is frozen
onto each line, and the bill is written, or none of it happens.

LIFECYCLE:
1. COMPLETED: Created by settle_sale()
2. VOIDED: Terminal. Stock put back, monetary figures kept as history.
"""

from __future__ import annotations

import logging

from sqlalchemy import or_

from ..audit import ACTION_CREATE, ACTION_VOID, ENTITY_SALE, audited
from ..errors import BusinessRuleError, NotFoundError, ValidationError, insufficient_stock
from ..extensions import db
from ..models import Sale, SaleItem, Variant
from ..models.sales import SALE_COMPLETED, SALE_VOIDED
from ..money import ZERO, round2
from ..time_utils import parse_date_range, utcnow
from ..validation import (
    coerce_payment_mode,
    coerce_percent,
    coerce_sale_lines,
    optional_text,
    required_text,
    SaleLineInput,
)
from .bill_service import next_bill_number
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .pricing import price_sale
from .settings_service import get_tax_percent
from .stock_service import decrease_on_sale, lock_variants, restore_on_void

logger = logging.getLogger(__name__)


def _required_quantities(lines: list[SaleLineInput]) -> dict[int, int]:
    """Merge duplicate variants: total quantity this checkout needs per variant."""
    required: dict[int, int] = {}
    for line in lines:
        required[line.variant_id] = required.get(line.variant_id, 0) + line.qty
    return required


def _check_availability(required: dict[int, int], variants: dict[int, Variant]) -> None:
    """
    Fail fast before any mutation.

    Runs under the variant locks, but the authoritative check is still the
    one inside decrease_on_sale().
    """
    for variant_id, qty in required.items():
        variant = variants[variant_id]
        if not variant.is_active:
            raise BusinessRuleError(
                "VARIANT_INACTIVE",
                f"Variant {variant.sku} is inactive and cannot be sold",
            )
        if variant.stock_qty < qty:
            logger.warning(
                "Insufficient stock for variant %s: available=%d, required=%d",
                variant.sku, variant.stock_qty, qty,
            )
            raise insufficient_stock(variant.sku, variant.stock_qty, qty)


def _describe_sale(sale: Sale) -> tuple[int, str]:
    return sale.id, f"Sale {sale.bill_no} created. Total: {sale.total}, items: {len(sale.items)}"


def _describe_void(sale: Sale) -> tuple[int, str]:
    return sale.id, f"Sale {sale.bill_no} voided. Reason: {sale.void_reason}"


@audited(ENTITY_SALE, ACTION_CREATE, _describe_sale)
def settle_sale(
    *,
    items,
    payment_mode: str,
    discount_percent=None,
    customer_name: str | None = None,
    customer_phone: str | None = None,
    actor_id: int | None = None,
) -> Sale:
    """
    Settle a checkout.

    Steps, all inside one transaction:
    1. Merge duplicate variants into required quantities
    2. Lock the variants (ascending id) and pre-check availability
    3. Allocate the bill number
    4. Read the tax rate and price the ticket (see pricing.py)
    5. Deduct stock per line, capturing avg_cost as unit_cost_at_sale
    6. Write the sale header and its lines

    Raises:
        ValidationError: malformed input (nothing touched)
        NotFoundError: VARIANT_NOT_FOUND
        BusinessRuleError: INSUFFICIENT_STOCK (with SKU and available qty)
        LockTimeoutError: locks not acquired in time; safe to retry
    """
    lines = coerce_sale_lines(items)
    header_discount = coerce_percent(discount_percent, "discount_percent")
    payment_mode = coerce_payment_mode(payment_mode)
    customer_name = optional_text(customer_name, "customer_name", 100)
    customer_phone = optional_text(customer_phone, "customer_phone", 20)

    logger.info("Creating sale with %d items, payment mode: %s", len(lines), payment_mode)

    def _op():
        begin_write_transaction()

        required = _required_quantities(lines)
        variants = lock_variants(required.keys())
        _check_availability(required, variants)

        bill_no = next_bill_number()
        quote = price_sale(lines, get_tax_percent(), header_discount)

        sale_items = []
        total_profit = ZERO
        for line_no, (line, priced) in enumerate(zip(lines, quote.lines), start=1):
            unit_cost_at_sale = decrease_on_sale(line.variant_id, line.qty)
            line_profit = priced.profit(unit_cost_at_sale, line.qty)
            total_profit += line_profit
            sale_items.append(SaleItem(
                line_no=line_no,
                variant_id=line.variant_id,
                qty=line.qty,
                unit_price=round2(line.unit_price),
                item_discount_percent=line.item_discount_percent,
                line_amount=priced.line_amount,
                unit_cost_at_sale=unit_cost_at_sale,
                profit=line_profit,
            ))

        sale = Sale(
            bill_no=bill_no,
            sold_at=utcnow(),
            customer_name=customer_name,
            customer_phone=customer_phone,
            payment_mode=payment_mode,
            subtotal=quote.subtotal,
            discount_percent=quote.discount_percent,
            discount_amount=quote.discount_amount,
            tax_percent=quote.tax_percent,
            taxable_value=quote.taxable_value,
            tax_amount=quote.tax_amount,
            total=quote.total,
            profit=total_profit,
            status=SALE_COMPLETED,
            created_by=actor_id,
        )
        db.session.add(sale)
        db.session.flush()

        for item in sale_items:
            item.sale_id = sale.id
            db.session.add(item)

        db.session.commit()
        logger.info(
            "Sale completed successfully. Bill No: %s, Total: %s, Profit: %s",
            bill_no, quote.total, total_profit,
        )
        return sale

    return run_with_retry(_op)


@audited(ENTITY_SALE, ACTION_VOID, _describe_void)
def void_sale(sale_id: int, *, reason: str, actor_id: int | None = None) -> Sale:
    """
    Void a COMPLETED sale and put its stock back.

    COMPLETED -> VOIDED is one-way. The sale row is locked first, so two
    concurrent voids of the same sale serialise and the second sees VOIDED.
    avg_cost is not recomputed for the returned units.
    """
    reason = required_text(reason, "reason", 500)
    logger.info("Voiding sale ID: %s with reason: %s", sale_id, reason)

    def _op():
        begin_write_transaction()

        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).populate_existing().first()
        if not sale:
            raise NotFoundError("SALE_NOT_FOUND", f"Sale not found with ID: {sale_id}")

        if sale.status != SALE_COMPLETED:
            if sale.status == SALE_VOIDED:
                raise BusinessRuleError("SALE_ALREADY_VOIDED", f"Sale {sale.bill_no} is already voided")
            raise BusinessRuleError(
                "INVALID_SALE_STATUS",
                f"Only COMPLETED sales can be voided. Current status: {sale.status}",
            )

        restore_on_void(sale.id)

        sale.status = SALE_VOIDED
        sale.voided_at = utcnow()
        sale.voided_by = actor_id
        sale.void_reason = reason

        db.session.commit()
        logger.info("Sale voided successfully. Bill No: %s", sale.bill_no)
        return sale

    return run_with_retry(_op)


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise NotFoundError("SALE_NOT_FOUND", f"Sale not found with ID: {sale_id}")
    return sale


def list_sales(
    *,
    start_date: str | None = None,
    end_date: str | None = None,
    payment_mode: str | None = None,
    status: str | None = None,
    created_by: int | None = None,
    search: str | None = None,
    limit: int = 200,
) -> list[Sale]:
    """List sales newest first. Dates are YYYY-MM-DD; end_date is inclusive."""
    try:
        start, end = parse_date_range(start_date, end_date)
    except ValueError:
        raise ValidationError("Invalid date format. Use YYYY-MM-DD", code="INVALID_DATE")

    q = db.session.query(Sale)
    if start is not None:
        q = q.filter(Sale.sold_at >= start)
    if end is not None:
        q = q.filter(Sale.sold_at < end)
    if payment_mode:
        q = q.filter(Sale.payment_mode == payment_mode.upper())
    if status:
        q = q.filter(Sale.status == status.upper())
    if created_by is not None:
        q = q.filter(Sale.created_by == created_by)
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(
            Sale.bill_no.ilike(pattern),
            Sale.customer_name.ilike(pattern),
            Sale.customer_phone.ilike(pattern),
        ))

    return q.order_by(Sale.sold_at.desc(), Sale.id.desc()).limit(limit).all()
