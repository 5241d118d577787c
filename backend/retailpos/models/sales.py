from __future__ import annotations

from ..extensions import db
from ..money import money_str
from ..time_utils import to_utc_z

SALE_COMPLETED = "COMPLETED"
SALE_VOIDED = "VOIDED"

PAYMENT_MODES = ("CASH", "CARD", "UPI", "CREDIT")


class Sale(db.Model):
    """
    Settled sale (bill).

    LIFECYCLE: created COMPLETED by settlement; COMPLETED -> VOIDED is the only
    transition and it is one-way. Monetary figures are historical fact and are
    never rewritten, not even by a void; reporting excludes VOIDED rows by
    filtering on status.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("bill_no", name="uq_sales_bill_no"),
        # Composite index for status/date filtered listings
        db.Index("ix_sales_status_sold_at", "status", "sold_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable bill number (e.g., "INV000042"), assigned once
    bill_no = db.Column(db.String(32), nullable=False)
    sold_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    customer_name = db.Column(db.String(100), nullable=True)
    customer_phone = db.Column(db.String(20), nullable=True)
    payment_mode = db.Column(db.String(16), nullable=False, index=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False)
    discount_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    taxable_value = db.Column(db.Numeric(12, 2), nullable=False)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False)
    profit = db.Column(db.Numeric(12, 2), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=SALE_COMPLETED, index=True)

    # Void audit trail
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    voided_by = db.Column(db.Integer, nullable=True)
    void_reason = db.Column(db.String(500), nullable=True)

    created_by = db.Column(db.Integer, nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "SaleItem",
        backref="sale",
        lazy=True,
        order_by="SaleItem.line_no",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Sale id={self.id} bill_no={self.bill_no!r} status={self.status}>"

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "bill_no": self.bill_no,
            "sold_at": to_utc_z(self.sold_at),
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "payment_mode": self.payment_mode,
            "subtotal": money_str(self.subtotal),
            "discount_percent": money_str(self.discount_percent),
            "discount_amount": money_str(self.discount_amount),
            "tax_percent": money_str(self.tax_percent),
            "taxable_value": money_str(self.taxable_value),
            "tax_amount": money_str(self.tax_amount),
            "total": money_str(self.total),
            "profit": money_str(self.profit),
            "status": self.status,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "voided_by": self.voided_by,
            "void_reason": self.void_reason,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """
    Line item on a sale.

    unit_cost_at_sale is the variant's avg_cost captured by the stock mutator
    at settlement. It is frozen: later purchases never recompute it.
    """
    __tablename__ = "sale_items"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "line_no", name="uq_sale_items_sale_line"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    line_no = db.Column(db.Integer, nullable=False)
    variant_id = db.Column(db.Integer, db.ForeignKey("variants.id"), nullable=False, index=True)

    qty = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    item_discount_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    line_amount = db.Column(db.Numeric(12, 2), nullable=False)
    unit_cost_at_sale = db.Column(db.Numeric(12, 2), nullable=False)
    profit = db.Column(db.Numeric(12, 2), nullable=False)

    variant = db.relationship("Variant")

    def to_dict(self) -> dict:
        variant = self.variant
        return {
            "id": self.id,
            "line_no": self.line_no,
            "variant_id": self.variant_id,
            "sku": variant.sku if variant else None,
            "barcode": variant.barcode if variant else None,
            "product_name": variant.product.name if variant and variant.product else None,
            "size": variant.size if variant else None,
            "color": variant.color if variant else None,
            "qty": self.qty,
            "unit_price": money_str(self.unit_price),
            "item_discount_percent": money_str(self.item_discount_percent),
            "line_amount": money_str(self.line_amount),
            "unit_cost_at_sale": money_str(self.unit_cost_at_sale),
            "profit": money_str(self.profit),
        }
