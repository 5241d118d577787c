from __future__ import annotations

from ..extensions import db
from ..money import money_str
from ..time_utils import to_utc_z

PURCHASE_COMPLETED = "COMPLETED"
PURCHASE_VOIDED = "VOIDED"


class Purchase(db.Model):
    """
    Goods receipt from a supplier.

    Receiving a purchase raises stock and recomputes avg_cost for every line
    in one transaction. A void writes compensating CORRECTION adjustments and
    does not touch avg_cost.
    """
    __tablename__ = "purchases"
    __table_args__ = (
        db.Index("ix_purchases_supplier_purchased", "supplier_id", "purchased_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)

    invoice_no = db.Column(db.String(50), nullable=True, index=True)
    purchased_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    total_cost = db.Column(db.Numeric(12, 2), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default=PURCHASE_COMPLETED, index=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    voided_by = db.Column(db.Integer, nullable=True)
    void_reason = db.Column(db.String(500), nullable=True)

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    supplier = db.relationship("Supplier", backref=db.backref("purchases", lazy=True))
    items = db.relationship(
        "PurchaseItem",
        backref="purchase",
        lazy=True,
        order_by="PurchaseItem.line_no",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.name if self.supplier else None,
            "invoice_no": self.invoice_no,
            "purchased_at": to_utc_z(self.purchased_at),
            "total_cost": money_str(self.total_cost),
            "notes": self.notes,
            "status": self.status,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "voided_by": self.voided_by,
            "void_reason": self.void_reason,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "item_count": len(self.items),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class PurchaseItem(db.Model):
    __tablename__ = "purchase_items"
    __table_args__ = (
        db.UniqueConstraint("purchase_id", "line_no", name="uq_purchase_items_purchase_line"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    line_no = db.Column(db.Integer, nullable=False)
    variant_id = db.Column(db.Integer, db.ForeignKey("variants.id"), nullable=False, index=True)

    qty = db.Column(db.Integer, nullable=False)
    unit_cost = db.Column(db.Numeric(12, 2), nullable=False)

    variant = db.relationship("Variant")

    def to_dict(self) -> dict:
        variant = self.variant
        return {
            "id": self.id,
            "line_no": self.line_no,
            "variant_id": self.variant_id,
            "sku": variant.sku if variant else None,
            "product_name": variant.product.name if variant and variant.product else None,
            "qty": self.qty,
            "unit_cost": money_str(self.unit_cost),
            "line_total": money_str(self.unit_cost * self.qty),
        }
