from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

ADJUSTMENT_REASONS = ("OPENING_STOCK", "DAMAGE", "THEFT", "CORRECTION", "RETURN", "OTHER")


class StockAdjustment(db.Model):
    """
    Ad-hoc signed stock change (damage, theft, correction, opening balance).

    IMMUTABLE: rows are inserted in the same transaction as the ledger
    mutation and never updated or deleted.
    """
    __tablename__ = "stock_adjustments"
    __table_args__ = (
        db.CheckConstraint("delta_qty <> 0", name="ck_stock_adjustments_non_zero"),
        db.Index("ix_stock_adjustments_variant_created", "variant_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("variants.id"), nullable=False, index=True)
    delta_qty = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(32), nullable=False, index=True)
    notes = db.Column(db.String(500), nullable=True)

    # Set when the adjustment compensates a voided purchase
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=True, index=True)

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    variant = db.relationship("Variant")

    def to_dict(self) -> dict:
        variant = self.variant
        return {
            "id": self.id,
            "variant_id": self.variant_id,
            "sku": variant.sku if variant else None,
            "delta_qty": self.delta_qty,
            "reason": self.reason,
            "notes": self.notes,
            "purchase_id": self.purchase_id,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "stock_qty_after": variant.stock_qty if variant else None,
        }
