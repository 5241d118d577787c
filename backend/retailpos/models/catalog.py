from __future__ import annotations

from ..extensions import db
from ..money import money_str
from ..time_utils import to_utc_z

VARIANT_ACTIVE = "ACTIVE"
VARIANT_INACTIVE = "INACTIVE"


class Product(db.Model):
    """
    Product master data. Owned by catalog management; the ledger only reads it
    for names in movement and detail views.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    brand = db.Column(db.String(120), nullable=True)
    category = db.Column(db.String(120), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "brand": self.brand,
            "category": self.category,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Variant(db.Model):
    """
    Sellable SKU and the unit of the inventory ledger.

    LEDGER FIELDS: stock_qty and avg_cost are written ONLY by
    services/stock_service.py. Everything else in the codebase reads them.

    - stock_qty never goes negative (also enforced by a CHECK constraint)
    - avg_cost is the weighted average of purchase costs, never a sale price
    - Variants are soft-deactivated (status=INACTIVE), never deleted while
      sales, purchases or adjustments reference them

    version_id gives optimistic conflict detection on top of the row locks
    taken by stock_service.lock_variants().
    """
    __tablename__ = "variants"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_variants_sku"),
        db.UniqueConstraint("barcode", name="uq_variants_barcode"),
        db.CheckConstraint("stock_qty >= 0", name="ck_variants_stock_non_negative"),
        db.CheckConstraint("avg_cost >= 0", name="ck_variants_avg_cost_non_negative"),
        db.Index("ix_variants_product_status", "product_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    barcode = db.Column(db.String(64), nullable=True)
    size = db.Column(db.String(32), nullable=True)
    color = db.Column(db.String(32), nullable=True)

    selling_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    avg_cost = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    stock_qty = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=VARIANT_ACTIVE, index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("variants", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_active(self) -> bool:
        return self.status == VARIANT_ACTIVE

    def __repr__(self) -> str:
        return f"<Variant id={self.id} sku={self.sku!r} stock_qty={self.stock_qty}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "sku": self.sku,
            "barcode": self.barcode,
            "size": self.size,
            "color": self.color,
            "selling_price": money_str(self.selling_price),
            "avg_cost": money_str(self.avg_cost),
            "stock_qty": self.stock_qty,
            "status": self.status,
            "version_id": self.version_id,
            "updated_at": to_utc_z(self.updated_at),
        }


class Supplier(db.Model):
    """Supplier for purchase receipts. Deactivated, never deleted."""
    __tablename__ = "suppliers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    contact_person = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    gst_number = db.Column(db.String(32), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "contact_person": self.contact_person,
            "phone": self.phone,
            "email": self.email,
            "gst_number": self.gst_number,
            "is_active": self.is_active,
        }
