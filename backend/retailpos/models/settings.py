from __future__ import annotations

from ..extensions import db
from ..money import money_str
from ..time_utils import to_utc_z

SHOP_SETTINGS_ID = 1


class ShopSettings(db.Model):
    """
    Single-row shop configuration (id = 1).

    last_bill_number is the shared bill counter. It is only ever advanced by
    services/bill_service.py with an atomic UPDATE inside the settling
    transaction.
    """
    __tablename__ = "shop_settings"

    id = db.Column(db.Integer, primary_key=True)
    shop_name = db.Column(db.String(255), nullable=False)
    address = db.Column(db.Text, nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    gst_number = db.Column(db.String(32), nullable=True)
    currency = db.Column(db.String(8), nullable=False, default="INR")

    # Percentage, e.g. 18.00 for 18%
    tax_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    invoice_prefix = db.Column(db.String(16), nullable=False, default="INV")
    last_bill_number = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=10)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "shop_name": self.shop_name,
            "address": self.address,
            "phone": self.phone,
            "gst_number": self.gst_number,
            "currency": self.currency,
            "tax_percent": money_str(self.tax_percent),
            "invoice_prefix": self.invoice_prefix,
            "last_bill_number": self.last_bill_number,
            "low_stock_threshold": self.low_stock_threshold,
            "updated_at": to_utc_z(self.updated_at),
        }
