# Overview: Service-layer access to the single-row shop settings record.

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ValidationError
from ..extensions import db
from ..models import ShopSettings
from ..models.settings import SHOP_SETTINGS_ID
from ..money import ZERO, to_decimal
from ..validation import coerce_int, coerce_percent, required_text

UPDATABLE_FIELDS = {
    "shop_name",
    "address",
    "phone",
    "gst_number",
    "currency",
    "tax_percent",
    "invoice_prefix",
    "low_stock_threshold",
}


def get_settings() -> ShopSettings:
    """
    Return the shop settings row, creating it from config defaults on first use.

    Safe to call repeatedly (idempotent). Creation runs in a savepoint so a
    concurrent first insert does not abort the caller's transaction.
    """
    settings = db.session.get(ShopSettings, SHOP_SETTINGS_ID)
    if settings is not None:
        return settings

    cfg = current_app.config
    try:
        with db.session.begin_nested():
            settings = ShopSettings(
                id=SHOP_SETTINGS_ID,
                shop_name=cfg.get("DEFAULT_SHOP_NAME", "Retail POS"),
                tax_percent=cfg.get("DEFAULT_TAX_PERCENT", ZERO),
                invoice_prefix=cfg.get("DEFAULT_INVOICE_PREFIX", "INV"),
                last_bill_number=0,
                low_stock_threshold=cfg.get("DEFAULT_LOW_STOCK_THRESHOLD", 10),
            )
            db.session.add(settings)
    except IntegrityError:
        settings = db.session.get(ShopSettings, SHOP_SETTINGS_ID, populate_existing=True)
    return settings


def get_tax_percent() -> Decimal:
    settings = get_settings()
    if settings.tax_percent is None:
        return ZERO
    return to_decimal(settings.tax_percent)


def get_low_stock_threshold() -> int:
    return get_settings().low_stock_threshold


def update_settings(**fields) -> ShopSettings:
    """Update shop settings. last_bill_number is not writable here."""
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown settings fields: {', '.join(sorted(unknown))}")

    if "tax_percent" in fields:
        if fields["tax_percent"] is None:
            raise ValidationError("tax_percent is required")
        fields["tax_percent"] = coerce_percent(fields["tax_percent"], "tax_percent")

    if "low_stock_threshold" in fields:
        threshold = coerce_int(fields["low_stock_threshold"], "low_stock_threshold")
        if threshold < 0:
            raise ValidationError("low_stock_threshold must be non-negative")
        fields["low_stock_threshold"] = threshold

    if "invoice_prefix" in fields:
        fields["invoice_prefix"] = required_text(fields["invoice_prefix"], "invoice_prefix", 16)
    if "shop_name" in fields:
        fields["shop_name"] = required_text(fields["shop_name"], "shop_name", 255)
    if "currency" in fields:
        fields["currency"] = required_text(fields["currency"], "currency", 8)

    settings = get_settings()
    for key, value in fields.items():
        setattr(settings, key, value)
    db.session.commit()
    return settings
