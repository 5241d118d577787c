# Overview: Service-layer allocation of sale bill numbers.

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import ShopSettings
from ..models.settings import SHOP_SETTINGS_ID
from .settings_service import get_settings

BILL_NUMBER_PAD = 6


def format_bill_number(prefix: str, number: int) -> str:
    """format_bill_number("INV", 42) -> "INV000042" """
    return f"{prefix}{number:0{BILL_NUMBER_PAD}d}"


def next_bill_number() -> str:
    """
    Atomically allocate the next bill number inside the current transaction.

    The counter is advanced with a single UPDATE ... SET n = n + 1, which takes
    the row lock on the settings row until the caller commits or rolls back.
    Concurrent settlements therefore serialise on the counter and can never
    read the same value. A rolled-back settlement releases its number
    unused, so numbers are strictly increasing but may have gaps.

    Does not commit and does not retry; the settling transaction owns both.
    """
    get_settings()

    stmt = (
        update(ShopSettings)
        .where(ShopSettings.id == SHOP_SETTINGS_ID)
        .values(last_bill_number=ShopSettings.last_bill_number + 1)
        .execution_options(synchronize_session=False)
    )
    db.session.execute(stmt)

    number, prefix = (
        db.session.query(ShopSettings.last_bill_number, ShopSettings.invoice_prefix)
        .filter(ShopSettings.id == SHOP_SETTINGS_ID)
        .one()
    )
    return format_bill_number(prefix, number)
