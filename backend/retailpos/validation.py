# Overview: Input coercion and validation shared by routes and services.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

from .errors import ValidationError
from .models.inventory import ADJUSTMENT_REASONS
from .models.sales import PAYMENT_MODES
from .money import HUNDRED, ZERO, to_decimal
from .time_utils import parse_iso_datetime

# Maximum money value: 9,999,999,999.99 fits NUMERIC(12, 2)
MAX_MONEY = Decimal("9999999999.99")


@dataclass(frozen=True)
class SaleLineInput:
    variant_id: int
    qty: int
    unit_price: Decimal
    item_discount_percent: Decimal = ZERO


@dataclass(frozen=True)
class PurchaseLineInput:
    variant_id: int
    qty: int
    unit_cost: Decimal


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion.

    Accepts ints and plain digit strings (optional leading minus). Rejects
    bools, floats, decimals, scientific notation and blanks.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def coerce_money(value: Any, field: str, *, required: bool = True) -> Decimal | None:
    """Non-negative decimal amount with at most 2 decimal places."""
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{field} is required")
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        amount = to_decimal(value.strip() if isinstance(value, str) else value)
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a number")
    if amount < ZERO:
        raise ValidationError(f"{field} must be non-negative")
    if amount > MAX_MONEY:
        raise ValidationError(f"{field} is too large")
    if amount.as_tuple().exponent < -2:
        raise ValidationError(f"{field} must have at most 2 decimal places")
    return amount


def coerce_percent(value: Any, field: str) -> Decimal:
    """Percentage in [0, 100]; None means 0."""
    amount = coerce_money(value, field, required=False)
    if amount is None:
        return ZERO
    if amount > HUNDRED:
        raise ValidationError(f"{field} cannot exceed 100")
    return amount


def coerce_positive_qty(value: Any, field: str = "qty") -> int:
    qty = coerce_int(value, field)
    if qty < 1:
        raise ValidationError(f"{field} must be at least 1", code="INVALID_QUANTITY")
    return qty


def optional_text(value: Any, field: str, max_length: int) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if len(text) > max_length:
        raise ValidationError(f"{field} must not exceed {max_length} characters")
    return text


def required_text(value: Any, field: str, max_length: int) -> str:
    text = optional_text(value, field, max_length)
    if text is None:
        raise ValidationError(f"{field} is required")
    return text


def coerce_payment_mode(value: Any) -> str:
    if value is None or not str(value).strip():
        raise ValidationError("payment_mode is required")
    mode = str(value).strip().upper()
    if mode not in PAYMENT_MODES:
        raise ValidationError(f"payment_mode must be one of: {', '.join(PAYMENT_MODES)}")
    return mode


def coerce_adjustment_reason(value: Any) -> str:
    if value is None or not str(value).strip():
        raise ValidationError("reason is required")
    reason = str(value).strip().upper()
    if reason not in ADJUSTMENT_REASONS:
        raise ValidationError(f"reason must be one of: {', '.join(ADJUSTMENT_REASONS)}")
    return reason


def coerce_datetime(value: Any, field: str) -> datetime | None:
    """Normalize to UTC-naive; accepts datetimes and ISO-8601 strings."""
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, str):
        try:
            dt = parse_iso_datetime(value)
        except ValueError:
            raise ValidationError(f"{field} must be an ISO-8601 datetime")
        return dt
    raise ValidationError(f"{field} must be an ISO-8601 datetime")


def _field(raw: Any, name: str, alt: str | None = None):
    """Read a line field from a dict (snake_case or camelCase) or an object."""
    if isinstance(raw, dict):
        if name in raw:
            return raw[name]
        return raw.get(alt) if alt else None
    return getattr(raw, name, None)


def _require_items(items: Iterable[Any] | None) -> list:
    if items is None or isinstance(items, (str, bytes, dict)):
        raise ValidationError("items must be a list")
    items = list(items)
    if not items:
        raise ValidationError("At least one item is required")
    return items


def coerce_sale_lines(items: Iterable[Any] | None) -> list[SaleLineInput]:
    lines = []
    for index, raw in enumerate(_require_items(items)):
        prefix = f"items[{index}]"
        variant_id = _field(raw, "variant_id", "variantId")
        if variant_id is None:
            raise ValidationError(f"{prefix}.variant_id is required")
        lines.append(SaleLineInput(
            variant_id=coerce_int(variant_id, f"{prefix}.variant_id"),
            qty=coerce_positive_qty(_field(raw, "qty"), f"{prefix}.qty"),
            unit_price=coerce_money(_field(raw, "unit_price", "unitPrice"), f"{prefix}.unit_price"),
            item_discount_percent=coerce_percent(
                _field(raw, "item_discount_percent", "itemDiscountPercent"),
                f"{prefix}.item_discount_percent",
            ),
        ))
    return lines


def coerce_purchase_lines(items: Iterable[Any] | None) -> list[PurchaseLineInput]:
    lines = []
    for index, raw in enumerate(_require_items(items)):
        prefix = f"items[{index}]"
        variant_id = _field(raw, "variant_id", "variantId")
        if variant_id is None:
            raise ValidationError(f"{prefix}.variant_id is required")
        lines.append(PurchaseLineInput(
            variant_id=coerce_int(variant_id, f"{prefix}.variant_id"),
            qty=coerce_positive_qty(_field(raw, "qty"), f"{prefix}.qty"),
            unit_cost=coerce_money(_field(raw, "unit_cost", "unitCost"), f"{prefix}.unit_cost"),
        ))
    return lines
