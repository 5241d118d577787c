# Overview: Pytest coverage for sale settlement, void and bill numbering.

"""
Sale Settlement Tests

Covers:
- Tax-inclusive settlement figures with and without header discount
- Insufficient stock leaves no trace (no sale, no stock change, no bill number)
- Cost at sale is frozen on the line
- Void restores stock exactly once
- Bill numbers are sequential and prefixed
"""

from decimal import Decimal

import pytest

from conftest import sale_line
from retailpos.errors import BusinessRuleError, NotFoundError, ValidationError
from retailpos.models import Sale, SaleItem, ShopSettings
from retailpos.models.catalog import VARIANT_INACTIVE
from retailpos.services import sales_service, settings_service, stock_service
from retailpos.validation import SaleLineInput


def _bill_counter(db_session) -> int:
    db_session.expire_all()
    return db_session.get(ShopSettings, 1).last_bill_number


class TestSettleSale:
    def test_tax_inclusive_settlement(self, db_session, stocked_variant):
        """18% tax, avg_cost 60, 2 x 118 -> taxable 200, tax 36, profit 80."""
        sale = sales_service.settle_sale(
            items=[sale_line(stocked_variant, 2, "118")],
            payment_mode="cash",
        )

        assert sale.status == "COMPLETED"
        assert sale.payment_mode == "CASH"
        assert sale.subtotal == Decimal("236.00")
        assert sale.taxable_value == Decimal("200.00")
        assert sale.tax_amount == Decimal("36.00")
        assert sale.discount_amount == Decimal("0.00")
        assert sale.total == Decimal("236.00")
        assert sale.tax_percent == Decimal("18.00")
        assert sale.profit == Decimal("80.00")

        item = sale.items[0]
        assert item.unit_cost_at_sale == Decimal("60.00")
        assert item.line_amount == Decimal("236.00")
        assert item.profit == Decimal("80.00")
        assert stocked_variant.stock_qty == 18

    def test_header_discount(self, db_session, stocked_variant):
        sale = sales_service.settle_sale(
            items=[sale_line(stocked_variant, 2, "118")],
            payment_mode="UPI",
            discount_percent="10",
        )

        assert sale.discount_percent == Decimal("10.00")
        assert sale.discount_amount == Decimal("23.60")
        assert sale.total == Decimal("212.40")
        assert sale.profit == Decimal("60.00")

    def test_customer_details_are_stored(self, db_session, stocked_variant):
        sale = sales_service.settle_sale(
            items=[sale_line(stocked_variant, 1)],
            payment_mode="CARD",
            customer_name="  Asha  ",
            customer_phone="9876543210",
            actor_id=3,
        )
        assert sale.customer_name == "Asha"
        assert sale.customer_phone == "9876543210"
        assert sale.created_by == 3

    def test_multi_line_profit_is_sum_of_lines(self, db_session, stocked_variant, make_variant):
        cheap = make_variant(sku="SOCK-1", stock_qty=10, avg_cost="20", size="F", color="Black")

        sale = sales_service.settle_sale(
            items=[sale_line(stocked_variant, 1, "118"), sale_line(cheap, 2, "59")],
            payment_mode="CASH",
        )

        # Revenue: 100.00 and 100.00; cost: 60 and 40
        assert [i.profit for i in sale.items] == [Decimal("40.00"), Decimal("60.00")]
        assert sale.profit == Decimal("100.00")
        assert [i.line_no for i in sale.items] == [1, 2]

    def test_insufficient_stock_leaves_no_trace(self, db_session, make_variant):
        variant = make_variant(sku="LOW-2", stock_qty=3, avg_cost="60")

        with pytest.raises(BusinessRuleError) as exc:
            sales_service.settle_sale(items=[sale_line(variant, 5)], payment_mode="CASH")

        assert exc.value.code == "INSUFFICIENT_STOCK"
        assert "LOW-2" in exc.value.message
        assert "Available: 3" in exc.value.message
        assert variant.stock_qty == 3
        assert db_session.query(Sale).count() == 0
        assert db_session.query(SaleItem).count() == 0
        assert _bill_counter(db_session) == 0

    def test_duplicate_lines_are_checked_against_combined_qty(self, db_session, stocked_variant):
        with pytest.raises(BusinessRuleError) as exc:
            sales_service.settle_sale(
                items=[sale_line(stocked_variant, 12), sale_line(stocked_variant, 10)],
                payment_mode="CASH",
            )
        assert exc.value.details["requested"] == 22
        assert stocked_variant.stock_qty == 20

    def test_atomic_decrement_guards_without_pre_check(self, db_session, monkeypatch, stocked_variant, make_variant):
        """A failure on the second line rolls back the first line's decrement."""
        low = make_variant(sku="LOW-3", stock_qty=1)
        monkeypatch.setattr(sales_service, "_check_availability", lambda required, variants: None)

        with pytest.raises(BusinessRuleError) as exc:
            sales_service.settle_sale(
                items=[sale_line(stocked_variant, 4), sale_line(low, 2)],
                payment_mode="CASH",
            )

        assert exc.value.code == "INSUFFICIENT_STOCK"
        assert stocked_variant.stock_qty == 20
        assert low.stock_qty == 1
        assert db_session.query(Sale).count() == 0
        assert _bill_counter(db_session) == 0

    def test_inactive_variant_cannot_be_sold(self, db_session, make_variant):
        variant = make_variant(sku="OLD-1", stock_qty=5, status=VARIANT_INACTIVE)

        with pytest.raises(BusinessRuleError) as exc:
            sales_service.settle_sale(items=[sale_line(variant, 1)], payment_mode="CASH")
        assert exc.value.code == "VARIANT_INACTIVE"

    def test_unknown_variant(self, db_session):
        with pytest.raises(NotFoundError) as exc:
            sales_service.settle_sale(
                items=[{"variant_id": 9999, "qty": 1, "unit_price": "10"}],
                payment_mode="CASH",
            )
        assert exc.value.code == "VARIANT_NOT_FOUND"

    @pytest.mark.parametrize("kwargs, message", [
        ({"items": [], "payment_mode": "CASH"}, "At least one item is required"),
        ({"items": None, "payment_mode": "CASH"}, "items must be a list"),
        ({"items": [{"variant_id": 1, "qty": 1, "unit_price": "10"}], "payment_mode": "CHEQUE"}, "payment_mode"),
        ({"items": [{"variant_id": 1, "qty": 0, "unit_price": "10"}], "payment_mode": "CASH"}, "qty"),
        ({"items": [{"variant_id": 1, "qty": 1, "unit_price": "-1"}], "payment_mode": "CASH"}, "non-negative"),
        ({"items": [{"variant_id": 1, "qty": 1, "unit_price": "10.001"}], "payment_mode": "CASH"}, "2 decimal"),
        ({"items": [{"variant_id": 1, "qty": 1, "unit_price": "10"}], "payment_mode": "CASH",
          "discount_percent": "101"}, "cannot exceed 100"),
        ({"items": [{"variant_id": 1, "qty": 1, "unit_price": "10"}], "payment_mode": "CASH",
          "customer_name": "x" * 101}, "100 characters"),
    ])
    def test_validation_errors(self, db_session, kwargs, message):
        with pytest.raises(ValidationError) as exc:
            sales_service.settle_sale(**kwargs)
        assert message in exc.value.message

    def test_line_objects_are_validated_like_dicts(self, db_session, stocked_variant):
        with pytest.raises(ValidationError) as exc:
            sales_service.settle_sale(
                items=[SaleLineInput(stocked_variant.id, 1, Decimal("118"), Decimal("150"))],
                payment_mode="CASH",
            )
        assert "cannot exceed 100" in exc.value.message

        with pytest.raises(ValidationError) as exc:
            sales_service.settle_sale(
                items=[SaleLineInput(stocked_variant.id, 1, Decimal("-5"))],
                payment_mode="CASH",
            )
        assert "non-negative" in exc.value.message
        assert stocked_variant.stock_qty == 20
        assert _bill_counter(db_session) == 0

        sale = sales_service.settle_sale(
            items=[SaleLineInput(stocked_variant.id, 1, Decimal("118"))],
            payment_mode="CASH",
        )
        assert sale.total == Decimal("118.00")

    def test_camel_case_line_keys_accepted(self, db_session, stocked_variant):
        sale = sales_service.settle_sale(
            items=[{"variantId": stocked_variant.id, "qty": 1, "unitPrice": "118", "itemDiscountPercent": "0"}],
            payment_mode="CASH",
        )
        assert sale.total == Decimal("118.00")


class TestCostAtSale:
    def test_cost_at_sale_is_frozen(self, db_session, stocked_variant):
        sale = sales_service.settle_sale(items=[sale_line(stocked_variant, 2)], payment_mode="CASH")

        # A later receipt moves avg_cost; the settled line keeps its cost
        stock_service.increase_on_purchase(stocked_variant.id, 18, Decimal("160"))
        db_session.commit()
        assert stocked_variant.avg_cost == Decimal("110.00")

        db_session.expire_all()
        item = db_session.query(SaleItem).filter_by(sale_id=sale.id).one()
        assert item.unit_cost_at_sale == Decimal("60.00")
        assert item.profit == Decimal("80.00")


class TestVoidSale:
    def test_void_restores_stock_and_keeps_history(self, db_session, stocked_variant):
        sale = sales_service.settle_sale(
            items=[sale_line(stocked_variant, 2), sale_line(stocked_variant, 3)],
            payment_mode="CASH",
        )
        assert stocked_variant.stock_qty == 15

        voided = sales_service.void_sale(sale.id, reason="Customer returned", actor_id=9)

        assert voided.status == "VOIDED"
        assert voided.void_reason == "Customer returned"
        assert voided.voided_by == 9
        assert voided.voided_at is not None
        assert voided.total == Decimal("236.00") + Decimal("354.00")
        assert stocked_variant.stock_qty == 20
        assert stocked_variant.avg_cost == Decimal("60.00")

    def test_double_void_rejected_not_double_applied(self, db_session, stocked_variant):
        sale = sales_service.settle_sale(items=[sale_line(stocked_variant, 4)], payment_mode="CASH")
        sales_service.void_sale(sale.id, reason="Mistake")

        with pytest.raises(BusinessRuleError) as exc:
            sales_service.void_sale(sale.id, reason="Again")

        assert exc.value.code == "SALE_ALREADY_VOIDED"
        assert sale.bill_no in exc.value.message
        assert stocked_variant.stock_qty == 20

    def test_void_does_not_recompute_avg_cost(self, db_session, stocked_variant):
        sale = sales_service.settle_sale(items=[sale_line(stocked_variant, 10)], payment_mode="CASH")
        stock_service.increase_on_purchase(stocked_variant.id, 10, Decimal("100"))
        db_session.commit()
        assert stocked_variant.avg_cost == Decimal("80.00")

        sales_service.void_sale(sale.id, reason="Return")

        assert stocked_variant.stock_qty == 30
        assert stocked_variant.avg_cost == Decimal("80.00")

    def test_void_unknown_sale(self, db_session):
        with pytest.raises(NotFoundError) as exc:
            sales_service.void_sale(12345, reason="x")
        assert exc.value.code == "SALE_NOT_FOUND"

    def test_void_requires_reason(self, db_session, stocked_variant):
        sale = sales_service.settle_sale(items=[sale_line(stocked_variant, 1)], payment_mode="CASH")
        with pytest.raises(ValidationError):
            sales_service.void_sale(sale.id, reason="   ")
        assert sales_service.get_sale(sale.id).status == "COMPLETED"


class TestBillNumbers:
    def test_sequential_and_zero_padded(self, db_session, stocked_variant):
        bills = [
            sales_service.settle_sale(items=[sale_line(stocked_variant, 1)], payment_mode="CASH").bill_no
            for _ in range(3)
        ]
        assert bills == ["INV000001", "INV000002", "INV000003"]
        assert _bill_counter(db_session) == 3

    def test_prefix_change_keeps_counter(self, db_session, stocked_variant):
        sales_service.settle_sale(items=[sale_line(stocked_variant, 1)], payment_mode="CASH")
        settings_service.update_settings(invoice_prefix="BILL")

        sale = sales_service.settle_sale(items=[sale_line(stocked_variant, 1)], payment_mode="CASH")
        assert sale.bill_no == "BILL000002"

    def test_tax_rate_read_at_settlement(self, db_session, stocked_variant):
        settings_service.update_settings(tax_percent=Decimal("5"))

        sale = sales_service.settle_sale(items=[sale_line(stocked_variant, 1, "105")], payment_mode="CASH")

        assert sale.tax_percent == Decimal("5.00")
        assert sale.taxable_value == Decimal("100.00")
        assert sale.tax_amount == Decimal("5.00")


class TestListSales:
    def test_filters(self, db_session, stocked_variant):
        first = sales_service.settle_sale(
            items=[sale_line(stocked_variant, 1)], payment_mode="CASH", customer_name="Ravi",
        )
        second = sales_service.settle_sale(
            items=[sale_line(stocked_variant, 1)], payment_mode="UPI", actor_id=2,
        )
        sales_service.void_sale(first.id, reason="Test")

        assert [s.id for s in sales_service.list_sales()] == [second.id, first.id]
        assert [s.id for s in sales_service.list_sales(payment_mode="upi")] == [second.id]
        assert [s.id for s in sales_service.list_sales(status="VOIDED")] == [first.id]
        assert [s.id for s in sales_service.list_sales(created_by=2)] == [second.id]
        assert [s.id for s in sales_service.list_sales(search="ravi")] == [first.id]
        assert [s.id for s in sales_service.list_sales(search=second.bill_no)] == [second.id]

    def test_date_range_is_inclusive_of_end_day(self, db_session, stocked_variant):
        sale = sales_service.settle_sale(items=[sale_line(stocked_variant, 1)], payment_mode="CASH")
        day = sale.sold_at.date().isoformat()

        assert len(sales_service.list_sales(start_date=day, end_date=day)) == 1
        assert sales_service.list_sales(end_date="2000-01-01") == []

    def test_invalid_date(self, db_session):
        with pytest.raises(ValidationError) as exc:
            sales_service.list_sales(start_date="19-10-2026")
        assert exc.value.code == "INVALID_DATE"
