# Overview: Pytest coverage for stock adjustments, movements and inventory summaries.

from decimal import Decimal

import pytest

from conftest import sale_line
from retailpos.errors import BusinessRuleError, NotFoundError, ValidationError
from retailpos.models import StockAdjustment, Supplier
from retailpos.models.catalog import VARIANT_INACTIVE
from retailpos.services import inventory_service, purchase_service, sales_service


class TestAdjustStock:
    def test_cannot_adjust_below_zero(self, db_session, make_variant):
        """Stock 3, delta -5: rejected and no adjustment row written."""
        variant = make_variant(sku="ADJ-3", stock_qty=3)

        with pytest.raises(BusinessRuleError) as exc:
            inventory_service.adjust_stock(variant_id=variant.id, delta_qty=-5, reason="DAMAGE")

        assert exc.value.code == "INSUFFICIENT_STOCK"
        assert exc.value.message == "Cannot reduce stock below zero. Current stock: 3"
        assert variant.stock_qty == 3
        assert db_session.query(StockAdjustment).count() == 0

    def test_opening_stock(self, db_session, variant):
        adjustment = inventory_service.adjust_stock(
            variant_id=variant.id, delta_qty=5, reason="opening_stock", notes="Initial count", actor_id=2,
        )

        assert adjustment.reason == "OPENING_STOCK"
        assert adjustment.delta_qty == 5
        assert adjustment.created_at is not None
        assert variant.stock_qty == 5
        assert variant.avg_cost == Decimal("0.00")

        data = adjustment.to_dict()
        assert data["stock_qty_after"] == 5
        assert data["sku"] == variant.sku
        assert data["created_by"] == 2

    def test_negative_adjustment_keeps_avg_cost(self, db_session, stocked_variant):
        inventory_service.adjust_stock(variant_id=stocked_variant.id, delta_qty=-2, reason="THEFT")
        assert stocked_variant.stock_qty == 18
        assert stocked_variant.avg_cost == Decimal("60.00")

    def test_zero_delta(self, db_session, stocked_variant):
        with pytest.raises(BusinessRuleError) as exc:
            inventory_service.adjust_stock(variant_id=stocked_variant.id, delta_qty=0, reason="OTHER")
        assert exc.value.code == "INVALID_QUANTITY"

    def test_unknown_variant(self, db_session):
        with pytest.raises(NotFoundError) as exc:
            inventory_service.adjust_stock(variant_id=5555, delta_qty=1, reason="OTHER")
        assert exc.value.code == "VARIANT_NOT_FOUND"

    @pytest.mark.parametrize("kwargs", [
        {"delta_qty": 1, "reason": "LOST_IN_SPACE"},
        {"delta_qty": 1, "reason": None},
        {"delta_qty": "1.5", "reason": "OTHER"},
        {"delta_qty": None, "reason": "OTHER"},
        {"delta_qty": 1, "reason": "OTHER", "notes": "n" * 501},
    ])
    def test_validation(self, db_session, stocked_variant, kwargs):
        with pytest.raises(ValidationError):
            inventory_service.adjust_stock(variant_id=stocked_variant.id, **kwargs)
        assert stocked_variant.stock_qty == 20

    def test_get_adjustment(self, db_session, stocked_variant):
        created = inventory_service.adjust_stock(variant_id=stocked_variant.id, delta_qty=1, reason="RETURN")
        assert inventory_service.get_adjustment(created.id).id == created.id

        with pytest.raises(NotFoundError) as exc:
            inventory_service.get_adjustment(created.id + 100)
        assert exc.value.code == "ADJUSTMENT_NOT_FOUND"


class TestStockMovements:
    def _history(self, supplier, variant):
        purchase_service.receive_purchase(
            supplier_id=supplier.id,
            items=[{"variant_id": variant.id, "qty": 10, "unit_cost": "50"}],
            invoice_no="TT-100",
        )
        sale = sales_service.settle_sale(items=[sale_line(variant, 2)], payment_mode="CASH")
        sales_service.void_sale(sale.id, reason="Returned")
        inventory_service.adjust_stock(variant_id=variant.id, delta_qty=-1, reason="DAMAGE")
        return sale

    def test_movements_newest_first_and_sum_to_stock(self, db_session, supplier, variant):
        sale = self._history(supplier, variant)

        movements = inventory_service.list_stock_movements(variant.id)

        assert [m["movement_type"] for m in movements] == ["ADJUSTMENT", "SALE_VOID", "SALE", "PURCHASE"]
        assert sum(m["delta_qty"] for m in movements) == variant.stock_qty == 9

        purchase_row = movements[-1]
        assert purchase_row["supplier_name"] == "Textile Traders"
        assert purchase_row["reference_no"] == "TT-100"
        assert purchase_row["unit_cost"] == "50.00"

        sale_row = movements[2]
        assert sale_row["reference_no"] == sale.bill_no
        assert sale_row["delta_qty"] == -2
        assert movements[0]["movement_date"].endswith("Z")

    def test_type_filter(self, db_session, supplier, variant):
        self._history(supplier, variant)

        movements = inventory_service.list_stock_movements(variant.id, movement_type="sale_void")
        assert [(m["movement_type"], m["delta_qty"]) for m in movements] == [("SALE_VOID", 2)]

    def test_purchase_void_shows_as_correction(self, db_session, supplier, variant):
        purchase = purchase_service.receive_purchase(
            supplier_id=supplier.id,
            items=[{"variant_id": variant.id, "qty": 6, "unit_cost": "50"}],
        )
        purchase_service.void_purchase(purchase.id, reason="Wrong SKU")

        movements = inventory_service.list_stock_movements(variant.id)
        assert [(m["movement_type"], m["delta_qty"]) for m in movements] == [
            ("ADJUSTMENT", -6),
            ("PURCHASE", 6),
        ]
        assert movements[0]["reference_id"] == purchase.id
        assert movements[0]["reference_no"] == "CORRECTION"

    def test_date_window(self, db_session, supplier, variant):
        self._history(supplier, variant)
        assert inventory_service.list_stock_movements(variant.id, end_date="2000-01-31") == []

    def test_bad_filters(self, db_session, variant):
        with pytest.raises(ValidationError) as exc:
            inventory_service.list_stock_movements(variant.id, start_date="2026/01/01")
        assert exc.value.code == "INVALID_DATE"

        with pytest.raises(ValidationError):
            inventory_service.list_stock_movements(variant.id, movement_type="TRANSFER")

    def test_unknown_variant(self, db_session):
        with pytest.raises(NotFoundError):
            inventory_service.list_stock_movements(8080)


class TestInventorySummary:
    @pytest.fixture
    def catalog(self, make_variant):
        return {
            "healthy": make_variant(sku="A", stock_qty=20, avg_cost="60", selling_price="118"),
            "low": make_variant(sku="B", stock_qty=5, avg_cost="10", selling_price="20"),
            "empty": make_variant(sku="C", stock_qty=0, avg_cost="10", selling_price="20"),
            "retired": make_variant(sku="D", stock_qty=100, avg_cost="1", selling_price="2", status=VARIANT_INACTIVE),
        }

    def test_summary_counts_active_variants(self, db_session, catalog):
        summary = inventory_service.get_inventory_summary()

        assert summary == {
            "total_skus": 3,
            "total_items": 25,
            "total_cost_value": "1250.00",
            "total_retail_value": "2460.00",
            "low_stock_count": 1,
            "out_of_stock_count": 1,
            "low_stock_threshold": 10,
        }

    def test_low_stock_list(self, db_session, catalog):
        items = inventory_service.list_low_stock()
        assert [i["sku"] for i in items] == ["B"]
        assert items[0]["product_name"] == "Cotton Shirt"
        assert items[0]["threshold"] == 10

        assert [i["sku"] for i in inventory_service.list_low_stock(25)] == ["B", "A"]


class TestSupplierSummary:
    def test_per_supplier_totals(self, db_session, supplier, variant):
        other = Supplier(name="Denim House")
        db_session.add(other)
        db_session.commit()

        for cost in ("50", "70"):
            purchase_service.receive_purchase(
                supplier_id=supplier.id,
                items=[{"variant_id": variant.id, "qty": 10, "unit_cost": cost}],
                purchased_at="2026-01-05T09:00:00",
            )
        purchase_service.receive_purchase(
            supplier_id=other.id,
            items=[{"variant_id": variant.id, "qty": 5, "unit_cost": "80"}],
            purchased_at="2026-02-01T09:00:00",
        )
        voided = purchase_service.receive_purchase(
            supplier_id=other.id,
            items=[{"variant_id": variant.id, "qty": 1, "unit_cost": "999"}],
        )
        purchase_service.void_purchase(voided.id, reason="Test")

        rows = inventory_service.get_supplier_summary(variant.id)

        assert rows == [
            {
                "supplier_id": other.id,
                "supplier_name": "Denim House",
                "total_qty": 5,
                "purchase_count": 1,
                "last_purchase_date": "2026-02-01T09:00:00Z",
                "avg_unit_cost": "80.00",
            },
            {
                "supplier_id": supplier.id,
                "supplier_name": "Textile Traders",
                "total_qty": 20,
                "purchase_count": 2,
                "last_purchase_date": "2026-01-05T09:00:00Z",
                "avg_unit_cost": "60.00",
            },
        ]
