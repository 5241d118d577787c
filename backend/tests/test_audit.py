# Overview: Pytest coverage for post-commit audit logging.

import logging

from conftest import actor_headers, sale_line
from retailpos import audit
from retailpos.models import AuditLog, Sale
from retailpos.services import inventory_service, sales_service


class TestAuditTrail:
    def test_settlement_is_audited(self, db_session, stocked_variant):
        sale = sales_service.settle_sale(items=[sale_line(stocked_variant, 1)], payment_mode="CASH", actor_id=7)

        entry = db_session.query(AuditLog).one()
        assert entry.entity_type == "SALE"
        assert entry.entity_id == sale.id
        assert entry.action == "CREATE"
        assert entry.user_id == 7
        assert sale.bill_no in entry.description

    def test_void_and_adjustment_are_audited(self, db_session, stocked_variant):
        sale = sales_service.settle_sale(items=[sale_line(stocked_variant, 1)], payment_mode="CASH")
        sales_service.void_sale(sale.id, reason="Oops")
        inventory_service.adjust_stock(variant_id=stocked_variant.id, delta_qty=2, reason="CORRECTION")

        actions = [(e.entity_type, e.action) for e in db_session.query(AuditLog).order_by(AuditLog.id)]
        assert actions == [
            ("SALE", "CREATE"),
            ("SALE", "VOID"),
            ("STOCK_ADJUSTMENT", "ADJUSTMENT"),
        ]

    def test_failed_operation_is_not_audited(self, db_session, make_variant):
        variant = make_variant(sku="AUD-1", stock_qty=0)
        try:
            sales_service.settle_sale(items=[sale_line(variant, 1)], payment_mode="CASH")
        except Exception:
            pass
        assert db_session.query(AuditLog).count() == 0

    def test_request_context_supplies_actor_and_ip(self, client, db_session, stocked_variant):
        response = client.post(
            "/api/sales",
            json={"items": [sale_line(stocked_variant, 1)], "payment_mode": "CASH"},
            headers=actor_headers(42),
        )
        assert response.status_code == 201

        entry = db_session.query(AuditLog).one()
        assert entry.user_id == 42
        assert entry.ip_address == "127.0.0.1"

    def test_audit_failure_is_swallowed(self, db_session, stocked_variant, monkeypatch, caplog):
        class BrokenSession:
            def __init__(self, *args, **kwargs):
                raise RuntimeError("audit store unavailable")

        monkeypatch.setattr(audit, "Session", BrokenSession)

        with caplog.at_level(logging.ERROR, logger="retailpos.audit"):
            sale = sales_service.settle_sale(items=[sale_line(stocked_variant, 1)], payment_mode="CASH")

        assert db_session.query(Sale).filter_by(id=sale.id).count() == 1
        assert stocked_variant.stock_qty == 19
        assert db_session.query(AuditLog).count() == 0
        assert "Failed to create audit log" in caplog.text
