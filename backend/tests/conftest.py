"""
Pytest fixtures for retail POS ledger tests.

Provides test database setup, catalog factories, and test client.
"""

from decimal import Decimal

import pytest

from retailpos import create_app
from retailpos.extensions import db
from retailpos.models import Product, ShopSettings, Supplier, Variant
from retailpos.models.settings import SHOP_SETTINGS_ID


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'TX_RETRY_BACKOFF': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh database for each test, with the shop settings row at 18% tax."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        db.session.add(ShopSettings(
            id=SHOP_SETTINGS_ID,
            shop_name="Test Shop",
            tax_percent=Decimal("18"),
            invoice_prefix="INV",
            last_bill_number=0,
            low_stock_threshold=10,
        ))
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def product(db_session):
    product = Product(name="Cotton Shirt", brand="Acme", category="Shirts")
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def make_variant(db_session, product):
    """Factory: make_variant(sku, stock_qty=0, avg_cost="0", selling_price="118")."""
    def _make(sku="SHIRT-M-BLU", stock_qty=0, avg_cost="0", selling_price="118", **kwargs):
        variant = Variant(
            product_id=product.id,
            sku=sku,
            size=kwargs.pop("size", "M"),
            color=kwargs.pop("color", "Blue"),
            stock_qty=stock_qty,
            avg_cost=Decimal(avg_cost),
            selling_price=Decimal(selling_price),
            **kwargs,
        )
        db_session.add(variant)
        db_session.commit()
        return variant
    return _make


@pytest.fixture(scope='function')
def variant(make_variant):
    """Empty variant: stock 0, avg_cost 0."""
    return make_variant()


@pytest.fixture(scope='function')
def stocked_variant(make_variant):
    """Variant with 20 on hand at avg_cost 60.00."""
    return make_variant(sku="SHIRT-L-RED", stock_qty=20, avg_cost="60", size="L", color="Red")


@pytest.fixture(scope='function')
def supplier(db_session):
    supplier = Supplier(name="Textile Traders", contact_person="R. Kumar", phone="9800000000")
    db_session.add(supplier)
    db_session.commit()
    return supplier


def sale_line(variant, qty, unit_price="118", item_discount_percent=None) -> dict:
    """Helper to build a sale item payload."""
    line = {"variant_id": variant.id, "qty": qty, "unit_price": unit_price}
    if item_discount_percent is not None:
        line["item_discount_percent"] = item_discount_percent
    return line


def actor_headers(user_id: int) -> dict:
    """Helper to create actor headers."""
    return {"X-User-Id": str(user_id)}
