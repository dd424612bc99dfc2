"""
Pytest fixtures for inventory backend tests.

Provides test database setup, tenant fixtures, variant/supplier factories
and a test client.
"""

import pytest
from oms import create_app
from oms.config import TestConfig
from oms.extensions import db
from oms.models import Organization, Variant, Supplier
from oms.services.order_status_service import seed_order_statuses


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

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
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def statuses(db_session):
    """Seed the system order status catalog."""
    seed_order_statuses()


@pytest.fixture(scope='function')
def org_a(db_session, statuses):
    """Create Organization A (first tenant)."""
    org = Organization(name="Org A - Acme Corp", code="ACME", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def org_b(db_session, statuses):
    """Create Organization B (second tenant)."""
    org = Organization(name="Org B - Beta Inc", code="BETA", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def make_variant(db_session):
    """Factory: create a variant with a given stock position."""
    def _make(org, sku, stock=0, reserved=0, cost=None, name=None):
        variant = Variant(
            org_id=org.id,
            sku=sku,
            name=name or sku,
            stock_on_hand=stock,
            reserved=reserved,
            unit_cost_cents=cost,
        )
        db_session.add(variant)
        db_session.commit()
        return variant
    return _make


@pytest.fixture(scope='function')
def variant_a(make_variant, org_a):
    """Variant in Organization A: 10 on hand at 100 cents."""
    return make_variant(org_a, "SKU-A-001", stock=10, cost=100)


@pytest.fixture(scope='function')
def variant_b(make_variant, org_b):
    """Variant in Organization B."""
    return make_variant(org_b, "SKU-B-001", stock=10, cost=100)


@pytest.fixture(scope='function')
def supplier_a(db_session, org_a):
    supplier = Supplier(org_id=org_a.id, name="Acme Supplies", code="SUP-A")
    db_session.add(supplier)
    db_session.commit()
    return supplier


def order_payload(*items, **overrides) -> dict:
    """Helper to build an order creation payload from (variant, qty, price) tuples."""
    payload = {
        "customer_name": "Jane Customer",
        "phone_number": "+15550100",
        "address": "1 Main Street",
        "city": "Springfield",
        "items": [
            {"variant_id": variant.id, "quantity": qty, "unit_price_cents": price}
            for variant, qty, price in items
        ],
    }
    payload.update(overrides)
    return payload


def purchase_payload(receipt_number: str, *items, **overrides) -> dict:
    """Helper to build a purchase invoice payload from (variant, qty, unit_cost) tuples."""
    payload = {
        "receipt_number": receipt_number,
        "items": [
            {"variant_id": variant.id, "quantity": qty, "unit_cost_cents": cost}
            for variant, qty, cost in items
        ],
    }
    payload.update(overrides)
    return payload


def tenant_headers(org, user_id=None) -> dict:
    """Helper to create tenant headers."""
    headers = {"X-Org-Id": str(org.id)}
    if user_id is not None:
        headers["X-User-Id"] = str(user_id)
    return headers
