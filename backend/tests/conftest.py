"""
Pytest fixtures for creditpos backend tests.

Provides an in-memory application, a per-test wiped session, and small
factories for products, clients and sales.
"""

from datetime import datetime

import pytest

from creditpos import create_app
from creditpos.extensions import db
from creditpos.models import Client, Product
from creditpos.services import sale_lifecycle


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ALLOCATION_DEBT_POLICY': 'FULL_AMOUNT',
        'DB_RETRY_BACKOFF': 0,
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
        app.config['ALLOCATION_DEBT_POLICY'] = 'FULL_AMOUNT'


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: product with a given stock and cost."""
    def _make(name="Soda", stock=10, price_cents=150, unit_cost_cents=100):
        product = Product(
            name=name,
            price_cents=price_cents,
            unit_cost_cents=unit_cost_cents,
            stock_quantity=stock,
            category="Drinks",
        )
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def make_debtor(db_session):
    """Factory: client with an optional starting debt."""
    def _make(name="Ana Ruiz", debt_cents=0):
        debtor = Client(name=name, phone="555-0100", current_debt_cents=debt_cents)
        db_session.add(debtor)
        db_session.commit()
        return debtor
    return _make


@pytest.fixture(scope='function')
def product(make_product):
    return make_product()


@pytest.fixture(scope='function')
def debtor(make_debtor):
    return make_debtor()


@pytest.fixture(scope='function')
def credit_sale(product):
    """
    Factory: CREDIT sale of `product` through the lifecycle manager.

    total = quantity * unit price; the client's debt grows by total - paid.
    """
    def _make(debtor, total_cents, paid_cents=0, occurred_at=None):
        return sale_lifecycle.create_sale({
            "client_id": debtor.id,
            "status": "CREDIT",
            "amount_paid_cents": paid_cents,
            "occurred_at": occurred_at or datetime(2026, 1, 1, 12, 0, 0),
            "lines": [{
                "product_id": product.id,
                "quantity": 1,
                "unit_price_cents": total_cents,
            }],
        })
    return _make
