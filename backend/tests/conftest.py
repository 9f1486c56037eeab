"""
Pytest fixtures for the duka backend tests.

Provides an in-memory database app, per-test table cleanup, a test client and
a few catalog/supplier fixtures.
"""

from decimal import Decimal

import pytest
from duka import create_app
from duka.extensions import db
from duka.models import Product, Supplier


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SHOP_NAME': 'TEST SHOP',
        'MPESA_CONSUMER_KEY': 'key',
        'MPESA_CONSUMER_SECRET': 'secret',
        'MPESA_PASSKEY': 'passkey',
        'MPESA_CALLBACK_URL': 'https://shop.example/api/mpesa/callback',
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


def make_product(session, name="Maize Flour 2kg", on_hand=10, reorder_level=5, price="50.00", cost="40.00"):
    product = Product(
        name=name,
        on_hand=on_hand,
        reorder_level=reorder_level,
        selling_price=Decimal(price),
        cost_price=Decimal(cost),
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def product(db_session):
    """10 on hand, reorder at 5, sells at 50.00."""
    return make_product(db_session)


@pytest.fixture(scope='function')
def second_product(db_session):
    return make_product(db_session, name="Rice 1kg", on_hand=20, reorder_level=3, price="170.00", cost="140.00")


@pytest.fixture(scope='function')
def supplier(db_session):
    s = Supplier(name="Distributor D", phone="0712345678", opening_balance=Decimal("0"), balance=Decimal("0"))
    db_session.add(s)
    db_session.commit()
    return s
