"""
Pytest fixtures for gold ledger backend tests.

Provides an in-memory database, supplier fixtures, test client and CLI runner.
"""

import pytest

from goldledger import create_app
from goldledger.extensions import db
from goldledger.services import price_service, supplier_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'GOLD_RETRY_BACKOFF': 0,
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
def runner(app):
    """Create CLI runner."""
    return app.test_cli_runner()


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
def supplier(db_session):
    """A miner the business buys from."""
    return supplier_service.register_supplier(
        name="Kwame Mensah",
        phone="+233200000001",
        location="Tarkwa",
        type="miner",
        trust_level="regular",
    )


@pytest.fixture(scope='function')
def other_supplier(db_session):
    """A second miner, for cross-supplier checks."""
    return supplier_service.register_supplier(
        name="Ama Owusu",
        phone="+233200000002",
        type="miner",
    )


@pytest.fixture(scope='function')
def buyer(db_session):
    """A refinery the business sells to."""
    return supplier_service.register_supplier(
        name="Accra Refinery Ltd",
        phone="+233300000001",
        type="refinery",
        trust_level="vip",
    )


@pytest.fixture(scope='function')
def gold_price(db_session):
    """Latest gold spot price: 2350 USD/oz."""
    return price_service.record_price(price_per_oz=2350.0, commodity="gold", currency="USD", source="manual")
