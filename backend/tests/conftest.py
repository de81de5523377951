"""
Pytest fixtures for shop ledger backend tests.

Provides test database setup, shop-scoped factories, and test client.
"""

from decimal import Decimal

import pytest
from shopledger import create_app
from shopledger.extensions import db
from shopledger.models import StockItem, CustomerLoan
from shopledger.models.loans import LOAN_STATUS_OUTSTANDING


SHOP_A = "shop-a"
SHOP_B = "shop-b"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SHOPLEDGER_RECORD_SALE_MOVEMENTS': False,
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
        # A failed test may leave a broken transaction behind
        db.session.rollback()

        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        db.session.remove()


@pytest.fixture(scope='function')
def make_item(db_session):
    """Factory: insert a StockItem directly and return it."""
    def _make(name, quantity="10", *, shop_id=SHOP_A, unit="units", price="1.00", **extra):
        item = StockItem(
            shop_id=shop_id,
            name=name,
            price=Decimal(str(price)),
            quantity=Decimal(str(quantity)),
            quantity_unit=unit,
            **extra,
        )
        db_session.add(item)
        db_session.commit()
        return item
    return _make


@pytest.fixture(scope='function')
def make_loan(db_session):
    """Factory: insert an outstanding CustomerLoan with an explicit created_at."""
    def _make(customer_name, amount, *, created_at, shop_id=SHOP_A, transaction_id=None):
        amount = Decimal(str(amount))
        loan = CustomerLoan(
            shop_id=shop_id,
            customer_name=customer_name,
            customer_key=customer_name.strip().lower(),
            transaction_id=transaction_id or f"TX-{customer_name}-{amount}",
            original_amount=amount,
            remaining_amount=amount,
            paid_amount=Decimal("0"),
            status=LOAN_STATUS_OUTSTANDING,
            created_at=created_at,
        )
        db_session.add(loan)
        db_session.commit()
        return loan
    return _make


def reload(record):
    """Re-read a record from the database, bypassing the identity map."""
    db.session.expire_all()
    return db.session.get(type(record), record.id)
