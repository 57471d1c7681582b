"""
Pytest fixtures for StockLedger backend tests.

Provides test database setup, catalog fixtures, and test client.
"""

import pytest
from stockledger import create_app
from stockledger.extensions import db
from stockledger.services import catalog_service, document_service


# Acting user id used by every test; auth lives outside the service
ACTOR = 7


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LEDGER_RETRY_BACKOFF': 0,
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
def headers():
    return {'X-User-Id': str(ACTOR)}


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
def main(db_session):
    """Primary warehouse location."""
    return catalog_service.create_location(code="WH-A", name="Warehouse A")


@pytest.fixture(scope='function')
def backup(db_session):
    """Second warehouse location."""
    return catalog_service.create_location(code="WH-B", name="Warehouse B")


@pytest.fixture(scope='function')
def vendor(db_session):
    return catalog_service.create_vendor(name="Acme Supplies", email="orders@acme.test")


@pytest.fixture(scope='function')
def widget(db_session):
    return catalog_service.create_product(sku="WIDGET-1", name="Widget", price_cents=1000, min_stock=5)


@pytest.fixture(scope='function')
def gadget(db_session):
    return catalog_service.create_product(sku="GADGET-1", name="Gadget", price_cents=2500)


@pytest.fixture(scope='function')
def receive(db_session, vendor):
    """Helper: create and apply a receipt for one product at one location."""
    def _receive(location, product, quantity):
        receipt = document_service.create_receipt(
            vendor_id=vendor.id,
            location_id=location.id,
            lines=[{"product_id": product.id, "quantity": quantity}],
            acting_user_id=ACTOR,
        )
        return document_service.apply_document("receipt", receipt.id, acting_user_id=ACTOR)

    return _receive
