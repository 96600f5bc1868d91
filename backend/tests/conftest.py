"""
Pytest fixtures for costledger backend tests.

Provides test database setup, a freshly wired engine per test, product
factories and the Flask test client.
"""

import pytest
from costledger import create_app
from costledger.engine import build_engine
from costledger.extensions import db
from costledger.services.events import EventBus


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'COSTLEDGER_UOW_BACKOFF': 0.0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app, db_session):
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
def events():
    """Event bus with no subscribers; tests attach their own."""
    return EventBus()


@pytest.fixture(scope='function')
def engine(db_session, events):
    """Services wired against the test session, isolated from the app's bus."""
    return build_engine(db_session, events=events, backoff_base=0.0, history_limit=5)


@pytest.fixture(scope='function')
def make_product(engine):
    """Factory: create a product through the catalog with sensible defaults."""
    def _make(name="Shiro Wot", type="sellable", **fields):
        payload = {"name": name, "type": type}
        if type in ("sellable", "combination"):
            payload.setdefault("selling_price", "12.00")
        if type in ("stock", "combination"):
            payload.setdefault("cost_price", "8.00")
        payload.update(fields)
        return engine.products.create_product(payload, actor_id="tester")

    return _make
