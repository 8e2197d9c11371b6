"""
Pytest fixtures for Paneteria backend tests.

Provides the test app on an in-memory database, a per-test table wipe,
a gateway and a dashboard store with an open session.
"""

import logging

import pytest
from paneteria import create_app
from paneteria.extensions import db, get_store, get_notifications
from paneteria.services.gateway import SqlGateway
from paneteria.services.sync_service import DashboardStore


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'REALTIME_ENABLED': True,
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

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
    """Fresh database and signed-out app services for each test."""
    with app.app_context():
        get_store().close_session()
        get_notifications().clear_all()

        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        get_store().close_session()


class NoticeRecorder:
    """Stands in for the notification center's notify()."""

    def __init__(self):
        self.calls = []

    def __call__(self, title, message, severity="info", action=None):
        self.calls.append({"title": title, "message": message, "severity": severity, "action": action})

    @property
    def severities(self):
        return [c["severity"] for c in self.calls]


@pytest.fixture(scope='function')
def gateway(db_session):
    return SqlGateway(logger=logging.getLogger("paneteria.tests"))


@pytest.fixture(scope='function')
def notices():
    return NoticeRecorder()


@pytest.fixture(scope='function')
def store(gateway, notices):
    """Dashboard store with an open session and realtime refresh."""
    store = DashboardStore(gateway, notify=notices, logger=logging.getLogger("paneteria.tests"))
    store.open_session("tester")
    yield store
    store.close_session()


@pytest.fixture(scope='function')
def breads(store):
    return store.add_category({"name": "Breads", "description": "Loaves", "is_active": True})


@pytest.fixture(scope='function')
def sourdough(store, breads):
    return store.add_product({"name": "Sourdough", "price": "20.00", "category_id": breads.id})


@pytest.fixture(scope='function')
def ana(store):
    return store.add_customer({"name": "Ana", "whatsapp": "+55 11 91234-5678"})


@pytest.fixture(scope='function')
def signed_in(client, db_session):
    """Client with the dashboard session open."""
    response = client.post('/api/session', json={'user': 'operator'})
    assert response.status_code == 201
    return client
