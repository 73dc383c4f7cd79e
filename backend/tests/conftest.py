"""
Pytest fixtures for Inventra backend tests.

Provides test database setup, owner fixtures, auth headers and test client.
"""

import bcrypt
import pytest
from inventra import create_app
from inventra.extensions import db
from inventra.models import User, Product
from inventra.services.session_service import create_session

CRON_SECRET = "test-cron-secret"
PASSWORD = "Password123!"


def _quick_hash(password: str) -> str:
    # Low cost factor keeps the suite fast; verify_password accepts any cost
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=4)).decode("utf-8")


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'CRON_SECRET': CRON_SECRET,
        'IMAGE_HOST_DELETE_URL': None,
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


def _make_user(db_session, email: str) -> User:
    user = User(
        email=email,
        password_hash=_quick_hash(PASSWORD),
        first_name="Test",
        last_name="Owner",
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def owner_a(db_session):
    """First account; owns its own products and invoices."""
    return _make_user(db_session, "owner_a@acme.com")


@pytest.fixture(scope='function')
def owner_b(db_session):
    """Second account, used to prove owner scoping."""
    return _make_user(db_session, "owner_b@beta.com")


@pytest.fixture(scope='function')
def auth_headers(db_session):
    """Factory: Authorization header for a fresh session of the given user."""
    def _headers(user: User) -> dict:
        _, token = create_session(user_id=user.id)
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture(scope='function')
def cron_headers():
    """Headers accepted by the /api/cron endpoints."""
    return {"Authorization": f"Bearer {CRON_SECRET}"}


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: persisted product with computed availability."""
    def _make(owner: User, product_code: str = "P-001", **overrides) -> Product:
        fields = {
            "name": "Widget",
            "category": "General",
            "price_cents": 10000,
            "quantity": 10,
            "threshold_value": 5,
            "expiry_date": None,
        }
        fields.update(overrides)
        product = Product(owner_id=owner.id, product_code=product_code, **fields)
        product.refresh_availability()
        db_session.add(product)
        db_session.commit()
        return product
    return _make
