"""
Pytest fixtures for posdesk backend tests.

Provides test database setup, catalog and user fixtures, and test client.
"""

from decimal import Decimal

import pytest

from posdesk import create_app
from posdesk.extensions import db
from posdesk.models import Category, Product, User
from posdesk.models.auth import ROLE_ADMIN, ROLE_CASHIER
from posdesk.money import VAT_EXEMPT, VAT_STANDARD, VAT_ZERO_RATED
from posdesk.services import session_service
from posdesk.services.auth_service import hash_password

TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'JWT_SECRET': 'test-jwt-secret',
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


def make_user(db_session, username: str, role: str, is_active: bool = True) -> User:
    # Low bcrypt cost keeps the suite fast; verify_password reads the cost from the hash
    user = User(
        full_name=username.replace("_", " ").title(),
        username=username,
        email=f"{username}@posdesk.test",
        password_hash=hash_password(TEST_PASSWORD, rounds=4),
        role=role,
        is_active=is_active,
    )
    db_session.add(user)
    db_session.commit()
    return user


def make_product(db_session, category, *, barcode: str, name: str, selling: str, buying: str,
                 stock: int = 10, vat_category: str = VAT_STANDARD, **extra) -> Product:
    product = Product(
        name=name,
        barcode=barcode,
        category_id=category.id,
        buying_price=Decimal(buying),
        selling_price=Decimal(selling),
        stock_quantity=stock,
        vat_category=vat_category,
        **extra,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def admin_user(db_session):
    return make_user(db_session, "admin_user", ROLE_ADMIN)


@pytest.fixture(scope='function')
def cashier_user(db_session):
    return make_user(db_session, "cashier_user", ROLE_CASHIER)


@pytest.fixture(scope='function')
def other_cashier(db_session):
    return make_user(db_session, "other_cashier", ROLE_CASHIER)


@pytest.fixture(scope='function')
def category(db_session):
    category = Category(name="Beverages", description="Drinks and juices")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def standard_product(db_session, category):
    """STANDARD-rated product selling at 100.00 with 10 in stock."""
    return make_product(
        db_session, category,
        barcode="6001000000011", name="Orange Juice 1L",
        selling="100.00", buying="70.00", stock=10,
    )


@pytest.fixture(scope='function')
def zero_rated_product(db_session, category):
    return make_product(
        db_session, category,
        barcode="6001000000028", name="Bottled Water 500ml",
        selling="12.50", buying="8.00", stock=50, vat_category=VAT_ZERO_RATED,
    )


@pytest.fixture(scope='function')
def exempt_product(db_session, category):
    return make_product(
        db_session, category,
        barcode="6001000000035", name="Infant Formula",
        selling="45.00", buying="30.00", stock=5, vat_category=VAT_EXEMPT,
    )


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return auth_headers(session_service.issue_token(admin_user))


@pytest.fixture(scope='function')
def cashier_headers(cashier_user):
    return auth_headers(session_service.issue_token(cashier_user))


def get_auth_token(client, username: str, password: str) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json['data']['token']
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
