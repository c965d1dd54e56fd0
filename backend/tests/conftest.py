"""
Pytest fixtures for stockroom backend tests.

Provides test database setup, two tenants with one staff user each, bearer
token helpers, and small catalog factories.
"""

from decimal import Decimal

import pytest
from stockroom import create_app
from stockroom.extensions import db
from stockroom.models import Business, User, Vendor, Category
from stockroom.services import catalog_service
from stockroom.services.session_service import create_session


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'CURRENCY_SYMBOL': '₹',
        'CURRENCY_GROUPING': 'indian',
        'REORDER_DEFAULT_QUANTITY': 10,
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


@pytest.fixture(scope='function')
def business_a(db_session):
    """Business A (first tenant)."""
    business = Business(name="Glow Salon", code="GLOW", is_active=True)
    db_session.add(business)
    db_session.commit()
    return business


@pytest.fixture(scope='function')
def business_b(db_session):
    """Business B (second tenant)."""
    business = Business(name="Zen Spa", code="ZEN", is_active=True)
    db_session.add(business)
    db_session.commit()
    return business


@pytest.fixture(scope='function')
def user_a(db_session, business_a):
    user = User(business_id=business_a.id, name="Asha Rao", email="asha@glow.local")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def user_b(db_session, business_b):
    user = User(business_id=business_b.id, name="Ben Okafor", email="ben@zen.local")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def token_a(user_a):
    _, token = create_session(user_a.id)
    return token


@pytest.fixture(scope='function')
def token_b(user_b):
    _, token = create_session(user_b.id)
    return token


@pytest.fixture(scope='function')
def vendor_a(db_session, business_a):
    vendor = Vendor(business_id=business_a.id, name="Beauty Supplies Co", contact_person="Ravi", status="active")
    db_session.add(vendor)
    db_session.commit()
    return vendor


@pytest.fixture(scope='function')
def category_a(db_session, business_a):
    category = Category(business_id=business_a.id, name="Hair Care", sort_order=1)
    db_session.add(category)
    db_session.commit()
    return category


def make_product(business, sku="SKU-001", name="Shampoo 500ml", initial_stock=None, user=None, **fields):
    """Create a product through the catalog so opening stock lands in the ledger."""
    patch = {"sku": sku, "name": name, "cost_price_cents": 25000}
    patch.update(fields)
    return catalog_service.create_product(
        business_id=business.id,
        patch=patch,
        initial_stock=Decimal(str(initial_stock)) if initial_stock is not None else None,
        created_by_user_id=user.id if user else None,
    )


@pytest.fixture(scope='function')
def product_a(db_session, business_a, user_a):
    """Product in Business A with 20 units on hand."""
    return make_product(business_a, initial_stock=20, user=user_a, minimum_stock=Decimal("5"))


@pytest.fixture(scope='function')
def product_b(db_session, business_b):
    """Product in Business B with 7 units on hand."""
    return make_product(business_b, sku="SKU-B-001", name="Massage Oil", initial_stock=7)


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
