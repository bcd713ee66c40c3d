"""
Pytest fixtures for SmartStock backend tests.

Provides test database setup, seeded users per role, catalog fixtures and
test client.
"""

import pytest

from smartstock import create_app
from smartstock.extensions import db
from smartstock.services import auth_service, catalog_service
from smartstock.services.concurrency import transaction


TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'PASSWORD_HASH_COST': 4,
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


def _create_user(username: str, role: str):
    with transaction():
        return auth_service.create_user(
            username=username,
            password=TEST_PASSWORD,
            full_name=username.capitalize(),
            role=role,
        )


@pytest.fixture(scope='function')
def users(db_session):
    """One active user per role."""
    return {
        "admin": _create_user("admin", "ADMIN"),
        "manager": _create_user("manager", "MANAGER"),
        "sales": _create_user("sales", "SALES"),
        "warehouse": _create_user("keeper", "WAREHOUSE"),
    }


def get_auth_token(client, username: str, password: str = TEST_PASSWORD) -> str:
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


@pytest.fixture(scope='function')
def admin_headers(client, users):
    return auth_headers(get_auth_token(client, "admin"))


@pytest.fixture(scope='function')
def manager_headers(client, users):
    return auth_headers(get_auth_token(client, "manager"))


@pytest.fixture(scope='function')
def sales_headers(client, users):
    return auth_headers(get_auth_token(client, "sales"))


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

@pytest.fixture(scope='function')
def warehouse(db_session):
    return catalog_service.create_entity("warehouse", {"name": "Main Warehouse", "location": "Dock 1"})


@pytest.fixture(scope='function')
def warehouse_b(db_session):
    return catalog_service.create_entity("warehouse", {"name": "Overflow", "location": "Dock 2"})


@pytest.fixture(scope='function')
def supplier(db_session):
    return catalog_service.create_entity("supplier", {
        "name": "Acme Supply",
        "contact_person": "Ann Smith",
        "email": "orders@acme.test",
        "phone": "555-0100",
    })


@pytest.fixture(scope='function')
def category(db_session):
    return catalog_service.create_entity("category", {"name": "Hardware"})


@pytest.fixture(scope='function')
def customer(db_session):
    return catalog_service.create_entity("customer", {"name": "Walk-in Wholesale", "email": "buyer@shop.test"})


def make_product(code="X1", *, cost="10.00", selling="15.00", reorder_level=5, category=None, supplier=None):
    payload = {
        "code": code,
        "name": f"Product {code}",
        "cost_price": cost,
        "selling_price": selling,
        "reorder_level": reorder_level,
    }
    if category is not None:
        payload["category_id"] = category.id
    if supplier is not None:
        payload["supplier_id"] = supplier.id
    return catalog_service.create_product(payload)


@pytest.fixture(scope='function')
def product(db_session, category, supplier):
    return make_product("X1", category=category, supplier=supplier)
