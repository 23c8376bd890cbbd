"""
Pytest fixtures for field orders backend tests.

Provides an in-memory application, per-test table cleanup, users with
profiles in both roles, bearer headers and small catalog fixtures.
"""

from decimal import Decimal

import pytest

from field_orders import create_app
from field_orders.extensions import db
from field_orders.models import Customer, Product, ProductBranch
from field_orders.policies import Actor
from field_orders.services import auth_service, session_service

API_KEY = "test-api-key"
PASSWORD = "secret123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'API_KEY': API_KEY,
        'BCRYPT_ROUNDS': 4,
        'REALTIME_HEARTBEAT_SECONDS': 0.05,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function', autouse=True)
def db_session(app):
    """Empty every table before each test."""
    db.session.rollback()
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()


def make_user(email: str, role: str = "sales", branch: str = "JKP", full_name: str | None = None):
    return auth_service.create_user(email, PASSWORD, full_name=full_name, role=role, branch=branch)


def actor_of(user, role: str = "sales", branch: str = "JKP") -> Actor:
    return Actor(user_id=user.id, role=role, branch=branch)


def auth_headers(user=None) -> dict:
    """apikey header, plus a fresh bearer token when a user is given."""
    headers = {"apikey": API_KEY}
    if user is not None:
        _, token = session_service.create_session(user.id)
        headers["Authorization"] = f"Bearer {token}"
    return headers


@pytest.fixture
def admin_user(db_session):
    return make_user("admin@example.com", role="admin", full_name="Ada Admin")


@pytest.fixture
def sales_user(db_session):
    return make_user("sales@example.com", full_name="Sam Sales")


@pytest.fixture
def other_sales_user(db_session):
    return make_user("other@example.com", branch="BGR", full_name="Olive Other")


@pytest.fixture
def admin(admin_user):
    return actor_of(admin_user, role="admin")


@pytest.fixture
def sales(sales_user):
    return actor_of(sales_user)


@pytest.fixture
def other_sales(other_sales_user):
    return actor_of(other_sales_user, branch="BGR")


@pytest.fixture
def admin_headers(admin_user):
    return auth_headers(admin_user)


@pytest.fixture
def sales_headers(sales_user):
    return auth_headers(sales_user)


@pytest.fixture
def other_headers(other_sales_user):
    return auth_headers(other_sales_user)


@pytest.fixture
def customer(db_session, sales_user):
    c = Customer(name="Toko Maju", phone="0812", customer_code="C-001", branch="JKP", created_by=sales_user.id)
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture
def product(db_session):
    """60 000 per carton; 6 boxes per carton, 6 pieces per box."""
    p = Product(
        sku="HT001",
        name="Teh Kotak",
        is_active=True,
        price=Decimal("60000"),
        uom1_name="CTN",
        uom2_name="BOX",
        uom3_name="PCS",
        conv1_to_2=6,
        conv2_to_3=6,
    )
    p.branch_links.append(ProductBranch(branch="JKP"))
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture
def second_product(db_session):
    p = Product(
        sku="KP002",
        name="Kopi Sachet",
        is_active=True,
        price=Decimal("120000"),
        conv1_to_2=10,
        conv2_to_3=12,
    )
    db_session.add(p)
    db_session.commit()
    return p
