"""
Pytest fixtures for bookstore backend tests.

Provides an in-memory database, a test client, user/product/voucher
factories and bearer-token helpers.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from bookstore import create_app
from bookstore.enums import UserRole
from bookstore.extensions import db
from bookstore.models import Category, Voucher
from bookstore.services import auth_service, cart_service, inventory_service, product_service, session_service
from bookstore.services.auth_service import EmailDeliveryError, EmailSender
from bookstore.services.shipping_service import RouteProviderError
from bookstore.time_utils import utcnow


PASSWORD = "Password123"


class RecordingEmailSender(EmailSender):
    """Keeps sent OTPs in memory; set fail=True to simulate a delivery outage."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def send_otp(self, email: str, code: str) -> None:
        if self.fail:
            raise EmailDeliveryError("smtp unavailable")
        self.sent.append((email, code))


class StaticRouteProvider:
    """Route provider with fixed distances per address; unknown addresses fail to geocode."""

    def __init__(self, distances: dict[str, float], route_fails: bool = False):
        self.distances = distances
        self.route_fails = route_fails

    def geocode(self, address):
        if address not in self.distances:
            raise RouteProviderError(f"unknown address {address}")
        # Latitude slot carries the distance so route() can read it back
        return (self.distances[address], 0.0)

    def route(self, origin, destination):
        if self.route_fails:
            raise RouteProviderError("routing backend down")
        return destination[0], 12


@pytest.fixture(scope='session')
def email_sender():
    return RecordingEmailSender()


@pytest.fixture(scope='session')
def app(email_sender):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'EMAIL_SENDER': email_sender,
        'DEFAULT_SHIPPING_FEE': Decimal("25000"),
        'SHIPPING_BASE_FEE': Decimal("15000"),
        'SHIPPING_PER_KM_FEE': Decimal("3000"),
        'SHIPPING_BASE_DISTANCE_KM': Decimal("5"),
        'SHIPPING_FREE_THRESHOLD': Decimal("0"),
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
def db_session(app, email_sender):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        email_sender.sent.clear()
        email_sender.fail = False
        app.config['ROUTE_PROVIDER'] = None
        app.config['SHIPPING_FREE_THRESHOLD'] = Decimal("0")

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _create_user(username: str, role=UserRole.CUSTOMER):
    return auth_service.create_user(
        username=username,
        email=f"{username}@example.com",
        password=PASSWORD,
        role=role,
    )


@pytest.fixture(scope='function')
def customer(db_session):
    return _create_user("alice")


@pytest.fixture(scope='function')
def other_customer(db_session):
    return _create_user("bob")


@pytest.fixture(scope='function')
def manager(db_session):
    return _create_user("manny", role=UserRole.MANAGER)


@pytest.fixture(scope='function')
def category(db_session):
    cat = Category(name="Fiction")
    db_session.add(cat)
    db_session.commit()
    return cat


@pytest.fixture(scope='function')
def make_product(db_session, category):
    """Factory: active product with `stock` units received through the ledger."""
    counter = {"n": 0}

    def _make(price="100000", stock=10, name=None, sku=None):
        counter["n"] += 1
        product = product_service.create_product(patch={
            "sku": sku or f"BOOK-{counter['n']:03d}",
            "name": name or f"Book {counter['n']}",
            "price": Decimal(price),
            "category_id": category.id,
            "is_active": True,
        })
        if stock:
            inventory_service.apply_transaction(
                transaction_type="IN",
                reference_type="MANUAL",
                items=[{"product_id": product.id, "quantity": stock, "unit_price": "50000"}],
            )
        return product

    return _make


@pytest.fixture(scope='function')
def product(make_product):
    return make_product(price="100000", stock=10)


@pytest.fixture(scope='function')
def make_voucher(db_session):
    """Factory: voucher valid from yesterday to next week unless overridden."""

    def _make(code="SAVE10", **overrides):
        now = utcnow()
        values = {
            "code": code,
            "discount_type": "PERCENT",
            "discount_amount": Decimal("10"),
            "apply_to": "ORDER",
            "min_order_amount": Decimal("0"),
            "max_discount": None,
            "valid_from": now - timedelta(days=1),
            "valid_to": now + timedelta(days=7),
            "usage_limit": 100,
            "per_user_limit": 1,
            "is_active": True,
        }
        values.update(overrides)
        voucher = Voucher(**values)
        db_session.add(voucher)
        db_session.commit()
        return voucher

    return _make


@pytest.fixture(scope='function')
def cart_with(customer):
    """Factory: put (product, quantity) pairs into the customer's cart."""

    def _fill(*lines, user=None):
        user = user or customer
        for product, quantity in lines:
            cart_service.add_item(user.id, product.id, quantity)

    return _fill


def auth_headers(user) -> dict:
    """Helper to create Authorization headers for a fresh session."""
    _, token = session_service.create_session(user.id)
    return {'Authorization': f'Bearer {token}'}


def get_auth_token(client, username: str, password: str = PASSWORD) -> str | None:
    """Helper to get auth token through the login endpoint."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password,
    })
    if response.status_code == 200:
        return response.json['data']['token']
    return None
