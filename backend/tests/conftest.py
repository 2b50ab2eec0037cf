"""
Pytest fixtures for orderdesk backend tests.

Provides an in-memory database rebuilt for every test, seeded users and
products, auth headers and recorders for push and realtime delivery.
"""

from decimal import Decimal

import pytest

from orderdesk import create_app
from orderdesk.config import TestConfig
from orderdesk.extensions import db, socketio
from orderdesk.models import Category, NotificationToken, Product, User
from orderdesk.services import push_service, session_service
from orderdesk.services.auth_service import hash_password


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

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
    """Fresh schema for each test so autoincrement ids restart at 1."""
    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.create_all()

        yield db.session

        db.session.rollback()


@pytest.fixture(scope='function')
def emitted(monkeypatch):
    """Every realtime emit as (event, data, room); room is None for broadcasts."""
    events = []

    def fake_emit(event, data=None, to=None, **kwargs):
        events.append((event, data, to))

    monkeypatch.setattr(socketio, "emit", fake_emit)
    return events


@pytest.fixture(scope='function')
def pushes(monkeypatch):
    """Every push attempt as (tokens, title, body, data); all succeed."""
    sent = []

    def fake_send_push(token, title, body, data=None):
        sent.append(([token], title, body, data))
        return {"success": True, "messageId": f"msg-{len(sent)}"}

    def fake_send_multicast(tokens, title, body, data=None):
        sent.append((list(tokens), title, body, data))
        return {"success": True, "successCount": len(tokens), "failureCount": 0, "invalidTokens": []}

    monkeypatch.setattr(push_service, "send_push", fake_send_push)
    monkeypatch.setattr(push_service, "send_multicast", fake_send_multicast)
    return sent


def make_business(db_session, *, name, email, phone, status="approved", password="Password123"):
    user = User(
        type="business",
        name=name,
        email=email,
        phone_number=phone,
        business_name=f"{name} Jewellers",
        status=status,
        password_hash=hash_password(password),
    )
    db_session.add(user)
    db_session.commit()
    return user


def make_product(db_session, *, sku, category=None, status="active", stock_status="available", mark_amount="1500.00"):
    product = Product(
        category_id=category.id if category else None,
        name=f"Ring {sku}",
        sku=sku,
        net_weight=Decimal("4.20"),
        gross_weight=Decimal("4.50"),
        mark_amount=Decimal(mark_amount),
        pieces=1,
        purity="MG916",
        status=status,
        stock_status=stock_status,
    )
    db_session.add(product)
    db_session.commit()
    return product


def add_token(db_session, user_id, token, device_type="web"):
    row = NotificationToken(user_id=user_id, token=token, device_type=device_type, active=True)
    db_session.add(row)
    db_session.commit()
    return row


@pytest.fixture(scope='function')
def admin(app, db_session):
    """Admin account; created first so it owns ADMIN_USER_ID."""
    user = User(
        type="admin",
        name="Admin",
        email="admin@orderdesk.test",
        phone_number="9000000000",
        status=None,
        password_hash=hash_password("Password123"),
    )
    db_session.add(user)
    db_session.commit()
    app.config["ADMIN_USER_ID"] = user.id
    return user


@pytest.fixture(scope='function')
def approved_business(db_session, admin):
    return make_business(db_session, name="Asha", email="asha@example.com", phone="9111111111")


@pytest.fixture(scope='function')
def pending_business(db_session, admin):
    return make_business(
        db_session, name="Bala", email="bala@example.com", phone="9222222222", status="pending"
    )


@pytest.fixture(scope='function')
def category(db_session):
    c = Category(name="Rings", status="active")
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def product(db_session, category):
    return make_product(db_session, sku="RNG-001", category=category)


@pytest.fixture(scope='function')
def second_product(db_session, category):
    return make_product(db_session, sku="RNG-002", category=category, mark_amount="2500.00")


def auth_headers(user) -> dict:
    """Helper to create Authorization headers for a fresh session."""
    _, token = session_service.create_session(user.id)
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture(scope='function')
def business_headers(approved_business):
    return auth_headers(approved_business)
