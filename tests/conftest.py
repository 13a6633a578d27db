"""Shared pytest fixtures for the application tests."""

from __future__ import annotations

import sys
from decimal import Decimal
from pathlib import Path

import pytest
from flask import Flask
from flask.testing import FlaskClient

ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from app import create_app  # noqa: E402
from config import Config  # noqa: E402
from models import db  # noqa: E402
from models.product import Product  # noqa: E402
from models.user import User  # noqa: E402


TEST_PASSWORD_HASH_METHOD = "pbkdf2:sha256:1000"


class _BaseTestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JWT_SECRET_KEY = "test-jwt-secret-key-with-at-least-32-bytes"
    SECRET_KEY = "test-secret-key"
    RATE_LIMIT = "1000 per minute"
    FRONTEND_URL = "http://shop.test"
    MAIL_SERVER = None
    MAIL_PASSWORD = None
    MAIL_DEFAULT_SENDER = "noreply@shop.test"
    PASSWORD_HASH_METHOD = TEST_PASSWORD_HASH_METHOD
    ORDERS_REQUIRE_VERIFIED_EMAIL = False


@pytest.fixture()
def app() -> Flask:
    """Create a Flask application instance for tests."""

    application = create_app(_BaseTestConfig)

    with application.app_context():
        db.create_all()

    yield application

    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app: Flask) -> FlaskClient:
    """Return a test client for the Flask app."""

    return app.test_client()


@pytest.fixture()
def db_session(app: Flask):
    """Run the test inside an application context and yield the session."""

    with app.app_context():
        yield db.session


def make_user(
    email: str = "shopper@example.com",
    password: str = "secret123",
    *,
    name: str = "Shopper",
    role: str = "customer",
    verified: bool = True,
) -> User:
    """Insert a user directly. Requires an application context."""

    from services.credentials import CredentialStore

    user = User(
        name=name,
        email=email,
        password_hash=CredentialStore(TEST_PASSWORD_HASH_METHOD).hash_password(password),
        role=role,
        is_email_verified=verified,
    )
    db.session.add(user)
    db.session.commit()
    return user


def make_product(
    name: str = "Widget",
    price: str = "10.00",
    stock: int = 5,
    **fields,
) -> Product:
    """Insert a product directly. Requires an application context."""

    product = Product(name=name, price=Decimal(price), stock=stock, **fields)
    db.session.add(product)
    db.session.commit()
    return product
