"""Database initialization and model exports."""

from flask_sqlalchemy import SQLAlchemy


db = SQLAlchemy()

# Import models to register them with SQLAlchemy metadata.
from .user import User  # noqa: E402,F401
from .product import Product  # noqa: E402,F401
from .order import Order, OrderItem  # noqa: E402,F401
from .verification_token import VerificationToken  # noqa: E402,F401

__all__ = [
    "db",
    "User",
    "Product",
    "Order",
    "OrderItem",
    "VerificationToken",
]
