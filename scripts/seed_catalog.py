"""Seed an administrator, a demo customer and a starter catalog."""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from app import create_app  # noqa: E402
from models import db  # noqa: E402
from models.product import Product  # noqa: E402
from models.user import User  # noqa: E402
from services.credentials import CredentialStore  # noqa: E402

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "AdminPass123"
CUSTOMER_EMAIL = "john@example.com"
CUSTOMER_PASSWORD = "password123"

PRODUCTS = [
    {
        "name": 'Pro Laptop 15"',
        "description": "High-performance laptop with Intel Core i9, 16GB RAM, 512GB SSD",
        "price": Decimal("1299.99"),
        "image": "https://placehold.co/300x300?text=Laptop+Pro",
        "category": "computers",
        "stock": 12,
        "rating": 4.8,
    },
    {
        "name": "Gaming Desktop PC",
        "description": "Ultimate gaming PC with RTX 4090, Ryzen 9, 64GB RAM",
        "price": Decimal("2499.99"),
        "image": "https://placehold.co/300x300?text=Gaming+PC",
        "category": "computers",
        "stock": 5,
        "rating": 4.9,
    },
    {
        "name": "Wireless Headphones Pro",
        "description": "Premium noise-cancelling with 40-hour battery life",
        "price": Decimal("349.99"),
        "image": "https://placehold.co/300x300?text=Headphones+Pro",
        "category": "electronics",
        "stock": 28,
        "rating": 4.7,
    },
    {
        "name": "Mechanical Keyboard",
        "description": "Hot-swappable switches with per-key RGB lighting",
        "price": Decimal("129.99"),
        "image": "https://placehold.co/300x300?text=Keyboard",
        "category": "accessories",
        "stock": 40,
        "rating": 4.6,
    },
    {
        "name": "4K Monitor 27\"",
        "description": "IPS panel with HDR400 and USB-C power delivery",
        "price": Decimal("449.00"),
        "image": "https://placehold.co/300x300?text=4K+Monitor",
        "category": "electronics",
        "stock": 15,
        "rating": 4.5,
    },
]


def get_or_create_user(
    credentials: CredentialStore, email: str, password: str, name: str, role: str
) -> tuple[User, str]:
    """Create or update a verified user with the provided credentials."""

    user = User.query.filter_by(email=email).first()
    action = "updated"
    if user is None:
        user = User(email=email)
        db.session.add(user)
        action = "created"
    user.name = name
    user.role = role
    user.is_email_verified = True
    user.password_hash = credentials.hash_password(password)
    return user, action


def main() -> None:
    app = create_app()
    credentials = CredentialStore(method=app.config.get("PASSWORD_HASH_METHOD", "scrypt"))
    with app.app_context():
        db.create_all()

        _, admin_action = get_or_create_user(
            credentials, ADMIN_EMAIL, ADMIN_PASSWORD, "Store Admin", "admin"
        )
        _, customer_action = get_or_create_user(
            credentials, CUSTOMER_EMAIL, CUSTOMER_PASSWORD, "John Doe", "customer"
        )

        created = 0
        for data in PRODUCTS:
            if Product.query.filter_by(name=data["name"]).first() is None:
                db.session.add(Product(**data))
                created += 1

        db.session.commit()
        print(f"Admin user {admin_action}: {ADMIN_EMAIL}")
        print(f"Customer user {customer_action}: {CUSTOMER_EMAIL}")
        print(f"Products created: {created}")


if __name__ == "__main__":
    main()
