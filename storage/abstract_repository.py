"""Repository abstraction over the relational store."""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import datetime
from decimal import Decimal
from typing import Iterable, NamedTuple

from models import Order, Product, User, VerificationToken


class NewOrderItem(NamedTuple):
    product_id: int
    quantity: int
    price: Decimal


class AbstractRepository(ABC):
    """Interface for storefront persistence backends.

    Finders return ``None`` when nothing matches. Writes only become durable
    when the enclosing ``transaction()`` block exits without an exception.
    Store failures raise ``StoreUnavailable``.
    """

    @abstractmethod
    def transaction(self) -> AbstractContextManager[None]:
        """Commit on success, roll back everything on any exception."""

    # Users
    @abstractmethod
    def find_user_by_email(self, email: str) -> User | None:
        """Return the user with exactly this email."""

    @abstractmethod
    def find_user_by_id(self, user_id: int) -> User | None:
        """Return the user with the given primary key."""

    @abstractmethod
    def create_user(self, **fields) -> User:
        """Persist a new user; raise ``ConflictError`` on a duplicate email."""

    @abstractmethod
    def update_user(self, user: User) -> User:
        """Stage changes made to ``user``."""

    # Products
    @abstractmethod
    def find_product_by_id(self, product_id: int) -> Product | None:
        """Return the product with the given primary key."""

    @abstractmethod
    def update_product_stock(self, product_id: int, delta: int) -> bool:
        """Add ``delta`` to stock only if the result stays non-negative.

        Returns False when the guard rejected the update.
        """

    # Orders
    @abstractmethod
    def create_order_with_items(
        self,
        user_id: int,
        total_price: Decimal,
        shipping_address: str,
        items: Iterable[NewOrderItem],
    ) -> Order:
        """Stage an order and its items."""

    @abstractmethod
    def find_orders_by_user(self, user_id: int) -> list[Order]:
        """Return the user's orders newest first with items and products loaded."""

    @abstractmethod
    def find_order_by_id(self, order_id: int) -> Order | None:
        """Return an order with items and products loaded."""

    # Verification tokens
    @abstractmethod
    def create_verification_token(
        self,
        user_id: int,
        email: str,
        token: str,
        token_type: str,
        expires_at: datetime,
    ) -> VerificationToken:
        """Stage a new token."""

    @abstractmethod
    def find_verification_token(self, token: str) -> VerificationToken | None:
        """Look a token up by its opaque value."""

    @abstractmethod
    def find_latest_token(self, user_id: int, token_type: str) -> VerificationToken | None:
        """Return the most recently issued token of a type for a user."""

    @abstractmethod
    def mark_token_used(self, token_id: int, used_at: datetime) -> bool:
        """Flip ``is_used`` if it is still false. Returns False if already used."""

    @abstractmethod
    def delete_unused_tokens(self, user_id: int, token_type: str) -> int:
        """Delete the user's unused tokens of a type and return how many."""
