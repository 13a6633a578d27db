"""SQLAlchemy implementation of the storefront repository."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from functools import wraps
from typing import Iterable, Iterator

from flask import current_app
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import selectinload

from models import Order, OrderItem, Product, User, VerificationToken
from services.errors import ConflictError, StoreUnavailable

from .abstract_repository import AbstractRepository, NewOrderItem

_STORE_ERRORS = (OperationalError, PoolTimeoutError)


def _store_call(method):
    """Translate driver failures and timeouts into ``StoreUnavailable``."""

    @wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except _STORE_ERRORS as exc:
            self.session.rollback()
            current_app.logger.error("Store call %s failed: %s", method.__name__, exc)
            raise StoreUnavailable() from exc

    return wrapper


class SQLAlchemyRepository(AbstractRepository):
    """Persist storefront entities through a Flask-SQLAlchemy handle."""

    def __init__(self, db: SQLAlchemy):
        self.db = db

    @property
    def session(self):
        return self.db.session

    @contextmanager
    def transaction(self) -> Iterator[None]:
        try:
            yield
            self.session.commit()
        except _STORE_ERRORS as exc:
            self.session.rollback()
            current_app.logger.error("Transaction commit failed: %s", exc)
            raise StoreUnavailable() from exc
        except Exception:
            self.session.rollback()
            raise

    # Users

    @_store_call
    def find_user_by_email(self, email: str) -> User | None:
        return User.query.filter(User.email == email).first()

    @_store_call
    def find_user_by_id(self, user_id: int) -> User | None:
        return self.session.get(User, user_id)

    @_store_call
    def create_user(self, **fields) -> User:
        user = User(**fields)
        self.session.add(user)
        try:
            self.session.flush()
        except IntegrityError as exc:
            raise ConflictError("Email already registered.") from exc
        return user

    @_store_call
    def update_user(self, user: User) -> User:
        self.session.add(user)
        self.session.flush()
        return user

    # Products

    @_store_call
    def find_product_by_id(self, product_id: int) -> Product | None:
        return self.session.get(Product, product_id)

    @_store_call
    def update_product_stock(self, product_id: int, delta: int) -> bool:
        statement = (
            update(Product)
            .where(Product.id == product_id, Product.stock + delta >= 0)
            .values(stock=Product.stock + delta)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(statement)
        return result.rowcount == 1

    # Orders

    @_store_call
    def create_order_with_items(
        self,
        user_id: int,
        total_price: Decimal,
        shipping_address: str,
        items: Iterable[NewOrderItem],
    ) -> Order:
        order = Order(
            user_id=user_id,
            total_price=total_price,
            shipping_address=shipping_address,
            items=[
                OrderItem(product_id=item.product_id, quantity=item.quantity, price=item.price)
                for item in items
            ],
        )
        self.session.add(order)
        self.session.flush()
        return order

    def _orders_with_items(self):
        return Order.query.options(selectinload(Order.items).selectinload(OrderItem.product))

    @_store_call
    def find_orders_by_user(self, user_id: int) -> list[Order]:
        return (
            self._orders_with_items()
            .filter(Order.user_id == user_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .all()
        )

    @_store_call
    def find_order_by_id(self, order_id: int) -> Order | None:
        return self._orders_with_items().filter(Order.id == order_id).first()

    # Verification tokens

    @_store_call
    def create_verification_token(
        self,
        user_id: int,
        email: str,
        token: str,
        token_type: str,
        expires_at: datetime,
    ) -> VerificationToken:
        record = VerificationToken(
            user_id=user_id,
            email=email,
            token=token,
            token_type=token_type,
            expires_at=expires_at,
        )
        self.session.add(record)
        self.session.flush()
        return record

    @_store_call
    def find_verification_token(self, token: str) -> VerificationToken | None:
        return VerificationToken.query.filter_by(token=token).first()

    @_store_call
    def find_latest_token(self, user_id: int, token_type: str) -> VerificationToken | None:
        return (
            VerificationToken.query.filter_by(user_id=user_id, token_type=token_type)
            .order_by(VerificationToken.created_at.desc(), VerificationToken.id.desc())
            .first()
        )

    @_store_call
    def mark_token_used(self, token_id: int, used_at: datetime) -> bool:
        statement = (
            update(VerificationToken)
            .where(VerificationToken.id == token_id, VerificationToken.is_used.is_(False))
            .values(is_used=True, used_at=used_at)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(statement)
        return result.rowcount == 1

    @_store_call
    def delete_unused_tokens(self, user_id: int, token_type: str) -> int:
        stale_tokens = VerificationToken.query.filter(
            VerificationToken.user_id == user_id,
            VerificationToken.token_type == token_type,
            VerificationToken.is_used.is_(False),
        ).all()

        for record in stale_tokens:
            self.session.delete(record)
        self.session.flush()
        return len(stale_tokens)
