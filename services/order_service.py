"""Order placement.

Placing an order runs in two phases. A pre-check reads every product,
verifies stock and snapshots prices. The commit phase then creates the order
and decrements stock inside a single transaction, using a guarded update so
that a concurrent order which consumed the stock after the pre-check makes
this one fail instead of driving stock negative.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Sequence

from flask import current_app

from models import Order
from services.errors import (
    ForbiddenError,
    InsufficientStockError,
    NotFoundError,
    StoreUnavailable,
    ValidationError,
)
from storage.abstract_repository import AbstractRepository, NewOrderItem


CENT = Decimal("0.01")


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int


@dataclass(frozen=True)
class PricedLine:
    product_id: int
    product_name: str
    quantity: int
    price: Decimal

    @property
    def subtotal(self) -> Decimal:
        return self.price * self.quantity


class OrderService:
    def __init__(
        self,
        repository: AbstractRepository,
        *,
        max_attempts: int = 3,
        require_verified_email: bool = False,
    ):
        self.repository = repository
        self.max_attempts = max(1, max_attempts)
        self.require_verified_email = require_verified_email

    def place_order(self, user_id: int, items: Iterable[CartLine], shipping_address: str) -> Order:
        lines = list(items)
        shipping_address = (shipping_address or "").strip()
        self._validate_cart(lines, shipping_address)
        self._check_customer(user_id)

        for attempt in range(1, self.max_attempts + 1):
            try:
                priced, total = self._price_cart(lines)
                return self._commit(user_id, priced, total, shipping_address)
            except StoreUnavailable:
                if attempt == self.max_attempts:
                    current_app.logger.error(
                        "Order for user %s failed after %s attempts", user_id, attempt
                    )
                    raise
                current_app.logger.warning(
                    "Order for user %s hit a store error on attempt %s; retrying",
                    user_id,
                    attempt,
                )

    def list_orders(self, user_id: int) -> list[Order]:
        return self.repository.find_orders_by_user(user_id)

    def get_order(self, user_id: int, order_id: int) -> Order:
        order = self.repository.find_order_by_id(order_id)
        if order is None:
            raise NotFoundError("Order not found.")
        if order.user_id != user_id:
            raise ForbiddenError("Not authorized to view this order.")
        return order

    def _validate_cart(self, lines: Sequence[CartLine], shipping_address: str) -> None:
        if not lines:
            raise ValidationError("Order must contain at least one item.")
        for line in lines:
            if isinstance(line.quantity, bool) or not isinstance(line.quantity, int) or line.quantity <= 0:
                raise ValidationError(f"Quantity for product {line.product_id} must be a positive integer.")
        if not shipping_address:
            raise ValidationError("Shipping address is required.")

    def _check_customer(self, user_id: int) -> None:
        user = self.repository.find_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found.")
        if self.require_verified_email and not user.is_email_verified:
            raise ForbiddenError("Please verify your email before placing orders.")

    def _price_cart(self, lines: Sequence[CartLine]) -> tuple[list[PricedLine], Decimal]:
        """Pre-check stock and snapshot prices. Demand is summed per product."""

        demand: dict[int, int] = {}
        for line in lines:
            demand[line.product_id] = demand.get(line.product_id, 0) + line.quantity

        snapshots = {}
        for product_id, requested in demand.items():
            product = self.repository.find_product_by_id(product_id)
            if product is None:
                raise NotFoundError(f"Product {product_id} not found")
            if product.stock < requested:
                raise InsufficientStockError(product.name, product.id)
            snapshots[product_id] = (product.name, Decimal(product.price))

        priced = [
            PricedLine(
                product_id=line.product_id,
                product_name=snapshots[line.product_id][0],
                quantity=line.quantity,
                price=snapshots[line.product_id][1],
            )
            for line in lines
        ]
        total = sum((line.subtotal for line in priced), Decimal("0")).quantize(CENT)
        return priced, total

    def _commit(
        self,
        user_id: int,
        priced: Sequence[PricedLine],
        total: Decimal,
        shipping_address: str,
    ) -> Order:
        with self.repository.transaction():
            order = self.repository.create_order_with_items(
                user_id=user_id,
                total_price=total,
                shipping_address=shipping_address,
                items=[NewOrderItem(line.product_id, line.quantity, line.price) for line in priced],
            )
            for line in priced:
                if not self.repository.update_product_stock(line.product_id, -line.quantity):
                    current_app.logger.info(
                        "Stock for product %s ran out before commit; rolling back order",
                        line.product_id,
                    )
                    raise InsufficientStockError(line.product_name, line.product_id)

        current_app.logger.info("Order %s placed by user %s", order.id, user_id)
        return order
