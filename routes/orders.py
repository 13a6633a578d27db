"""Orders blueprint: place an order and read the caller's orders."""

from __future__ import annotations

from http import HTTPStatus

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import get_jwt_identity, jwt_required

from services.errors import AuthError, ValidationError
from services.order_service import CartLine, OrderService
from utils.request_validation import coerce_int, coerce_str, parse_json_request

orders_bp = Blueprint("orders", __name__)


def _orders() -> OrderService:
    return current_app.extensions["myshop.orders"]


def _current_user_id() -> int:
    identity = get_jwt_identity()
    try:
        return int(identity)
    except (TypeError, ValueError):
        raise AuthError("Invalid token identity.") from None


def _parse_cart(raw_items) -> list[CartLine]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list.")

    lines = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object.")
        lines.append(
            CartLine(
                product_id=coerce_int(raw.get("product_id"), f"items[{index}].product_id", minimum=1),
                quantity=coerce_int(raw.get("quantity"), f"items[{index}].quantity", minimum=1),
            )
        )
    return lines


@orders_bp.route("", methods=["POST"])
@jwt_required()
def create_order():
    """Place an order for the authenticated user."""

    payload = parse_json_request(request)
    order = _orders().place_order(
        _current_user_id(),
        _parse_cart(payload.get("items")),
        coerce_str(payload.get("shipping_address"), "shipping_address"),
    )
    return (
        jsonify({"message": "Order created successfully", "order": order.to_dict()}),
        HTTPStatus.CREATED,
    )


@orders_bp.route("", methods=["GET"])
@jwt_required()
def list_orders():
    orders = _orders().list_orders(_current_user_id())
    return jsonify({"orders": [order.to_dict() for order in orders], "count": len(orders)})


@orders_bp.route("/<int:order_id>", methods=["GET"])
@jwt_required()
def get_order(order_id: int):
    order = _orders().get_order(_current_user_id(), order_id)
    return jsonify(order.to_dict())
