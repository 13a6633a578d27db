"""Products blueprint with catalog search and admin CRUD."""

from __future__ import annotations

import math
from decimal import Decimal

from flask import Blueprint, jsonify, request
from flask_jwt_extended import get_jwt_identity, jwt_required

from models import db
from models.order import OrderItem
from models.product import Product
from models.user import User
from services.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from utils.request_validation import (
    coerce_decimal,
    coerce_float,
    coerce_int,
    escape_like,
    parse_json_request,
)

products_bp = Blueprint("products", __name__)

DEFAULT_PAGE_SIZE = 12
MAX_PAGE_SIZE = 100

SORT_ORDERS = {
    "newest": (Product.created_at.desc(), Product.id.desc()),
    "price-asc": (Product.price.asc(), Product.id.asc()),
    "price-desc": (Product.price.desc(), Product.id.asc()),
    "name-asc": (Product.name.asc(), Product.id.asc()),
    "name-desc": (Product.name.desc(), Product.id.asc()),
    "popular": (Product.rating.desc(), Product.id.asc()),
}


def _require_admin() -> User:
    try:
        user_id = int(get_jwt_identity())
    except (TypeError, ValueError):
        user_id = None
    user = db.session.get(User, user_id) if user_id is not None else None
    if user is None:
        raise NotFoundError("User not found.")
    if not user.is_admin:
        raise ForbiddenError("Admin privileges required.")
    return user


def _get_product_or_404(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found.")
    return product


def _query_arg(name: str, coerce, **kwargs):
    raw = request.args.get(name)
    if raw is None or raw.strip() == "":
        return None
    return coerce(raw, name, **kwargs)


@products_bp.route("", methods=["GET"])
def search_products():
    """Return a page of products with optional filters and sorting."""

    page = _query_arg("page", coerce_int, minimum=1) or 1
    limit = _query_arg("limit", coerce_int, minimum=1) or DEFAULT_PAGE_SIZE
    limit = min(limit, MAX_PAGE_SIZE)

    query = Product.query

    keyword = (request.args.get("keyword") or "").strip()
    if keyword:
        pattern = f"%{escape_like(keyword.lower())}%"
        query = query.filter(db.func.lower(Product.name).like(pattern, escape="\\"))

    category = (request.args.get("category") or "").strip()
    if category:
        query = query.filter(Product.category == category)

    min_price = _query_arg("min_price", coerce_decimal, minimum=Decimal("0"))
    if min_price is not None:
        query = query.filter(Product.price >= min_price)

    max_price = _query_arg("max_price", coerce_decimal, minimum=Decimal("0"))
    if max_price is not None:
        query = query.filter(Product.price <= max_price)

    min_rating = _query_arg("rating", coerce_float, minimum=0, maximum=5)
    if min_rating:
        query = query.filter(Product.rating >= min_rating)

    sort_by = request.args.get("sort_by", "newest")
    if sort_by not in SORT_ORDERS:
        raise ValidationError(
            "sort_by must be one of: {}.".format(", ".join(SORT_ORDERS))
        )

    total = query.count()
    pages = math.ceil(total / limit) if total else 0
    if total and page > pages:
        raise ValidationError(f"Page {page} does not exist. Total {pages} pages.")

    products = (
        query.order_by(*SORT_ORDERS[sort_by])
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return jsonify(
        {
            "products": [product.to_dict() for product in products],
            "pagination": {
                "total": total,
                "page": page,
                "limit": limit,
                "pages": pages,
                "has_next_page": page < pages,
                "has_prev_page": page > 1,
            },
        }
    )


@products_bp.route("/<int:product_id>", methods=["GET"])
def get_product(product_id: int):
    return jsonify(_get_product_or_404(product_id).to_dict())


def _apply_product_payload(product: Product, data: dict, partial: bool) -> None:
    if not partial:
        missing = [field for field in ("name", "price") if data.get(field) in (None, "")]
        if missing:
            raise ValidationError("Missing required fields: {}.".format(", ".join(missing)))

    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("name must not be empty.")
        product.name = name
    if "price" in data:
        product.price = coerce_decimal(data.get("price"), "price", minimum=Decimal("0")).quantize(
            Decimal("0.01")
        )
    if "stock" in data or not partial:
        product.stock = coerce_int(data.get("stock", 0), "stock", minimum=0)
    if "rating" in data:
        product.rating = coerce_float(data.get("rating"), "rating", minimum=0, maximum=5)
    for field in ("description", "image", "category"):
        if field in data:
            setattr(product, field, data.get(field))


@products_bp.route("", methods=["POST"])
@jwt_required()
def create_product():
    """Create a product. Admins only."""

    _require_admin()
    data = parse_json_request(request)

    product = Product()
    _apply_product_payload(product, data, partial=False)
    db.session.add(product)
    db.session.commit()

    return jsonify(product.to_dict()), 201


@products_bp.route("/<int:product_id>", methods=["PUT"])
@jwt_required()
def update_product(product_id: int):
    _require_admin()
    product = _get_product_or_404(product_id)

    data = parse_json_request(request)
    _apply_product_payload(product, data, partial=True)
    db.session.commit()

    return jsonify(product.to_dict())


@products_bp.route("/<int:product_id>", methods=["DELETE"])
@jwt_required()
def delete_product(product_id: int):
    _require_admin()
    product = _get_product_or_404(product_id)

    if OrderItem.query.filter_by(product_id=product.id).first() is not None:
        raise ConflictError("Product is referenced by existing orders.")

    db.session.delete(product)
    db.session.commit()
    return jsonify({"message": "Product deleted successfully"})
