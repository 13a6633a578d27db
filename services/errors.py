"""Domain errors raised by the service layer.

Each error is a werkzeug ``HTTPException`` so route handlers can let it
propagate and the application error handler renders it as JSON. ``kind`` is
a stable machine-readable tag that distinguishes errors sharing a status
code (an expired token and a used token are both 400s).
"""

from __future__ import annotations

from werkzeug.exceptions import (
    BadRequest,
    Conflict,
    Forbidden,
    HTTPException,
    NotFound,
    ServiceUnavailable,
    Unauthorized,
)


class ShopError(HTTPException):
    """Base class for all storefront domain errors."""

    kind = "error"

    def __init__(self, description: str | None = None):
        super().__init__(description)


class ValidationError(ShopError, BadRequest):
    kind = "validation_error"


class ConflictError(ShopError, Conflict):
    kind = "conflict"


class NotFoundError(ShopError, NotFound):
    kind = "not_found"


class ForbiddenError(ShopError, Forbidden):
    kind = "forbidden"


class AuthError(ShopError, Unauthorized):
    kind = "auth_error"


class ExpiredError(ShopError, BadRequest):
    kind = "token_expired"


class AlreadyUsedError(ShopError, BadRequest):
    kind = "token_already_used"


class InsufficientStockError(ShopError, BadRequest):
    kind = "insufficient_stock"

    def __init__(self, product_name: str, product_id: int | None = None):
        super().__init__(f"Insufficient stock for {product_name}")
        self.product_name = product_name
        self.product_id = product_id


class StoreUnavailable(ShopError, ServiceUnavailable):
    """The data store failed or timed out. The underlying error is never exposed."""

    kind = "store_unavailable"

    def __init__(self, description: str | None = None):
        super().__init__(description or "The service is temporarily unavailable. Please retry.")


__all__ = [
    "ShopError",
    "ValidationError",
    "ConflictError",
    "NotFoundError",
    "ForbiddenError",
    "AuthError",
    "ExpiredError",
    "AlreadyUsedError",
    "InsufficientStockError",
    "StoreUnavailable",
]
