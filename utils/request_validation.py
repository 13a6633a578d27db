"""Utilities for validating incoming Flask requests."""

from __future__ import annotations

import math
from decimal import Decimal, InvalidOperation
from typing import Iterable

from flask import Request

from services.errors import ValidationError


def parse_json_request(
    req: Request,
    *,
    required_keys: Iterable[str] | None = None,
    allow_empty: bool = False,
) -> dict:
    """Return the parsed JSON body or raise a 400 error."""

    if not req.is_json:
        raise ValidationError("Request content type must be application/json.")

    data = req.get_json(silent=True)
    if data is None:
        raise ValidationError("Request JSON body is required.")

    if not isinstance(data, dict):
        raise ValidationError("Request JSON payload must be an object.")

    if not data and not allow_empty:
        raise ValidationError("Request JSON body must not be empty.")

    if required_keys:
        missing = [key for key in required_keys if not data.get(key)]
        if missing:
            raise ValidationError(
                "Missing required fields: {}.".format(", ".join(sorted(missing)))
            )

    return data


def coerce_str(value, field: str) -> str | None:
    """Return a text field unchanged. Missing values pass through as None."""

    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string.")
    return value


def escape_like(value: str, escape: str = "\\") -> str:
    """Escape LIKE wildcards so user text is matched literally."""

    return (
        value.replace(escape, escape * 2)
        .replace("%", f"{escape}%")
        .replace("_", f"{escape}_")
    )


def coerce_int(value, field: str, *, minimum: int | None = None) -> int:
    """Parse an integer field, rejecting booleans and fractional numbers."""

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer.")
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError(f"{field} must be an integer.")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer.") from None
    if minimum is not None and number < minimum:
        raise ValidationError(f"{field} must be at least {minimum}.")
    return number


def coerce_decimal(value, field: str, *, minimum: Decimal | None = None) -> Decimal:
    if isinstance(value, bool) or value in (None, ""):
        raise ValidationError(f"{field} must be numeric.")
    try:
        number = Decimal(str(value))
    except (InvalidOperation, TypeError):
        raise ValidationError(f"{field} must be numeric.") from None
    if not number.is_finite():
        raise ValidationError(f"{field} must be numeric.")
    if minimum is not None and number < minimum:
        raise ValidationError(f"{field} must be at least {minimum}.")
    return number


def coerce_float(value, field: str, *, minimum: float | None = None, maximum: float | None = None) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be numeric.")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be numeric.") from None
    if not math.isfinite(number):
        raise ValidationError(f"{field} must be numeric.")
    if minimum is not None and number < minimum:
        raise ValidationError(f"{field} must be at least {minimum}.")
    if maximum is not None and number > maximum:
        raise ValidationError(f"{field} must be at most {maximum}.")
    return number
