"""Authentication blueprint: registration, verification, login and password reset."""

from __future__ import annotations

from http import HTTPStatus

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import get_jwt_identity, jwt_required

from services.account_service import AccountService, AuthResult
from services.errors import AuthError
from utils.request_validation import coerce_str, parse_json_request

auth_bp = Blueprint("auth", __name__)


def _accounts() -> AccountService:
    return current_app.extensions["myshop.accounts"]


def _current_user_id() -> int:
    identity = get_jwt_identity()
    try:
        return int(identity)
    except (TypeError, ValueError):
        raise AuthError("Invalid token identity.") from None


def _text(payload: dict, key: str) -> str | None:
    return coerce_str(payload.get(key), key)


def _auth_payload(message: str, result: AuthResult, token_key: str = "access_token") -> dict:
    return {"message": message, token_key: result.access_token, "user": result.user.to_dict()}


@auth_bp.route("/register", methods=["POST"])
def register() -> tuple:
    """Register an account and send the verification email."""

    payload = parse_json_request(request)
    result = _accounts().register(
        _text(payload, "name"),
        _text(payload, "email"),
        _text(payload, "password"),
        _text(payload, "confirm_password"),
    )
    return (
        jsonify(
            _auth_payload(
                "User registered successfully. Please verify your email.",
                result,
                token_key="temp_token",
            )
        ),
        HTTPStatus.CREATED,
    )


@auth_bp.route("/verify-email", methods=["POST"])
def verify_email() -> tuple:
    payload = parse_json_request(request)
    result = _accounts().verify_email(_text(payload, "token"))
    return jsonify(_auth_payload("Email verified successfully", result)), HTTPStatus.OK


@auth_bp.route("/login", methods=["POST"])
def login() -> tuple:
    """Authenticate a user and return a JWT access token."""

    payload = parse_json_request(request)
    result = _accounts().login(_text(payload, "email"), _text(payload, "password"))
    return jsonify(_auth_payload("Login successful", result)), HTTPStatus.OK


@auth_bp.route("/me", methods=["GET"])
@jwt_required()
def me() -> tuple:
    user = _accounts().get_user(_current_user_id())
    return jsonify({"user": user.to_dict()}), HTTPStatus.OK


@auth_bp.route("/profile", methods=["PUT"])
@jwt_required()
def update_profile() -> tuple:
    payload = parse_json_request(request)
    user = _accounts().update_profile(
        _current_user_id(),
        name=_text(payload, "name"),
        phone=_text(payload, "phone"),
        address=_text(payload, "address"),
    )
    return (
        jsonify({"message": "Profile updated successfully", "user": user.to_dict()}),
        HTTPStatus.OK,
    )


@auth_bp.route("/verification-status", methods=["GET"])
@jwt_required()
def verification_status() -> tuple:
    return jsonify(_accounts().verification_status(_current_user_id())), HTTPStatus.OK


@auth_bp.route("/forgot-password", methods=["POST"])
def forgot_password() -> tuple:
    payload = parse_json_request(request)
    message = _accounts().request_password_reset(_text(payload, "email"))
    return jsonify({"message": message}), HTTPStatus.OK


@auth_bp.route("/reset-password", methods=["POST"])
def reset_password() -> tuple:
    payload = parse_json_request(request)
    user = _accounts().reset_password(
        _text(payload, "token"),
        _text(payload, "new_password"),
        _text(payload, "confirm_password"),
    )
    return (
        jsonify({"message": "Password reset successfully", "user": user.to_dict()}),
        HTTPStatus.OK,
    )


@auth_bp.route("/resend-verification-email", methods=["POST"])
def resend_verification_email() -> tuple:
    payload = parse_json_request(request)
    _accounts().resend_verification(_text(payload, "email"))
    return jsonify({"message": "Verification email has been sent"}), HTTPStatus.OK
