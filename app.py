"""Application factory."""

import json
import logging
import os
import sys
import uuid
from logging.handlers import RotatingFileHandler

from flask import Flask, jsonify, g, request
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_mail import Mail
from flask_migrate import Migrate
from werkzeug.exceptions import HTTPException

from config import Config, engine_options
from models import db
from routes.auth import auth_bp
from routes.orders import orders_bp
from routes.products import products_bp
from services.account_service import AccountService
from services.credentials import CredentialStore
from services.errors import ShopError
from services.notifier import build_notifier
from services.order_service import OrderService
from services.token_service import TokenIssuer
from storage.sql_repository import SQLAlchemyRepository

migrate = Migrate()
jwt = JWTManager()
mail = Mail()


def create_app(config_class: type[Config] = Config) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_class)
    app.config.setdefault(
        "SQLALCHEMY_ENGINE_OPTIONS",
        engine_options(app.config["SQLALCHEMY_DATABASE_URI"], app.config["STORE_TIMEOUT_SECONDS"]),
    )

    _configure_logging(app)

    # Core subsystems
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    mail.init_app(app)

    # CORS
    CORS(
        app,
        resources={r"/*": {"origins": app.config.get("CORS_ORIGINS", "*")}},
        supports_credentials=True,
    )

    # Rate limiting, one limiter per application so test apps do not share counters
    key_prefix = app.config.get("RATELIMIT_KEY_PREFIX") or str(uuid.uuid4())
    limiter = Limiter(
        key_func=get_remote_address,
        default_limits=[lambda: app.config.get("RATE_LIMIT", "60 per minute")],
        storage_uri=app.config.get("RATELIMIT_STORAGE_URI", "memory://"),
        headers_enabled=app.config.get("RATELIMIT_HEADERS_ENABLED", True),
        key_prefix=key_prefix,
    )
    limiter.init_app(app)
    app.config["RATELIMIT_KEY_PREFIX"] = key_prefix

    _register_services(app)

    # Blueprints
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(products_bp, url_prefix="/products")
    app.register_blueprint(orders_bp, url_prefix="/orders")

    # Health
    @app.route("/health", methods=["GET"])
    def health_check():
        return jsonify({"status": "ok"})

    # Errors
    _register_error_handlers(app)

    return app


def _register_services(app: Flask) -> None:
    """Build the repository, notifier and services once for this application."""

    repository = SQLAlchemyRepository(db)
    notifier = build_notifier(app, mail)
    credentials = CredentialStore(method=app.config.get("PASSWORD_HASH_METHOD", "scrypt"))

    app.extensions["myshop.repository"] = repository
    app.extensions["myshop.notifier"] = notifier
    app.extensions["myshop.accounts"] = AccountService(
        repository,
        notifier,
        TokenIssuer(),
        credentials,
        token_expiry_minutes=app.config["TOKEN_EXPIRY_MINUTES"],
        temporary_token_expires=app.config["JWT_TEMPORARY_TOKEN_EXPIRES"],
    )
    app.extensions["myshop.orders"] = OrderService(
        repository,
        max_attempts=app.config["ORDER_COMMIT_ATTEMPTS"],
        require_verified_email=app.config["ORDERS_REQUIRE_VERIFIED_EMAIL"],
    )


def _configure_logging(app: Flask) -> None:
    if app.debug or app.testing:
        return

    if app.config.get("LOG_TO_STDOUT"):
        handler = logging.StreamHandler(sys.stdout)
    else:
        os.makedirs("logs", exist_ok=True)
        handler = RotatingFileHandler("logs/myshop.log", maxBytes=1024 * 1024, backupCount=10)
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]")
    )
    level = getattr(logging, app.config.get("LOG_LEVEL", "INFO"), logging.INFO)
    handler.setLevel(level)
    app.logger.addHandler(handler)
    app.logger.setLevel(level)
    app.logger.info("MyShop backend startup")


def _error_payload(error: str, detail: str, request_id: str, code: str | None = None) -> dict:
    payload = {"error": error, "detail": detail, "request_id": request_id}
    if code:
        payload["code"] = code
    return payload


def _register_error_handlers(app: Flask) -> None:
    """Register JSON error handlers with request IDs."""

    @app.before_request
    def _assign_request_id():  # pragma: no cover
        g.request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

    @app.after_request
    def _add_request_id_header(response):  # pragma: no cover
        request_id = g.get("request_id")
        if request_id:
            response.headers.setdefault("X-Request-ID", request_id)
        return response

    @app.errorhandler(HTTPException)
    def _handle_http_exception(error: HTTPException):
        request_id = g.get("request_id") or str(uuid.uuid4())
        response = error.get_response()
        payload = _error_payload(
            getattr(error, "name", "Error"),
            error.description,
            request_id,
            error.kind if isinstance(error, ShopError) else None,
        )
        response.data = json.dumps(payload)
        response.content_type = "application/json"
        response.headers.setdefault("X-Request-ID", request_id)
        return response

    @app.errorhandler(Exception)
    def _handle_unexpected(error: Exception):  # pragma: no cover
        request_id = g.get("request_id") or str(uuid.uuid4())
        db.session.rollback()
        app.logger.exception("Unhandled application error", exc_info=error)
        response = jsonify(
            _error_payload("Internal Server Error", "An unexpected error occurred.", request_id)
        )
        response.status_code = 500
        response.headers.setdefault("X-Request-ID", request_id)
        return response


def _unauthorized(detail: str):
    request_id = g.get("request_id") or str(uuid.uuid4())
    response = jsonify(_error_payload("Unauthorized", detail, request_id, "auth_error"))
    response.status_code = 401
    return response


# Bearer token failures are rendered in the same JSON shape as other errors.
@jwt.unauthorized_loader
def _missing_token(reason: str):
    return _unauthorized(reason)


@jwt.invalid_token_loader
def _invalid_token(reason: str):
    return _unauthorized(reason)


@jwt.expired_token_loader
def _expired_token(jwt_header, jwt_payload):
    return _unauthorized("Token has expired.")


if __name__ == "__main__":
    application = create_app()
    application.run(host="0.0.0.0", port=int(os.environ.get("PORT", 5000)))
