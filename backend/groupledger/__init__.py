"""
groupledger/__init__.py — Flask application factory.

Pattern: create_app(config_name) creates and returns a configured Flask app.
         Nothing is initialised at import time, so tests can build isolated
         app instances and `alembic` can import the models without a server.

Responsibilities:
  1. Load configuration from config_by_name[config_name]
  2. Configure stdlib logging from LOG_LEVEL
  3. Initialise SQLAlchemy via init_app()
  4. Register all route blueprints under /api/v1
  5. Register global error handlers (AppError → JSON, Exception → 500)
  6. Register a custom JSON provider that serialises Decimal as string

Routes obtain a GroupLedgerService per request through ledger_service().
"""

from __future__ import annotations

import logging
from decimal import Decimal

from flask import Flask, current_app, jsonify
from flask.json.provider import DefaultJSONProvider
from marshmallow import ValidationError
from werkzeug.exceptions import HTTPException

from backend.config import config_by_name, validate_production_config

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


# ── Custom JSON provider ───────────────────────────────────────────────────
# Monetary amounts are transmitted as strings, never JSON numbers.

class DecimalJSONProvider(DefaultJSONProvider):
    """
    Extends Flask's default JSON provider to serialise Decimal as str.

    Example: Decimal("10.50") → "10.50" (not 10.5 or 10.500000001)
    """

    def default(self, o):
        if isinstance(o, Decimal):
            return str(o)
        return super().default(o)


# ── Application factory ────────────────────────────────────────────────────

def create_app(config_name: str = "development") -> Flask:
    """
    Creates and returns a configured Flask application instance.

    Args:
        config_name: One of "development", "testing", "production".
                     Resolved via config_by_name in config.py.
    """
    app = Flask(__name__)
    app.json_provider_class = DecimalJSONProvider
    app.json = DecimalJSONProvider(app)

    # ── Configuration ──────────────────────────────────────────────────────
    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)

    if config_name == "production":
        validate_production_config(app)  # raises ValueError if misconfigured

    _configure_logging(app)

    # ── Extensions ─────────────────────────────────────────────────────────
    from backend.groupledger.extensions import db
    db.init_app(app)

    # ── Model registration ─────────────────────────────────────────────────
    # Populates SQLAlchemy's MetaData; the names are unused.
    with app.app_context():
        from backend.groupledger.models import (  # noqa: F401
            expense,
            group,
            membership,
            settlement,
            split,
        )

    _register_blueprints(app)
    _register_error_handlers(app)

    logger.info("Group ledger app created with %s config", config_name)
    return app


def ledger_service():
    """
    Builds the GroupLedgerService for the current request.

    The store wraps the request-scoped db.session. The notification hook
    follows NOTIFICATIONS_ENABLED.
    """
    from backend.groupledger.extensions import db
    from backend.groupledger.services.ledger_service import GroupLedgerService
    from backend.groupledger.services.notification_service import (
        LoggingNotificationHook,
        NullNotificationHook,
    )
    from backend.groupledger.store import LedgerStore

    if current_app.config.get("NOTIFICATIONS_ENABLED", True):
        hook = LoggingNotificationHook()
    else:
        hook = NullNotificationHook()
    return GroupLedgerService(LedgerStore(db.session), hook)


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, app.config.get("LOG_LEVEL", "INFO"), logging.INFO)
    logging.basicConfig(level=level, format=_LOG_FORMAT)
    logging.getLogger("backend.groupledger").setLevel(level)
    app.logger.setLevel(level)


def _register_blueprints(app: Flask) -> None:
    """
    Registers all route blueprints under the /api/v1 prefix.

    expenses_bp and settlements_bp are registered at /api/v1 because each
    owns both group-scoped paths (/groups/<id>/...) and id paths
    (/expenses/<id>, /settlements/<id>).
    """
    from backend.groupledger.routes.balances import balances_bp
    from backend.groupledger.routes.expenses import expenses_bp
    from backend.groupledger.routes.groups import groups_bp
    from backend.groupledger.routes.settlements import settlements_bp

    app.register_blueprint(groups_bp,      url_prefix="/api/v1/groups")
    app.register_blueprint(balances_bp,    url_prefix="/api/v1/groups")
    app.register_blueprint(expenses_bp,    url_prefix="/api/v1")
    app.register_blueprint(settlements_bp, url_prefix="/api/v1")


def _first_error(messages) -> tuple[str | None, str]:
    """
    Walks a marshmallow messages structure down to its first leaf.

    Nested list errors are keyed by index, e.g.
    {"splits": {0: {"amount": ["INVALID_AMOUNT_PRECISION"]}}}; the reported
    field is the top-level key ("splits").
    """
    field = None
    node = messages
    while True:
        if isinstance(node, dict):
            if not node:
                return field, "Invalid input."
            key, node = next(iter(node.items()))
            if field is None and isinstance(key, str) and key != "_schema":
                field = key
        elif isinstance(node, list):
            if not node:
                return field, "Invalid input."
            node = node[0]
        else:
            return field, str(node)


def _register_error_handlers(app: Flask) -> None:
    """
    Registers global error handlers.

    Handlers:
      AppError        → structured JSON error envelope with its HTTP status
      ValidationError → first marshmallow error as MISSING_FIELD /
                        INVALID_FIELD / a registered code (400)
      HTTPException   → unknown route or method, in the same envelope
      Exception       → generic INTERNAL_ERROR (500); traceback logged

    Stack traces never leave the server.
    """
    from backend.groupledger.errors import AppError, ErrorCode

    known_codes = {v for k, v in vars(ErrorCode).items() if not k.startswith("_")}

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        """
        Converts an AppError raised anywhere in the request lifecycle into
        the standard error envelope. Routes never catch AppError.
        """
        if error.http_status >= 500:
            logger.error("%r", error)
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        """
        Returns the FIRST validation error only: one error, not many.

        A message that is itself a registered ErrorCode is used as the code.
        """
        field, raw_message = _first_error(error.messages)

        if raw_message in known_codes:
            code = raw_message
            message = _code_to_message(code)
        elif raw_message.startswith("Missing data for required field"):
            code = ErrorCode.MISSING_FIELD
            message = raw_message
        else:
            code = ErrorCode.INVALID_FIELD
            message = raw_message

        body = {"error": {"code": code, "message": message}}
        if field is not None:
            body["error"]["field"] = field
        return jsonify(body), 400

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        if error.code == 404:
            code = ErrorCode.ROUTE_NOT_FOUND
        elif error.code == 405:
            code = ErrorCode.METHOD_NOT_ALLOWED
        elif error.code is not None and error.code < 500:
            code = ErrorCode.INVALID_FIELD
        else:
            code = ErrorCode.INTERNAL_ERROR
        return jsonify({
            "error": {"code": code, "message": error.description},
        }), error.code or 500

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        logger.exception("Unhandled exception: %s", error)
        return jsonify({
            "error": {
                "code": ErrorCode.INTERNAL_ERROR,
                "message": "An unexpected error occurred. Please try again later.",
            }
        }), 500


def _code_to_message(code: str) -> str:
    """
    Human-readable default message for a code raised as a ValidationError
    message inside a schema.
    """
    _messages = {
        "INVALID_AMOUNT_PRECISION": "Amount must have at most 2 decimal places.",
        "INVALID_CURRENCY": "Currency must be a three-letter ISO 4217 code.",
        "INVALID_SPLIT_TYPE": "default_split_type must be 'equal' or 'custom'.",
        "INVALID_STATUS": "status must be 'pending', 'completed' or 'cancelled'.",
        "DUPLICATE_SPLIT_USER": "The same user_id appears more than once in the splits array.",
        "FUTURE_EXPENSE_DATE": "expense_date must not be in the future.",
    }
    return _messages.get(code, "Invalid input.")
