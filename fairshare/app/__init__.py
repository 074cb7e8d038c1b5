"""
app/__init__.py — Flask application factory.

Pattern: create_app(config_name) creates and returns a configured Flask app.
         Nothing is initialised at import time — this enables:
           - Multiple isolated test app instances
           - Clean separation between app creation and app startup
           - `alembic upgrade head` to work without starting the full server

Responsibilities:
  1. Load configuration from config_by_name[config_name]
  2. Configure logging from LOG_LEVEL
  3. Initialise extensions (SQLAlchemy, Marshmallow) via init_app()
  4. Register all route blueprints under /api/v1
  5. Register global error handlers (AppError → JSON, Exception → 500)
  6. Register a custom JSON provider to serialise Decimal as string
     (monetary amounts are transmitted as strings, never JS numbers)

Note on model imports:
  All model classes are imported inside create_app() so that SQLAlchemy's
  metadata is populated before Alembic inspects it. They are not used
  directly here — the import side-effect is sufficient.
"""

from __future__ import annotations

import logging
import traceback
from decimal import Decimal

from flask import Flask, jsonify, request
from flask.json.provider import DefaultJSONProvider
from marshmallow import ValidationError

from fairshare.config import config_by_name, validate_production_config


# ── Custom JSON provider ───────────────────────────────────────────────────
# Flask's default JSON encoder does not handle Decimal.

class DecimalJSONProvider(DefaultJSONProvider):
    """
    Extends Flask's default JSON provider to serialise Decimal as str.

    Registered on the Flask app so that jsonify() and flask.json.dumps()
    automatically produce string amounts.

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
                     Defaults to "development".

    Returns:
        A fully configured Flask app ready to serve requests.
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
    # Import here (not at module top) to avoid circular imports.
    from fairshare.app.extensions import db, ma
    db.init_app(app)
    ma.init_app(app)

    # ── Model registration ─────────────────────────────────────────────────
    # Import all models so that SQLAlchemy's MetaData is populated.
    # Alembic needs to see these to auto-generate migrations.
    # The imports are intentionally unused by name — side effect is the point.
    with app.app_context():
        from fairshare.app.models import (  # noqa: F401
            balance,
            expense,
            expense_member,
            expense_payer,
        )

    # ── Blueprints ─────────────────────────────────────────────────────────
    _register_blueprints(app)

    # ── Error handlers ─────────────────────────────────────────────────────
    _register_error_handlers(app)
    _register_cors(app)

    return app


def _configure_logging(app: Flask) -> None:
    """
    Applies LOG_LEVEL to the Flask app logger and to the `fairshare` package
    loggers (services and transactions log through logging.getLogger(__name__)).
    """
    level = app.config.get("LOG_LEVEL", "INFO")
    app.logger.setLevel(level)
    logging.getLogger("fairshare").setLevel(level)


def _register_blueprints(app: Flask) -> None:
    """
    Registers all route blueprints under the /api/v1 prefix.

    Blueprint names match the route files in app/routes/.
    The url_prefix is set here so individual route files only specify
    the path relative to their resource (e.g. "/" and "/<group_id>/balances").
    """
    from fairshare.app.routes.allocations import allocations_bp
    from fairshare.app.routes.balances import balances_bp
    from fairshare.app.routes.expenses import expenses_bp
    from fairshare.app.routes.settlements import settlements_bp
    from fairshare.app.routes.users import users_bp

    app.register_blueprint(allocations_bp, url_prefix="/api/v1/allocations")
    # expenses_bp is registered at /api/v1 (not /api/v1/expenses) because it
    # owns BOTH /groups/<id>/expenses (create/list) AND /expenses/<id> (get/delete).
    # Registering at /api/v1/expenses would break the group-scoped paths.
    app.register_blueprint(expenses_bp,    url_prefix="/api/v1")
    app.register_blueprint(balances_bp,    url_prefix="/api/v1/groups")
    app.register_blueprint(settlements_bp, url_prefix="/api/v1/groups")
    app.register_blueprint(users_bp,       url_prefix="/api/v1/users")


def _register_error_handlers(app: Flask) -> None:
    """
    Registers global error handlers.

    Handlers:
      AppError    → structured JSON error envelope with the correct HTTP status
                    (AllocationMismatch, InvalidSplitState, TransactionConflict,
                    StorageError and DriftError are all AppError subclasses)
      ValidationError → marshmallow schema errors formatted as MISSING_FIELD /
                        INVALID_FIELD responses (400)
      HTTPException → Flask's own 404/405 passed through untouched
      Exception   → generic INTERNAL_ERROR (500); full traceback logged

    Stack traces never leave the server. Only
    {"error": {"code": "INTERNAL_ERROR", "message": "..."}} is returned;
    the traceback is written to the app logger.
    """
    from werkzeug.exceptions import HTTPException

    from fairshare.app.errors import AppError, ErrorCode

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        """
        Converts an AppError raised anywhere in the request lifecycle
        (service, ledger, route) into the standard error envelope.

        Routes never catch AppError — they let it propagate here.
        """
        if error.http_status >= 500:
            app.logger.error("%r", error)
        else:
            app.logger.info("%r", error)
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        """
        Converts marshmallow ValidationError into the standard error envelope.

        Marshmallow raises ValidationError with a messages dict keyed by field name.
        We return the FIRST error ("one error, not many").

        The error code from the ValidationError message is used directly if it
        matches a known ErrorCode constant; otherwise INVALID_FIELD is used.
        Nested errors (e.g. {"split": {"mode": [...]}}) are reported with a
        dotted field path ("split.mode").
        """
        field, raw_message = _first_validation_message(error.messages)

        known_codes = vars(ErrorCode).values()
        if raw_message in known_codes:
            code = raw_message
        elif str(raw_message).startswith("Missing data for required field"):
            code = ErrorCode.MISSING_FIELD
        else:
            code = ErrorCode.INVALID_FIELD

        response_body = {
            "error": {
                "code": code,
                "message": raw_message if raw_message not in known_codes
                else _code_to_message(code),
            }
        }
        if field is not None:
            response_body["error"]["field"] = field

        return jsonify(response_body), 400

    @app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException):
        return error

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        """
        Catches all unhandled exceptions and returns a generic 500 response.

        The full traceback is logged to the application logger. Stack traces
        NEVER leave the server in the response body.
        """
        app.logger.error(
            "Unhandled exception: %s\n%s",
            str(error),
            traceback.format_exc(),
        )
        return jsonify({
            "error": {
                "code": ErrorCode.INTERNAL_ERROR,
                "message": "An unexpected error occurred. Please try again later.",
            }
        }), 500


def _first_validation_message(messages, prefix: str | None = None) -> tuple[str | None, str]:
    """
    Walks marshmallow's messages structure depth-first and returns
    (dotted_field_path, first_message). "_schema" keys add no path segment;
    list indexes of nested items are skipped.
    """
    if isinstance(messages, dict):
        for key, value in messages.items():
            if key == "_schema":
                path = prefix
            elif isinstance(key, int):
                path = prefix
            else:
                path = f"{prefix}.{key}" if prefix else str(key)
            return _first_validation_message(value, path)
        return prefix, "Invalid input."

    if isinstance(messages, list):
        if not messages:
            return prefix, "Invalid value."
        first = messages[0]
        if isinstance(first, (dict, list)):
            return _first_validation_message(first, prefix)
        return prefix, str(first)

    return prefix, str(messages)


def _register_cors(app: Flask) -> None:
    """
    Adds CORS headers for browser-based local development.

    Enabled when DEBUG or TESTING is true so a frontend served from another
    local port can call the API.
    """

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allow_all = bool(app.config.get("DEBUG") or app.config.get("TESTING"))

        if allow_all:
            response.headers["Access-Control-Allow-Origin"] = origin if origin else "*"
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, DELETE, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type"

        return response


def _code_to_message(code: str) -> str:
    """
    Returns a human-readable default message for a known error code.
    Used when a ValidationError message IS the error code constant itself
    (e.g. INVALID_AMOUNT_PRECISION raised as ValidationError in schemas).
    """
    _messages = {
        "INVALID_AMOUNT_PRECISION": "Amount must have at most 2 decimal places.",
        "INVALID_SPLIT_MODE": "mode must be 'equal', 'shares' or 'unequal'.",
        "SPLIT_FIELD_MODE_MISMATCH": (
            "excluded is only valid for 'equal', shares for 'shares' "
            "and amounts for 'unequal'."
        ),
        "DUPLICATE_PAYER": "The same user_id appears more than once in payers.",
        "DUPLICATE_MEMBER": "The same user_id appears more than once among the members.",
    }
    return _messages.get(code, "Invalid input.")
