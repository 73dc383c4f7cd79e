# backend/inventra/__init__.py
from flask import Flask, request, jsonify
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from .config import Config
from .extensions import db, migrate
from .validation import InventraError


def _error_response(message: str, status: int, details: dict | None = None):
    return jsonify({"success": False, "error": message, "details": details or {}}), status


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(InventraError)
    def handle_inventra_error(exc: InventraError):
        if exc.status_code >= 500:
            app.logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.path, exc)
        return _error_response(str(exc), exc.status_code, exc.details)

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        return _error_response(exc.description or exc.name, exc.code or 500)

    @app.errorhandler(SQLAlchemyError)
    def handle_storage_error(exc: SQLAlchemyError):
        db.session.rollback()
        app.logger.exception("Storage failure on %s %s", request.method, request.path)
        return _error_response("Storage error", 500)

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        return _error_response("Internal server error", 500)


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp, cron_bp
    from .routes.auth import auth_bp
    from .routes.products import products_bp
    from .routes.invoices import invoices_bp
    from .routes.dashboard import dashboard_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(cron_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(invoices_bp)
    app.register_blueprint(dashboard_bp)

    register_error_handlers(app)

    allowed_origins = {
        origin.strip()
        for origin in (app.config.get("CORS_ALLOWED_ORIGINS") or "").split(",")
        if origin.strip()
    }

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
