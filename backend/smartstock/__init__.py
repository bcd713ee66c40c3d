# backend/smartstock/__init__.py
import time

from flask import Flask, current_app, g, request
from werkzeug.exceptions import HTTPException

from .config import Config, validate_config
from .errors import Fatal, InventoryError
from .extensions import db, migrate
from .responses import error_response, fail


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(InventoryError)
    def handle_inventory_error(exc: InventoryError):
        if exc.status_code >= 500:
            current_app.logger.error(
                "%s on %s %s: %s", exc.kind, request.method, request.path, exc.message
            )
        return error_response(exc)

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        # Routing 404/405, malformed JSON, etc.
        return fail(exc.description or exc.name, exc.name.replace(" ", ""), exc.code or 500)

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        current_app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        message = str(exc) if current_app.config.get("DEV_MODE") else "Internal server error"
        return error_response(Fatal(message))


def create_app(overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)
    validate_config(app.config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401
    from .services.concurrency import install_sqlite_pragmas

    with app.app_context():
        install_sqlite_pragmas(db.engine)

    @app.before_request
    def start_request_deadline():
        g.deadline = time.monotonic() + current_app.config["REQUEST_DEADLINE_MS"] / 1000.0

    # Register blueprints
    from .routes.auth import auth_bp
    from .routes.products import products_bp
    from .routes.sales import sales_bp
    from .routes.purchases import purchases_bp
    from .routes.alerts import alerts_bp
    from .routes.analytics import analytics_bp
    from .routes.catalog import catalog_bp
    from .routes.stock import stock_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(purchases_bp)
    app.register_blueprint(alerts_bp)
    app.register_blueprint(analytics_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(stock_bp)

    _register_error_handlers(app)

    @app.get("/api/health")
    def health():
        return {"success": True, "message": "ok"}

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
