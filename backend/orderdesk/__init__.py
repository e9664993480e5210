# backend/orderdesk/__init__.py
import uuid

from flask import Flask, g, request

from .config import Config
from .extensions import MAILER_KEY, PAYMENT_GATEWAY_KEY, db, migrate
from .services.email_service import ResendMailer
from .services.payment_gateway import PaymentGateway


def create_app(config_overrides: dict | None = None) -> Flask:
    """
    Build the application.

    config_overrides are applied before extensions bind, so a test database
    URI takes effect. PAYMENT_GATEWAY / MAILER overrides replace the clients
    built from configuration.
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # External clients live for the process lifetime
    app.extensions[PAYMENT_GATEWAY_KEY] = (
        app.config.get("PAYMENT_GATEWAY") or PaymentGateway.from_config(app.config)
    )
    app.extensions[MAILER_KEY] = app.config.get("MAILER") or ResendMailer.from_config(app.config)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.orders import orders_bp
    from .routes.checkout import checkout_bp
    from .routes.webhooks import webhooks_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(checkout_bp)
    app.register_blueprint(webhooks_bp)

    @app.before_request
    def assign_request_id():
        g.request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex

    @app.after_request
    def add_response_headers(response):
        response.headers["X-Request-Id"] = g.get("request_id", "")
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:4173",
            "http://127.0.0.1:4173",
            app.config["APP_URL"].rstrip("/"),
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type, X-Dev-Order, X-Request-Id"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
