# backend/orderdesk/config.py
from __future__ import annotations
import os
from datetime import timedelta


def _env_flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///orderdesk.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bearer credentials
    JWT_SECRET = os.environ.get("JWT_SECRET", "dev-jwt-secret-change-me")
    JWT_ALGORITHM = os.environ.get("JWT_ALG", "HS256")
    GUEST_TOKEN_TTL = timedelta(days=7)
    CUSTOMER_TOKEN_TTL = timedelta(days=30)
    ADMIN_TOKEN_TTL = timedelta(hours=8)
    CHEF_TOKEN_TTL = timedelta(hours=12)

    # bcrypt hashes; staff login is disabled while unset
    ADMIN_PASSWORD_HASH = os.environ.get("ADMIN_PASSWORD_HASH")
    CHEF_PASSWORD_HASH = os.environ.get("CHEF_PASSWORD_HASH")

    # Payment processor
    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET")
    CHECKOUT_CURRENCY = os.environ.get("CHECKOUT_CURRENCY", "usd")
    APP_URL = os.environ.get("APP_URL", "http://localhost:5173")
    SANDBOX_SESSION_PREFIX = "test_"

    # Email provider
    RESEND_API_KEY = os.environ.get("RESEND_API_KEY")
    EMAIL_FROM = os.environ.get("EMAIL_FROM", "Orders <orders@example.com>")

    # Order lifecycle
    CANCEL_WINDOW_SECONDS = 120
    ALL_ORDERS_LIMIT = 500

    # Non-production test order path (POST /api/orders/dev)
    ALLOW_DEV_ORDERS = _env_flag("ALLOW_DEV_ORDERS")
