# Overview: Flask extension instances and accessors for app-lifetime clients.

from flask import current_app
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()

PAYMENT_GATEWAY_KEY = "orderdesk.payment_gateway"
MAILER_KEY = "orderdesk.mailer"


def get_payment_gateway():
    """Payment gateway built once by create_app()."""
    return current_app.extensions[PAYMENT_GATEWAY_KEY]


def get_mailer():
    """Confirmation mailer built once by create_app()."""
    return current_app.extensions[MAILER_KEY]
