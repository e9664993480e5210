"""
Pytest fixtures for Order Desk backend tests.

Provides an in-memory database, a test client, bearer tokens for each role,
a payment gateway that verifies real Stripe signatures but fakes outbound
calls, a recording mailer, and signed webhook payload builders.
"""

import hashlib
import hmac
import json
import time
import uuid
from decimal import Decimal

import bcrypt
import pytest

from orderdesk import create_app
from orderdesk.errors import UpstreamUnavailableError
from orderdesk.extensions import db
from orderdesk.services import identity_service, order_store
from orderdesk.services.payment_gateway import CheckoutSession, PaymentGateway


WEBHOOK_SECRET = "whsec_test_secret"
ADMIN_PASSWORD = "admin-pass-123"
CHEF_PASSWORD = "chef-pass-123"
CUSTOMER_EMAIL = "diner@example.com"


def _fast_hash(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=4)).decode("utf-8")


# =============================================================================
# FAKE EXTERNAL CLIENTS
# =============================================================================

class FakePaymentGateway(PaymentGateway):
    """Real webhook verification; checkout and refund are recorded, not sent."""

    def __init__(self):
        super().__init__(None, WEBHOOK_SECRET)
        self.reset()

    def reset(self):
        self.checkout_calls = []
        self.refund_calls = []
        self.fail_refunds = False

    def create_checkout_session(self, **params):
        self.checkout_calls.append(params)
        session_id = f"cs_test_{uuid.uuid4().hex[:12]}"
        return CheckoutSession(id=session_id, url=f"https://checkout.example/{session_id}")

    def refund(self, payment_intent_id, *, amount_cents=None, idempotency_key=None):
        self.refund_calls.append({
            "payment_intent": payment_intent_id,
            "amount": amount_cents,
            "idempotency_key": idempotency_key,
        })
        if self.fail_refunds:
            raise UpstreamUnavailableError("Refund failed: card_declined")
        return f"re_{len(self.refund_calls)}"


class FakeMailer:
    def __init__(self):
        self.reset()

    def reset(self):
        self.sent = []
        self.fail = False
        self.enabled = True

    def send_order_confirmation(self, *, recipient, order_id, items, total, customer_name=None):
        if self.fail:
            raise UpstreamUnavailableError("Email provider returned 500")
        self.sent.append({"recipient": recipient, "order_id": order_id, "total": total})
        return f"msg_{len(self.sent)}"


# =============================================================================
# APP / DB
# =============================================================================

@pytest.fixture(scope='session')
def gateway():
    return FakePaymentGateway()


@pytest.fixture(scope='session')
def mailer():
    return FakeMailer()


@pytest.fixture(scope='session')
def app(gateway, mailer):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'JWT_SECRET': 'test-jwt-secret',
        'ADMIN_PASSWORD_HASH': _fast_hash(ADMIN_PASSWORD),
        'CHEF_PASSWORD_HASH': _fast_hash(CHEF_PASSWORD),
        'ALLOW_DEV_ORDERS': True,
        'PAYMENT_GATEWAY': gateway,
        'MAILER': mailer,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app, gateway, mailer):
    """Fresh data (and fresh fakes) for each test."""
    gateway.reset()
    mailer.reset()
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()


# =============================================================================
# TOKENS
# =============================================================================

def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def guest(db_session):
    """(guest_id, headers) for a fresh guest session."""
    guest_id, token = identity_service.start_guest_session()
    return guest_id, auth_headers(token)


@pytest.fixture
def customer(db_session):
    """(user, headers) for a registered customer."""
    user = identity_service.register_customer(CUSTOMER_EMAIL, "correct-horse", name="Dana")
    return user, auth_headers(identity_service.customer_token(user))


@pytest.fixture
def admin_headers(db_session):
    return auth_headers(identity_service.issue_token("admin"))


@pytest.fixture
def chef_headers(db_session):
    return auth_headers(identity_service.issue_token("chef"))


# =============================================================================
# ORDERS / WEBHOOKS
# =============================================================================

TACO = {"name": "Taco", "qty": 2, "price": 4.0, "meat_type": None, "sauce": None, "toppings": None}


@pytest.fixture
def make_order(db_session):
    """Factory that inserts a pending order directly through the store."""
    def _make(**overrides):
        fields = {
            "items": [dict(TACO)],
            "total_amount": Decimal("8.00"),
            "payment_session_id": f"cs_test_{uuid.uuid4().hex[:12]}",
            "payment_intent_id": f"pi_{uuid.uuid4().hex[:12]}",
            "customer_email": CUSTOMER_EMAIL,
            "customer_name": "Dana",
        }
        fields.update(overrides)
        return order_store.create_order(**fields)
    return _make


def checkout_completed_event(session_id="cs_test_1", *, metadata=None, amount_total=800,
                             email=CUSTOMER_EMAIL, payment_intent="pi_test_1"):
    if metadata is None:
        metadata = {
            "order_items": json.dumps([TACO]),
            "customer_name": "Dana",
            "customer_phone": "555-0100",
            "guest_id": "guest_abc",
            "user_id": "",
        }
    return {
        "id": f"evt_{uuid.uuid4().hex[:12]}",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": session_id,
                "object": "checkout.session",
                "payment_intent": payment_intent,
                "customer_email": email,
                "amount_total": amount_total,
                "metadata": metadata,
            }
        },
    }


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header for payload."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def signed_event(event: dict, secret: str = WEBHOOK_SECRET) -> tuple[bytes, str]:
    """(body, signature header) for a webhook delivery."""
    payload = json.dumps(event)
    return payload.encode("utf-8"), sign_payload(payload, secret)
