# Overview: Turns a "checkout completed" webhook into exactly one order.

"""
Payment Intake Service

WHY: The payment processor delivers webhooks at least once. Each delivery of
the same checkout session must end in the same single order and the
processor must stop retrying once that order is recorded.

ALGORITHM:
1. Verify the signature (InvalidSignatureError is final for this request).
2. Ignore event types other than checkout.session.completed.
3. Rebuild the item list from (possibly chunked) metadata; a bad chunk is a
   PayloadError for this notification only.
4. Create the order keyed by session id. DuplicateKeyError means an earlier
   delivery already did: acknowledge as deduplicated, send no email.
5. Best-effort confirmation email; failure is logged and never undoes the
   order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from ..errors import DuplicateKeyError, PayloadError, UpstreamUnavailableError
from ..models import Order
from . import order_store
from .email_service import ResendMailer
from .metadata_codec import decode_items_metadata
from .payment_gateway import CHECKOUT_COMPLETED, PaymentGateway


logger = logging.getLogger(__name__)


@dataclass
class IntakeResult:
    order: Order | None = None
    deduplicated: bool = False
    ignored: bool = False
    email_sent: bool = False

    def to_dict(self) -> dict:
        body = {"received": True}
        if self.deduplicated:
            body["deduplicated"] = True
        if self.ignored:
            body["ignored"] = True
        if self.order is not None:
            body["order_id"] = self.order.id
        return body


def normalize_item(item: dict) -> dict:
    return {
        "name": item.get("name"),
        "qty": item.get("qty") or item.get("quantity") or 1,
        "price": item.get("price"),
        "meat_type": item.get("meat_type") or item.get("meatType"),
        "sauce": item.get("sauce"),
        "toppings": item.get("toppings"),
    }


def _payment_intent_id(session: dict) -> str | None:
    intent = session.get("payment_intent")
    if isinstance(intent, dict):
        return intent.get("id")
    return intent


def _customer_email(session: dict) -> str | None:
    details = session.get("customer_details") or {}
    return session.get("customer_email") or details.get("email")


def _amount(session: dict) -> Decimal:
    cents = session.get("amount_total") or 0
    if isinstance(cents, bool) or not isinstance(cents, int) or cents < 0:
        raise PayloadError(f"Invalid amount_total: {cents!r}")
    return (Decimal(cents) / 100).quantize(Decimal("0.01"))


def record_checkout(session: dict) -> tuple[Order, bool]:
    """
    Create the order for a completed checkout session.

    Returns (order, created). created is False when the session was already
    recorded by an earlier delivery.
    """
    session_id = session.get("id")
    if not session_id:
        raise PayloadError("Checkout session has no id")

    metadata = session.get("metadata") or {}
    items = [normalize_item(item) for item in decode_items_metadata(metadata)]

    user_id = metadata.get("user_id")
    try:
        order = order_store.create_order(
            payment_session_id=session_id,
            payment_intent_id=_payment_intent_id(session),
            customer_email=_customer_email(session),
            customer_name=metadata.get("customer_name"),
            customer_phone=metadata.get("customer_phone"),
            guest_id=metadata.get("guest_id") or None,
            user_id=int(user_id) if user_id and str(user_id).isdigit() else None,
            items=items,
            total_amount=_amount(session),
        )
    except DuplicateKeyError:
        logger.info("order_deduplicated", extra={"payment_session_id": session_id})
        return order_store.get_by_session_id(session_id), False
    return order, True


def send_confirmation(order: Order, mailer: ResendMailer) -> bool:
    """Best effort; returns whether the email went out."""
    if not order.customer_email or not mailer.enabled:
        logger.info("order_email_skipped", extra={"order_id": order.id})
        return False
    try:
        message_id = mailer.send_order_confirmation(
            recipient=order.customer_email,
            order_id=order.id,
            items=order.items,
            total=order.total_amount,
            customer_name=order.customer_name,
        )
    except UpstreamUnavailableError as exc:
        logger.warning("order_email_failed", extra={"order_id": order.id, "reason": str(exc)})
        return False
    logger.info("order_email_sent", extra={"order_id": order.id, "message_id": message_id})
    return True


def handle_webhook(
    payload: bytes,
    signature: str | None,
    *,
    gateway: PaymentGateway,
    mailer: ResendMailer,
) -> IntakeResult:
    """
    Process one webhook delivery.

    Raises:
        InvalidSignatureError: authenticity check failed
        PayloadError: event or metadata malformed
    """
    event = gateway.verify_webhook(payload, signature)

    if event.get("type") != CHECKOUT_COMPLETED:
        logger.info("webhook_event_ignored", extra={"event_type": event.get("type")})
        return IntakeResult(ignored=True)

    session = (event.get("data") or {}).get("object")
    if not isinstance(session, dict):
        raise PayloadError("Event has no checkout session")

    order, created = record_checkout(session)
    if not created:
        return IntakeResult(order=order, deduplicated=True)

    return IntakeResult(order=order, email_sent=send_confirmation(order, mailer))
