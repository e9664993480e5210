# Overview: Narrow wrapper around the Stripe API used by checkout, intake, and refunds.

"""
Payment Gateway

WHY: The order core needs three things from the payment processor: create a
checkout session, trust an inbound webhook, and refund a payment. Keeping
them behind one small class lets the app build a single client at startup
and lets tests substitute a fake.

Sessions whose id starts with the sandbox prefix ("test_") were created by
the non-production test order path and never touched the processor; their
refunds are simulated by the caller (see lifecycle_service).
"""

from __future__ import annotations

import json
from dataclasses import dataclass

import stripe

from ..errors import InvalidSignatureError, PayloadError, UpstreamUnavailableError


CHECKOUT_COMPLETED = "checkout.session.completed"
SIGNATURE_TOLERANCE_SECONDS = 300


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    url: str | None


class PaymentGateway:
    def __init__(
        self,
        secret_key: str | None,
        webhook_secret: str | None,
        *,
        currency: str = "usd",
        sandbox_prefix: str = "test_",
    ):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.currency = currency
        self.sandbox_prefix = sandbox_prefix

    @classmethod
    def from_config(cls, config) -> "PaymentGateway":
        return cls(
            config.get("STRIPE_SECRET_KEY"),
            config.get("STRIPE_WEBHOOK_SECRET"),
            currency=config.get("CHECKOUT_CURRENCY", "usd"),
            sandbox_prefix=config.get("SANDBOX_SESSION_PREFIX", "test_"),
        )

    def is_sandbox_session(self, session_id: str | None) -> bool:
        return bool(session_id) and session_id.startswith(self.sandbox_prefix)

    def _require_secret_key(self) -> str:
        if not self.secret_key:
            raise UpstreamUnavailableError("Payment processor is not configured")
        return self.secret_key

    # -------------------------------------------------------------------------
    # Outbound
    # -------------------------------------------------------------------------

    def create_checkout_session(
        self,
        *,
        line_items: list[dict],
        customer_email: str | None,
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSession:
        params = {
            "payment_method_types": ["card"],
            "mode": "payment",
            "line_items": line_items,
            "metadata": metadata,
            "success_url": success_url,
            "cancel_url": cancel_url,
        }
        if customer_email:
            params["customer_email"] = customer_email
        try:
            session = stripe.checkout.Session.create(api_key=self._require_secret_key(), **params)
        except stripe.StripeError as exc:
            raise UpstreamUnavailableError(f"Checkout session failed: {exc.user_message or exc}")
        return CheckoutSession(id=session["id"], url=session["url"])

    def refund(
        self,
        payment_intent_id: str,
        *,
        amount_cents: int | None = None,
        idempotency_key: str | None = None,
    ) -> str:
        """Refund a payment intent (full amount unless amount_cents is given); returns the refund id."""
        params = {"payment_intent": payment_intent_id}
        if amount_cents is not None:
            params["amount"] = amount_cents
        if idempotency_key:
            params["idempotency_key"] = idempotency_key
        try:
            refund = stripe.Refund.create(api_key=self._require_secret_key(), **params)
        except stripe.StripeError as exc:
            raise UpstreamUnavailableError(f"Refund failed: {exc.user_message or exc}")
        return refund["id"]

    # -------------------------------------------------------------------------
    # Inbound
    # -------------------------------------------------------------------------

    def verify_webhook(self, payload: bytes, signature: str | None) -> dict:
        """
        Verify the Stripe-Signature header and return the decoded event.

        Raises:
            InvalidSignatureError: no secret configured, no header, or a bad signature
            PayloadError: body is not a JSON event
        """
        if not self.webhook_secret:
            raise InvalidSignatureError("Webhook secret is not configured")
        if not signature:
            raise InvalidSignatureError("Missing Stripe-Signature header")

        try:
            body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        except UnicodeDecodeError:
            raise InvalidSignatureError("Webhook body is not UTF-8 text")
        try:
            stripe.WebhookSignature.verify_header(
                body, signature, self.webhook_secret, SIGNATURE_TOLERANCE_SECONDS
            )
        except stripe.SignatureVerificationError as exc:
            raise InvalidSignatureError(f"Webhook signature verification failed: {exc}")

        try:
            event = json.loads(body)
        except ValueError:
            raise PayloadError("Webhook body is not valid JSON")
        if not isinstance(event, dict) or "type" not in event:
            raise PayloadError("Webhook body is not an event")
        return event
