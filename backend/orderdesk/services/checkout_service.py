# Overview: Builds a payment-processor checkout session from a validated cart.

from __future__ import annotations

import re

from flask import current_app

from ..errors import UnauthorizedError
from ..validation import CartItem, CheckoutRequest, ValidationError
from .identity_service import ROLE_CUSTOMER, Principal
from .metadata_codec import encode_items_metadata
from .payment_gateway import CheckoutSession, PaymentGateway


_HTTP_URL = re.compile(r"^https?://", re.IGNORECASE)


def build_line_item(item: CartItem, currency: str) -> dict:
    description = None
    if item.meat_type:
        description = item.meat_type + (f" with {item.sauce}" if item.sauce else "")

    product_data = {"name": item.name}
    if description:
        product_data["description"] = description
    if item.image and _HTTP_URL.match(item.image):
        product_data["images"] = [item.image]

    return {
        "price_data": {
            "currency": currency,
            "product_data": product_data,
            # Processor amounts are integer cents
            "unit_amount": int((item.price * 100).to_integral_value()),
        },
        "quantity": item.qty,
    }


def build_metadata(request: CheckoutRequest, principal: Principal) -> dict[str, str]:
    metadata = {
        "customer_name": request.customer_name,
        "customer_phone": request.customer_phone,
        "guest_id": principal.guest_id or "",
        "user_id": str(principal.user_id) if principal.user_id is not None else "",
    }
    metadata.update(encode_items_metadata([item.to_order_item() for item in request.items]))
    return metadata


def create_checkout(request: CheckoutRequest, principal: Principal, gateway: PaymentGateway) -> CheckoutSession:
    """
    Start a hosted checkout for the cart.

    Customers pay with their account email; guests must supply one so the
    order can be looked up and self-cancelled.
    """
    if principal.is_staff:
        raise UnauthorizedError("Staff credentials cannot place orders", forbidden=True)

    email = principal.email if principal.role == ROLE_CUSTOMER else request.customer_email
    if not email:
        raise ValidationError("customer_email is required")

    app_url = current_app.config["APP_URL"].rstrip("/")
    return gateway.create_checkout_session(
        line_items=[build_line_item(item, gateway.currency) for item in request.items],
        customer_email=email,
        metadata=build_metadata(request, principal),
        success_url=f"{app_url}/order-success?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{app_url}/menu",
    )
