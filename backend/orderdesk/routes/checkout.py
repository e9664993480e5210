# Overview: Flask API route that starts a hosted payment checkout for a cart.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import request_log_extra, require_auth
from ..errors import OrderDeskError
from ..extensions import get_payment_gateway
from ..services import checkout_service
from ..validation import ValidationError, parse_checkout


checkout_bp = Blueprint("checkout", __name__, url_prefix="/api/checkout")


@checkout_bp.post("")
@require_auth
def create_checkout_route():
    """
    Create a checkout session for the cart.

    Request body:
        {
            "items": [{"name": "Taco", "qty": 2, "price": 4.0, "meat_type": "...", ...}],
            "customer_email": "...",   // guests only
            "customer_name": "...",
            "customer_phone": "..."
        }

    Response:
        {"session_id": "cs_...", "url": "https://checkout..."}

    The order itself is created later, by the payment webhook.
    """
    try:
        checkout = parse_checkout(request.get_json(silent=True))
        session = checkout_service.create_checkout(checkout, g.principal, get_payment_gateway())
        current_app.logger.info(
            "checkout_created",
            extra=request_log_extra(payment_session_id=session.id, item_count=len(checkout.items)),
        )
        return jsonify({"session_id": session.id, "url": session.url}), 200

    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except OrderDeskError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create checkout session", extra=request_log_extra())
        return jsonify({"error": "Internal server error"}), 500
