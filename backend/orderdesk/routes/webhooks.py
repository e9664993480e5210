# Overview: Payment processor webhook endpoint; hands verified events to intake.

# backend/orderdesk/routes/webhooks.py
"""
Stripe webhook route

POST /api/stripe/webhook

Acknowledgement rules:
- 200 once the signature verifies and the order exists, new or pre-existing,
  even if the confirmation email failed
- 400 for a bad signature or malformed metadata; these will never succeed on
  retry, so the processor should stop
- 500 only for unexpected failures, which the processor may retry safely
  because creation is keyed by session id
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import request_log_extra
from ..errors import InvalidSignatureError, OrderDeskError, PayloadError
from ..extensions import get_mailer, get_payment_gateway
from ..services import intake_service
from ..validation import ValidationError


webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/api/stripe")


@webhooks_bp.post("/webhook")
def stripe_webhook_route():
    try:
        result = intake_service.handle_webhook(
            request.get_data(),
            request.headers.get("Stripe-Signature"),
            gateway=get_payment_gateway(),
            mailer=get_mailer(),
        )
        return jsonify(result.to_dict()), 200

    except InvalidSignatureError as e:
        current_app.logger.warning("webhook_signature_failed", extra=request_log_extra(reason=str(e)))
        return jsonify(e.to_dict()), 400
    except PayloadError as e:
        current_app.logger.warning("webhook_payload_invalid", extra=request_log_extra(reason=str(e)))
        return jsonify(e.to_dict()), 400
    except ValidationError as e:
        # Session carries no customer linkage
        current_app.logger.warning("webhook_payload_invalid", extra=request_log_extra(reason=str(e)))
        return jsonify(e.to_dict()), 400
    except OrderDeskError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Webhook processing failed", extra=request_log_extra())
        return jsonify({"error": "Internal server error"}), 500
