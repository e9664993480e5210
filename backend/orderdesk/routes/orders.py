# Overview: Flask API routes for order queries, staff transitions, and customer cancel.

# backend/orderdesk/routes/orders.py
"""
Order API Routes

- GET  /api/orders?order_id=|session_id=|guest_id=|email=|all=true
- PUT  /api/orders/<order_id>       staff action: accept, reject, advance, set_prep_time
- POST /api/orders/cancel           customer self-cancel with refund
- POST /api/orders/dev              non-production test order (guarded)

SECURITY:
- All routes require a bearer token
- Staff actions require an admin or chef token; ownership never substitutes
- Reads by guest id / email / order id are limited to the caller's own orders;
  a payment session id is accepted from any caller (order-success page)
- The acting role is taken from the verified token, never from the body
"""

import time
import uuid

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import request_log_extra, require_auth, require_staff
from ..errors import NotFoundError, OrderDeskError
from ..extensions import get_payment_gateway
from ..services import lifecycle_service, order_store
from ..services.identity_service import ROLE_CUSTOMER
from ..validation import (
    AcceptOrder,
    AdvanceOrder,
    RejectOrder,
    SetPrepTime,
    ValidationError,
    parse_customer_cancel,
    parse_dev_order,
    parse_order_query,
    parse_staff_action,
)


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.get("")
@require_auth
def query_orders_route():
    """
    Look up orders by exactly one selector.

    order_id and session_id return {"order": {...}}; the others return
    {"orders": [...], "count": n}, newest first.

    Error responses:
        400: zero or several selectors
        401: not authenticated
        403: not the caller's order(s), or all=true without a staff token
        404: order_id / session_id does not resolve
    """
    try:
        query = parse_order_query(request.args)
        orders = order_store.query_orders(query, g.principal)

        if query.kind in ("order_id", "session_id"):
            if not orders:
                raise NotFoundError("Order not found")
            return jsonify({"order": orders[0].to_dict()}), 200

        return jsonify({
            "orders": [order.to_dict() for order in orders],
            "count": len(orders),
        }), 200

    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except OrderDeskError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to query orders", extra=request_log_extra())
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.put("/<order_id>")
@require_auth
@require_staff
def staff_action_route(order_id: str):
    """
    Apply one staff action to an order.

    Request body (one of):
        {"action": "accept", "prep_time_minutes": 20}
        {"action": "reject", "note": "Out of stock"}
        {"action": "advance", "to_status": "preparing"}
        {"action": "set_prep_time", "prep_time_minutes": 10}

    Error responses:
        400: malformed action
        403: caller is not staff
        404: unknown order
        409: transition not allowed from the current status
    """
    try:
        action = parse_staff_action(request.get_json(silent=True))
        principal = g.principal

        if isinstance(action, AcceptOrder):
            order = lifecycle_service.accept(order_id, principal, prep_time_minutes=action.prep_time_minutes)
        elif isinstance(action, RejectOrder):
            order = lifecycle_service.reject(order_id, principal, note=action.note)
        elif isinstance(action, AdvanceOrder):
            order = lifecycle_service.advance(order_id, principal, to_status=action.to_status)
        elif isinstance(action, SetPrepTime):
            order = lifecycle_service.set_prep_time(order_id, principal, action.prep_time_minutes)
        else:
            raise ValidationError("Unsupported action")

        current_app.logger.info(
            "order_updated",
            extra=request_log_extra(order_id=order_id, action=type(action).__name__, status=order.status),
        )
        return jsonify({"order": order.to_dict()}), 200

    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except OrderDeskError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update order", extra=request_log_extra(order_id=order_id))
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/cancel")
@require_auth
def customer_cancel_route():
    """
    Cancel one's own order within 2 minutes of placing it; refunds the payment.

    Request body:
        {"session_id": "cs_...", "customer_email": "guest@example.com"}
        (order_id may be given instead of session_id; customer tokens use
        the account email and ignore customer_email)

    Error responses:
        403: email does not match the order, or a staff token
        404: unknown order
        409: window expired, already accepted, or already cancelled
        502: refund failed; the order is unchanged
    """
    try:
        cancel = parse_customer_cancel(request.get_json(silent=True))
        order = lifecycle_service.customer_cancel(
            g.principal,
            get_payment_gateway(),
            session_id=cancel.session_id,
            order_id=cancel.order_id,
            customer_email=cancel.customer_email,
        )
        return jsonify({
            "order": order.to_dict(),
            "refund_id": order.refund_id,
            "message": "Order cancelled and refunded",
        }), 200

    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except OrderDeskError as e:
        current_app.logger.info(
            "order_cancel_refused",
            extra=request_log_extra(code=e.code),
        )
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to cancel order", extra=request_log_extra())
        return jsonify({"error": "Internal server error"}), 500


def _sandbox_session_id() -> str:
    prefix = current_app.config["SANDBOX_SESSION_PREFIX"]
    return f"{prefix}{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


@orders_bp.post("/dev")
@require_auth
def dev_order_route():
    """
    Create a pending order without a payment (local testing only).

    Enabled only when ALLOW_DEV_ORDERS is set and the request carries
    X-Dev-Order: true; otherwise the route answers 404. The session id gets
    the sandbox prefix, so a later self-cancel simulates the refund.
    """
    if not current_app.config["ALLOW_DEV_ORDERS"] or request.headers.get("X-Dev-Order") != "true":
        return jsonify({"error": "Not found", "code": "NOT_FOUND"}), 404

    try:
        data = parse_dev_order(request.get_json(silent=True))
        principal = g.principal
        if principal.is_staff:
            raise ValidationError("Test orders are placed with a guest or customer token")

        email = principal.email if principal.role == ROLE_CUSTOMER else data.customer_email
        order = order_store.create_order(
            items=[item.to_order_item() for item in data.items],
            total_amount=data.total_amount,
            payment_session_id=_sandbox_session_id(),
            customer_email=email or None,
            customer_name=data.customer_name,
            customer_phone=data.customer_phone,
            guest_id=principal.guest_id or data.guest_id,
            user_id=principal.user_id,
            note="Test order created, awaiting approval",
        )
        return jsonify({"order": order.to_dict()}), 201

    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except OrderDeskError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create test order", extra=request_log_extra())
        return jsonify({"error": "Internal server error"}), 500
