# Overview: Flask API routes for issuing and checking bearer credentials.

# backend/orderdesk/routes/auth.py
"""
Authentication API routes

- POST /api/auth/guest        start an anonymous guest session (7 days)
- POST /api/auth/register     create a customer account (30 days)
- POST /api/auth/login        customer email/password login
- POST /api/auth/convert      guest -> customer; links the guest's orders
- POST /api/auth/admin-login  admin password login (8 hours)
- POST /api/auth/chef-login   kitchen password login (12 hours)
- GET  /api/auth/verify       check a presented token

SECURITY:
- Passwords are bcrypt hashed; staff passwords are compared against
  configured hashes, never stored in the database
- Tokens are signed and carry their own expiry
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import request_log_extra, require_auth
from ..errors import OrderDeskError, UnauthorizedError
from ..services import identity_service
from ..services.identity_service import ROLE_GUEST
from ..validation import ValidationError


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


@auth_bp.post("/guest")
def guest_session_route():
    """Start a guest session; the client keeps the token for order tracking."""
    guest_id, token = identity_service.start_guest_session()
    return jsonify({"guest_id": guest_id, "token": token}), 201


@auth_bp.post("/register")
def register_route():
    """
    Create a customer account.

    Request body:
        {"email": "...", "password": "...", "name": "...", "phone": "..."}
    """
    try:
        data = _json_body()
        user = identity_service.register_customer(
            data.get("email"),
            data.get("password"),
            name=data.get("name") or "",
            phone=data.get("phone") or "",
        )
        return jsonify({
            "token": identity_service.customer_token(user),
            "user": user.to_dict(),
        }), 201

    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except Exception:
        current_app.logger.exception("Failed to register customer", extra=request_log_extra())
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login")
def login_route():
    try:
        data = _json_body()
        user = identity_service.authenticate_customer(data.get("email"), data.get("password"))
        return jsonify({
            "token": identity_service.customer_token(user),
            "user": user.to_dict(),
        }), 200

    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except UnauthorizedError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to log in customer", extra=request_log_extra())
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/convert")
@require_auth
def convert_guest_route():
    """
    Turn the calling guest session into a customer account.

    Every order placed under the guest id is linked to the new user.

    Response:
        {"token": "...", "user": {...}, "linked_orders": 3}
    """
    try:
        if g.principal.role != ROLE_GUEST:
            raise UnauthorizedError("Only guest sessions can be converted", forbidden=True)

        data = _json_body()
        user, linked = identity_service.convert_guest(
            g.principal.guest_id,
            data.get("email"),
            data.get("password"),
            name=data.get("name") or "",
            phone=data.get("phone") or "",
        )
        current_app.logger.info(
            "guest_converted",
            extra=request_log_extra(user_id=user.id, linked_orders=linked),
        )
        return jsonify({
            "token": identity_service.customer_token(user),
            "user": user.to_dict(),
            "linked_orders": linked,
        }), 201

    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except OrderDeskError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to convert guest", extra=request_log_extra())
        return jsonify({"error": "Internal server error"}), 500


def _staff_login(role: str):
    try:
        data = _json_body()
        token = identity_service.authenticate_staff(role, data.get("password"))
        return jsonify({"token": token, "role": role}), 200

    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except UnauthorizedError as e:
        current_app.logger.warning("staff_login_failed", extra=request_log_extra(role=role))
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed staff login", extra=request_log_extra(role=role))
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/admin-login")
def admin_login_route():
    return _staff_login("admin")


@auth_bp.post("/chef-login")
def chef_login_route():
    return _staff_login("chef")


@auth_bp.get("/verify")
def verify_route():
    """
    Check the Authorization header.

    Response:
        200 {"valid": true, "role": "guest", "guest_id": "...", ...}
        401 {"valid": false, "error": "..."}
    """
    token = identity_service.token_from_header(request.headers.get("Authorization"))
    try:
        principal = identity_service.verify(token)
    except UnauthorizedError as e:
        return jsonify({"valid": False, "error": str(e)}), 401

    return jsonify({
        "valid": True,
        "role": principal.role,
        "guest_id": principal.guest_id,
        "user_id": principal.user_id,
        "email": principal.email,
    }), 200
