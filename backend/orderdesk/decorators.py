# Overview: Request authentication decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .errors import UnauthorizedError
from .services import identity_service


def request_log_extra(**fields) -> dict:
    """Request context for log records (method, path, request id)."""
    return {
        "method": request.method,
        "path": request.path,
        "request_id": g.get("request_id"),
        **fields,
    }


def require_auth(f):
    """
    Require a valid bearer token and establish the caller.

    Sets the following Flask g attributes:
    - g.principal: the verified Principal (role, subject id, email)

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired, or unknown-type token
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = identity_service.token_from_header(request.headers.get("Authorization"))
        try:
            g.principal = identity_service.verify(token)
        except UnauthorizedError as e:
            return jsonify(e.to_dict()), e.http_status
        return f(*args, **kwargs)

    return decorated_function


def require_staff(f):
    """Require the authenticated caller to be admin or kitchen staff."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not hasattr(g, "principal"):
            return jsonify({"error": "Authentication required", "code": "UNAUTHORIZED"}), 401
        if not g.principal.is_staff:
            current_app.logger.warning(
                "staff_access_denied",
                extra=request_log_extra(role=g.principal.role),
            )
            return jsonify({"error": "Staff access required", "code": "UNAUTHORIZED"}), 403
        return f(*args, **kwargs)

    return decorated_function
