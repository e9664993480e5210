# Overview: Domain error taxonomy shared by services and routes.

"""
Order Desk error taxonomy.

Every failure the order core reports is a distinct, recoverable condition.
Routes map them to HTTP responses through ``http_status`` and ``code``;
services never swallow them.

DuplicateKeyError is the one control-flow signal: Payment Intake treats it
as "order already recorded" and acknowledges the webhook as a no-op.
"""


class OrderDeskError(Exception):
    """Base class for all order-core failures."""

    http_status = 400
    code = "ORDER_ERROR"

    def to_dict(self) -> dict:
        return {"error": str(self), "code": self.code}


class UnauthorizedError(OrderDeskError):
    """Missing, invalid, expired, or wrong-role credential."""

    http_status = 401
    code = "UNAUTHORIZED"

    def __init__(self, message: str = "Unauthorized", *, forbidden: bool = False):
        super().__init__(message)
        # A valid credential that lacks the right role/ownership is a 403.
        if forbidden:
            self.http_status = 403


class NotFoundError(OrderDeskError):
    http_status = 404
    code = "NOT_FOUND"


class InvalidTransitionError(OrderDeskError):
    """Requested status change is not allowed from the current status."""

    http_status = 409
    code = "INVALID_TRANSITION"


class AlreadyAcceptedError(InvalidTransitionError):
    """Self-service cancel attempted after the kitchen started work."""

    code = "ALREADY_ACCEPTED"


class WindowExpiredError(OrderDeskError):
    http_status = 409
    code = "WINDOW_EXPIRED"


class DuplicateKeyError(OrderDeskError):
    """An order with this payment session id already exists."""

    http_status = 409
    code = "DUPLICATE_KEY"

    def __init__(self, session_id: str):
        super().__init__(f"Order for session {session_id} already exists")
        self.session_id = session_id


class InvalidSignatureError(OrderDeskError):
    http_status = 400
    code = "INVALID_SIGNATURE"


class PayloadError(OrderDeskError):
    """Webhook payload or metadata could not be parsed."""

    http_status = 400
    code = "INVALID_PAYLOAD"


class UpstreamUnavailableError(OrderDeskError):
    """Payment processor or email provider call failed."""

    http_status = 502
    code = "UPSTREAM_UNAVAILABLE"
