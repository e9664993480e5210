# Overview: Order status state machine; staff transitions and customer self-cancel.

"""
Order Lifecycle Service

================================================================================
PURPOSE: Enforce pending -> received -> preparing -> ready -> completed
================================================================================

STATE MACHINE:
    pending  -> received   (staff accepts)
    pending  -> cancelled  (staff rejects, customer self-cancel, auto-reject while paused)
    received -> preparing  (staff advances)
    received -> cancelled  (staff rejects, customer self-cancel within window)
    preparing -> ready -> completed

    completed and cancelled are terminal.

RULES:
1. One step at a time; no skipping (pending -> preparing) and no reversals.
2. Staff (admin, chef) drive every transition except self-cancel.
3. estimated_ready_at is set on acceptance and re-based to "now" whenever
   prep time is edited; it never moves relative to the original acceptance.
4. Self-cancel is allowed for 2 minutes after created_at (wall clock, never
   extended by later updates), only from pending or received, and only for
   the caller whose email matches the order.
5. A transition commits status, history entry, and derived fields together,
   or not at all.

CONCURRENCY:
Each transition re-reads the order under a row lock and checks its current
status. Order.version_id makes a concurrent writer's commit fail with
StaleDataError; run_with_retry re-runs the transition, which then sees the
new status and raises InvalidTransitionError instead of applying twice.
================================================================================
"""

from __future__ import annotations

import logging
from datetime import timedelta

from flask import current_app

from ..errors import (
    AlreadyAcceptedError,
    InvalidTransitionError,
    NotFoundError,
    OrderDeskError,
    UnauthorizedError,
    UpstreamUnavailableError,
    WindowExpiredError,
)
from ..extensions import db
from ..models import Order
from ..models.orders import (
    DEFAULT_PREP_TIME_MINUTES,
    ORDER_STATUSES,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_PENDING,
    STATUS_PREPARING,
    STATUS_READY,
    STATUS_RECEIVED,
)
from ..time_utils import utcnow
from ..validation import ValidationError
from .concurrency import lock_for_update, run_with_retry
from .identity_service import ROLE_CUSTOMER, CUSTOMER_ROLES, Principal
from .payment_gateway import PaymentGateway


logger = logging.getLogger(__name__)


TRANSITIONS = {
    STATUS_PENDING: frozenset({STATUS_RECEIVED, STATUS_CANCELLED}),
    STATUS_RECEIVED: frozenset({STATUS_PREPARING, STATUS_CANCELLED}),
    STATUS_PREPARING: frozenset({STATUS_READY}),
    STATUS_READY: frozenset({STATUS_COMPLETED}),
    STATUS_COMPLETED: frozenset(),
    STATUS_CANCELLED: frozenset(),
}

# Single forward step taken by advance()
NEXT_STEP = {
    STATUS_RECEIVED: STATUS_PREPARING,
    STATUS_PREPARING: STATUS_READY,
    STATUS_READY: STATUS_COMPLETED,
}

SELF_CANCELLABLE = frozenset({STATUS_PENDING, STATUS_RECEIVED})


def validate_status(status: str) -> None:
    if status not in ORDER_STATUSES:
        raise InvalidTransitionError(
            f"Invalid status '{status}'. Must be one of: {', '.join(ORDER_STATUSES)}"
        )


def can_transition(from_status: str, to_status: str) -> bool:
    validate_status(from_status)
    validate_status(to_status)
    return to_status in TRANSITIONS[from_status]


def _require_staff(principal: Principal) -> None:
    if not principal.is_staff:
        raise UnauthorizedError("Staff access required", forbidden=True)


def _load_for_update(*, order_id: str | None = None, session_id: str | None = None) -> Order:
    query = db.session.query(Order)
    if order_id:
        query = query.filter(Order.id == order_id)
    else:
        query = query.filter(Order.payment_session_id == session_id)
    order = lock_for_update(query).first()
    if order is None:
        raise NotFoundError("Order not found")
    return order


def _move(order: Order, to_status: str, now, note: str | None = None) -> None:
    if not can_transition(order.status, to_status):
        raise InvalidTransitionError(f"Cannot move order from {order.status} to {to_status}")
    order.status = to_status
    order.updated_at = now
    order.record_status(to_status, now, note)


def _mutate(mutation, **locator) -> Order:
    """
    Load one order under lock, apply mutation(order, now), and commit.

    Domain errors roll back the session so nothing from a refused
    transition is left pending.
    """
    def _op():
        try:
            order = _load_for_update(**locator)
            mutation(order, utcnow())
        except OrderDeskError:
            db.session.rollback()
            raise
        db.session.commit()
        return order

    return run_with_retry(_op)


# =============================================================================
# STAFF TRANSITIONS
# =============================================================================

def accept(order_id: str, principal: Principal, *, prep_time_minutes: int | None = None) -> Order:
    """
    Accept a pending order (pending -> received).

    estimated_ready_at = now + prep time, where prep time is the override if
    given, else the order's own prep_time_minutes (default 15).

    Raises:
        UnauthorizedError: caller is not staff
        NotFoundError: unknown order
        InvalidTransitionError: order is not pending
    """
    _require_staff(principal)
    if prep_time_minutes is not None and prep_time_minutes <= 0:
        raise ValidationError("prep_time_minutes must be a positive integer")

    def mutation(order: Order, now):
        if order.status != STATUS_PENDING:
            raise InvalidTransitionError(f"Order is {order.status}; only pending orders can be accepted")
        prep = prep_time_minutes or order.prep_time_minutes or DEFAULT_PREP_TIME_MINUTES
        order.prep_time_minutes = prep
        order.estimated_ready_at = now + timedelta(minutes=prep)
        _move(order, STATUS_RECEIVED, now, f"Accepted by {principal.role}")

    return _mutate(mutation, order_id=order_id)


def reject(order_id: str, principal: Principal, *, note: str | None = None) -> Order:
    """
    Reject an order (pending|received -> cancelled).

    No refund is issued here; a paid order's history note says so.
    """
    _require_staff(principal)

    def mutation(order: Order, now):
        message = note or f"Rejected by {principal.role}"
        if order.payment_intent_id and not order.refund_id:
            message = f"{message} (refund not issued)"
        _move(order, STATUS_CANCELLED, now, message)

    return _mutate(mutation, order_id=order_id)


def advance(order_id: str, principal: Principal, *, to_status: str | None = None) -> Order:
    """
    Move one step forward: received -> preparing -> ready -> completed.

    If to_status is given it must be exactly the next step; anything else
    (a skip, a reversal, a repeat) is an InvalidTransitionError.
    """
    _require_staff(principal)
    if to_status is not None:
        validate_status(to_status)

    def mutation(order: Order, now):
        next_status = NEXT_STEP.get(order.status)
        if next_status is None:
            raise InvalidTransitionError(f"Order is {order.status}; it cannot be advanced")
        if to_status is not None and to_status != next_status:
            raise InvalidTransitionError(
                f"Cannot move order from {order.status} to {to_status}; next step is {next_status}"
            )
        _move(order, next_status, now)

    return _mutate(mutation, order_id=order_id)


def set_prep_time(order_id: str, principal: Principal, prep_time_minutes: int) -> Order:
    """
    Change prep time on a non-terminal order.

    An already-accepted order gets estimated_ready_at = now + new prep time.
    No history entry is added; status does not change.
    """
    _require_staff(principal)
    if isinstance(prep_time_minutes, bool) or not isinstance(prep_time_minutes, int) or prep_time_minutes <= 0:
        raise ValidationError("prep_time_minutes must be a positive integer")

    def mutation(order: Order, now):
        if order.is_terminal:
            raise InvalidTransitionError(f"Order is {order.status}; prep time can no longer change")
        order.prep_time_minutes = prep_time_minutes
        if order.estimated_ready_at is not None:
            order.estimated_ready_at = now + timedelta(minutes=prep_time_minutes)
        order.updated_at = now

    return _mutate(mutation, order_id=order_id)


# =============================================================================
# CUSTOMER SELF-SERVICE
# =============================================================================

def _issue_refund(order: Order, gateway: PaymentGateway) -> str:
    if gateway.is_sandbox_session(order.payment_session_id):
        refund_id = f"test_refund_{order.id}"
        logger.info("refund_simulated", extra={"order_id": order.id, "refund_id": refund_id})
        return refund_id

    if not order.payment_intent_id:
        raise UpstreamUnavailableError("Payment reference not found for refund")

    # Same key on every retry so a re-run transition cannot refund twice
    refund_id = gateway.refund(order.payment_intent_id, idempotency_key=f"order-cancel-{order.id}")
    logger.info("refund_issued", extra={"order_id": order.id, "refund_id": refund_id})
    return refund_id


def customer_cancel(
    principal: Principal,
    gateway: PaymentGateway,
    *,
    session_id: str | None = None,
    order_id: str | None = None,
    customer_email: str | None = None,
) -> Order:
    """
    Cancel and refund one's own order within the self-cancel window.

    The caller's email is the token's for customers and the supplied
    customer_email for guests; it must match the order case-insensitively.

    Raises:
        UnauthorizedError: staff caller, no email, or email mismatch
        NotFoundError: unknown order
        AlreadyAcceptedError: kitchen already preparing/finished
        InvalidTransitionError: order already cancelled
        WindowExpiredError: more than 2 minutes since created_at
        UpstreamUnavailableError: refund failed; order left unchanged
    """
    if principal.role not in CUSTOMER_ROLES:
        raise UnauthorizedError("Only the ordering customer can self-cancel", forbidden=True)
    if not (session_id or order_id):
        raise ValidationError("session_id or order_id is required")

    caller_email = principal.email if principal.role == ROLE_CUSTOMER else customer_email
    if not caller_email:
        raise UnauthorizedError("Customer email is required to cancel", forbidden=True)

    window = timedelta(seconds=current_app.config["CANCEL_WINDOW_SECONDS"])

    def mutation(order: Order, now):
        if (order.customer_email or "").lower() != caller_email.strip().lower():
            raise UnauthorizedError("Email does not match order", forbidden=True)
        if order.status == STATUS_CANCELLED:
            raise InvalidTransitionError("Order is already cancelled")
        if order.status not in SELF_CANCELLABLE:
            raise AlreadyAcceptedError("Order cannot be cancelled after the kitchen has started it")
        if now - order.created_at > window:
            raise WindowExpiredError("Cancellation window expired")

        refund_id = _issue_refund(order, gateway)
        order.refund_id = refund_id
        order.refunded_at = now
        _move(order, STATUS_CANCELLED, now, "Customer cancelled within 2 minutes")

    if order_id:
        return _mutate(mutation, order_id=order_id)
    return _mutate(mutation, session_id=session_id)
