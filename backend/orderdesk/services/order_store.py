# Overview: Persistence boundary for orders; idempotent creation and scoped lookups.

"""
Order Store

WHY: Every other component reads or writes orders through here. Creation is
keyed by the payment session id, and the database's unique constraint on
that column is what guarantees at most one order per payment, even when two
webhook deliveries race on different workers.

DESIGN:
- Create seeds status=pending, estimated_ready_at=None, and one "pending"
  history entry, all in one commit.
- DuplicateKeyError is raised both when a pre-check finds the session and
  when the insert loses a race on the unique constraint.
- Reads are scoped by the caller's Principal: staff see everything,
  guests/customers only orders they own. A payment session id works as a
  bearer capability for the order-success page.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from flask import current_app
from sqlalchemy import desc, func
from sqlalchemy.exc import IntegrityError

from ..errors import DuplicateKeyError, NotFoundError, UnauthorizedError
from ..extensions import db
from ..models import Order
from ..models.orders import DEFAULT_PREP_TIME_MINUTES, STATUS_PENDING
from ..time_utils import utcnow
from ..validation import OrderQuery, ValidationError
from .identity_service import ROLE_CUSTOMER, Principal


logger = logging.getLogger(__name__)


def create_order(
    *,
    items: list[dict],
    total_amount: Decimal,
    payment_session_id: str | None = None,
    payment_intent_id: str | None = None,
    customer_email: str | None = None,
    customer_name: str | None = None,
    customer_phone: str | None = None,
    guest_id: str | None = None,
    user_id: int | None = None,
    note: str = "Payment received, awaiting approval",
) -> Order:
    """
    Insert a new pending order.

    Raises:
        DuplicateKeyError: an order for payment_session_id already exists
        ValidationError: no customer linkage, or a negative total
    """
    if not (user_id or guest_id or customer_email):
        raise ValidationError("Order needs a user id, guest id, or customer email")
    if total_amount < 0:
        raise ValidationError("total_amount must be non-negative")

    if payment_session_id and find_by_session_id(payment_session_id) is not None:
        raise DuplicateKeyError(payment_session_id)

    now = utcnow()
    order = Order(
        payment_session_id=payment_session_id,
        payment_intent_id=payment_intent_id,
        customer_email=customer_email or None,
        customer_name=customer_name or None,
        customer_phone=customer_phone or None,
        guest_id=guest_id or None,
        user_id=user_id,
        items=list(items),
        total_amount=Decimal(total_amount).quantize(Decimal("0.01")),
        status=STATUS_PENDING,
        prep_time_minutes=DEFAULT_PREP_TIME_MINUTES,
        created_at=now,
        updated_at=now,
        estimated_ready_at=None,
    )
    order.record_status(STATUS_PENDING, now, note)
    db.session.add(order)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        # Lost the race against a concurrent delivery of the same session
        if payment_session_id and find_by_session_id(payment_session_id) is not None:
            raise DuplicateKeyError(payment_session_id)
        raise

    logger.info(
        "order_created",
        extra={"order_id": order.id, "payment_session_id": payment_session_id},
    )
    return order


def get_order(order_id: str) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def find_by_session_id(session_id: str) -> Order | None:
    return db.session.query(Order).filter_by(payment_session_id=session_id).first()


def get_by_session_id(session_id: str) -> Order:
    order = find_by_session_id(session_id)
    if order is None:
        raise NotFoundError("Order not found")
    return order


def owns_order(principal: Principal, order: Order) -> bool:
    """Guests match by guest id; customers by user id or (case-insensitive) email."""
    if principal.is_staff:
        return True
    if principal.guest_id and order.guest_id == principal.guest_id:
        return True
    if principal.role == ROLE_CUSTOMER:
        if order.user_id is not None and order.user_id == principal.user_id:
            return True
        if principal.email and (order.customer_email or "").lower() == principal.email.lower():
            return True
    return False


def query_orders(query: OrderQuery, principal: Principal) -> list[Order]:
    """
    Run one order lookup on behalf of principal.

    Raises:
        UnauthorizedError: non-staff asking for all orders or someone else's orders
        NotFoundError: order_id does not resolve
    """
    base = db.session.query(Order).order_by(desc(Order.created_at))

    if query.kind == "all":
        if not principal.is_staff:
            raise UnauthorizedError("Staff access required", forbidden=True)
        return base.limit(current_app.config["ALL_ORDERS_LIMIT"]).all()

    if query.kind == "session_id":
        return base.filter(Order.payment_session_id == query.value).all()

    if query.kind == "order_id":
        order = get_order(query.value)
        if not owns_order(principal, order):
            raise UnauthorizedError("Not your order", forbidden=True)
        return [order]

    if query.kind == "guest_id":
        if not principal.is_staff and principal.guest_id != query.value:
            raise UnauthorizedError("Not your guest session", forbidden=True)
        return base.filter(Order.guest_id == query.value).all()

    if query.kind == "email":
        email = query.value.lower()
        if not principal.is_staff and (principal.email or "").lower() != email:
            raise UnauthorizedError("Not your email", forbidden=True)
        return base.filter(func.lower(Order.customer_email) == email).all()

    raise ValidationError(f"Unsupported query: {query.kind}")


def recent_orders(limit: int = 20, status: str | None = None) -> list[Order]:
    query = db.session.query(Order)
    if status:
        query = query.filter_by(status=status)
    return query.order_by(desc(Order.created_at)).limit(limit).all()
