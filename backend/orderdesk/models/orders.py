from __future__ import annotations

import uuid
from decimal import Decimal

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


STATUS_PENDING = "pending"
STATUS_RECEIVED = "received"
STATUS_PREPARING = "preparing"
STATUS_READY = "ready"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"

ORDER_STATUSES = (
    STATUS_PENDING,
    STATUS_RECEIVED,
    STATUS_PREPARING,
    STATUS_READY,
    STATUS_COMPLETED,
    STATUS_CANCELLED,
)
TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_CANCELLED})

DEFAULT_PREP_TIME_MINUTES = 15


def _new_order_id() -> str:
    return uuid.uuid4().hex


class Order(db.Model):
    """
    Paid restaurant order, created once per payment session.

    WHY: The order document is the source of truth for the kitchen and the
    customer. Items and total are frozen at creation; only status, timing,
    and refund fields change afterwards, and every status change appends
    an OrderStatusEvent.
    """
    __tablename__ = "orders"
    __table_args__ = (
        # Idempotency key for payment intake (NULLs are not compared)
        db.UniqueConstraint("payment_session_id", name="uq_orders_payment_session"),
        db.Index("ix_orders_created_at", "created_at"),
        db.Index("ix_orders_status_created", "status", "created_at"),
    )

    id = db.Column(db.String(32), primary_key=True, default=_new_order_id)

    # Payment processor linkage
    payment_session_id = db.Column(db.String(255), nullable=True)
    payment_intent_id = db.Column(db.String(255), nullable=True)

    # Customer linkage (at least one is set)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    guest_id = db.Column(db.String(64), nullable=True, index=True)
    customer_email = db.Column(db.String(255), nullable=True, index=True)

    # Snapshot at time of order
    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(64), nullable=True)

    # Opaque line items: name, qty, price, meat_type, sauce, toppings
    items = db.Column(db.JSON, nullable=False, default=list)
    total_amount = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0.00"))

    status = db.Column(db.String(16), nullable=False, default=STATUS_PENDING)
    prep_time_minutes = db.Column(db.Integer, nullable=False, default=DEFAULT_PREP_TIME_MINUTES)

    # Timestamps
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    estimated_ready_at = db.Column(db.DateTime, nullable=True)

    # Refund (set only by customer self-cancel)
    refund_id = db.Column(db.String(255), nullable=True)
    refunded_at = db.Column(db.DateTime, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    status_events = db.relationship(
        "OrderStatusEvent",
        backref="order",
        lazy=True,
        order_by="OrderStatusEvent.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def record_status(self, status: str, at, note: str | None = None) -> "OrderStatusEvent":
        event = OrderStatusEvent(status=status, created_at=at, note=note)
        self.status_events.append(event)
        return event

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "payment_session_id": self.payment_session_id,
            "payment_intent_id": self.payment_intent_id,
            "user_id": self.user_id,
            "guest_id": self.guest_id,
            "customer_email": self.customer_email,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "items": list(self.items or []),
            "total_amount": float(self.total_amount or 0),
            "status": self.status,
            "prep_time_minutes": self.prep_time_minutes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "estimated_ready_at": to_utc_z(self.estimated_ready_at),
            "refund_id": self.refund_id,
            "refunded_at": to_utc_z(self.refunded_at),
            "status_history": [event.to_dict() for event in self.status_events],
        }


class OrderStatusEvent(db.Model):
    """Append-only status history entry; one per transition, including creation."""
    __tablename__ = "order_status_events"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(32), db.ForeignKey("orders.id"), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False)
    note = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "timestamp": to_utc_z(self.created_at),
            "note": self.note,
        }
