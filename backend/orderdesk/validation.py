# Overview: Boundary validation; turns raw JSON bodies into typed requests.

"""
Request validation.

Each endpoint/action has a frozen request type. Parsing happens in the
route, before any service is called, so services only ever see typed,
already-checked input. Staff order mutations are a tagged union keyed by
the body's "action" field.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Union


MAX_PREP_TIME_MINUTES = 24 * 60
MAX_ITEM_QUANTITY = 99
# Largest value orders.total_amount (Numeric(10, 2)) can hold
MAX_AMOUNT = Decimal("99999999.99")


class ValidationError(ValueError):
    """400-level input problem."""

    http_status = 400
    code = "VALIDATION_ERROR"

    def to_dict(self) -> dict:
        return {"error": str(self), "code": self.code}


# =============================================================================
# FIELD HELPERS
# =============================================================================

def _require_dict(body: Any) -> dict:
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def _optional_str(data: dict, key: str, *, max_length: int = 255) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"{key} must be at most {max_length} characters")
    return value or None


def _positive_int(value: Any, key: str, *, maximum: int | None = None) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a positive integer")
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{key} must be a positive integer")
    if maximum is not None and value > maximum:
        raise ValidationError(f"{key} must be at most {maximum}")
    return value


def _money(value: Any, key: str) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{key} must be a number")
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{key} must be a number")
    if not amount.is_finite() or amount < 0:
        raise ValidationError(f"{key} must be a non-negative number")
    if amount > MAX_AMOUNT:
        raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT}")
    return amount.quantize(Decimal("0.01"))


# =============================================================================
# STAFF ACTIONS (tagged union)
# =============================================================================

@dataclass(frozen=True)
class AcceptOrder:
    prep_time_minutes: int | None = None


@dataclass(frozen=True)
class RejectOrder:
    note: str | None = None


@dataclass(frozen=True)
class AdvanceOrder:
    # Optional expected target; lets the caller detect a skipped step
    to_status: str | None = None


@dataclass(frozen=True)
class SetPrepTime:
    prep_time_minutes: int


StaffAction = Union[AcceptOrder, RejectOrder, AdvanceOrder, SetPrepTime]


def parse_staff_action(body: Any) -> StaffAction:
    data = _require_dict(body)
    action = data.get("action")

    if action == "accept":
        raw = data.get("prep_time_minutes")
        prep = None if raw is None else _positive_int(raw, "prep_time_minutes", maximum=MAX_PREP_TIME_MINUTES)
        return AcceptOrder(prep_time_minutes=prep)
    if action == "reject":
        return RejectOrder(note=_optional_str(data, "note"))
    if action == "advance":
        return AdvanceOrder(to_status=_optional_str(data, "to_status", max_length=16))
    if action == "set_prep_time":
        if data.get("prep_time_minutes") is None:
            raise ValidationError("prep_time_minutes is required")
        return SetPrepTime(
            prep_time_minutes=_positive_int(data["prep_time_minutes"], "prep_time_minutes", maximum=MAX_PREP_TIME_MINUTES)
        )
    raise ValidationError("action must be one of: accept, reject, advance, set_prep_time")


# =============================================================================
# CUSTOMER CANCEL
# =============================================================================

@dataclass(frozen=True)
class CustomerCancelRequest:
    session_id: str | None
    order_id: str | None
    customer_email: str | None


def parse_customer_cancel(body: Any) -> CustomerCancelRequest:
    data = _require_dict(body)
    request = CustomerCancelRequest(
        session_id=_optional_str(data, "session_id"),
        order_id=_optional_str(data, "order_id", max_length=32),
        customer_email=_optional_str(data, "customer_email"),
    )
    if not request.session_id and not request.order_id:
        raise ValidationError("session_id or order_id is required")
    return request


# =============================================================================
# ORDER QUERIES
# =============================================================================

QUERY_KEYS = ("order_id", "session_id", "guest_id", "email")


@dataclass(frozen=True)
class OrderQuery:
    kind: str          # one of QUERY_KEYS, or "all"
    value: str | None = None


def parse_order_query(args) -> OrderQuery:
    """Exactly one selector: order_id, session_id, guest_id, email, or all=true."""
    selected = [key for key in QUERY_KEYS if (args.get(key) or "").strip()]
    wants_all = (args.get("all") or "").strip().lower() == "true"

    if wants_all and not selected:
        return OrderQuery(kind="all")
    if len(selected) != 1 or wants_all:
        raise ValidationError("Provide exactly one of: order_id, session_id, guest_id, email, all=true")
    key = selected[0]
    return OrderQuery(kind=key, value=args.get(key).strip())


# =============================================================================
# CART / CHECKOUT
# =============================================================================

@dataclass(frozen=True)
class CartItem:
    name: str
    qty: int
    price: Decimal
    meat_type: str | None = None
    sauce: str | None = None
    toppings: tuple[str, ...] | None = None
    image: str | None = None

    def to_order_item(self) -> dict:
        """Compact form carried in payment metadata and stored on the order."""
        return {
            "name": self.name,
            "qty": self.qty,
            "price": float(self.price),
            "meat_type": self.meat_type,
            "sauce": self.sauce,
            "toppings": list(self.toppings) if self.toppings is not None else None,
        }


def parse_cart_items(raw: Any) -> list[CartItem]:
    if not isinstance(raw, list) or not raw:
        raise ValidationError("items must be a non-empty list")

    items = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ValidationError(f"items[{index}] must be an object")
        name = _optional_str(entry, "name")
        if not name:
            raise ValidationError(f"items[{index}].name is required")
        qty_raw = entry.get("qty", entry.get("quantity", 1))
        toppings = entry.get("toppings")
        if toppings is not None:
            if not isinstance(toppings, list) or not all(isinstance(t, str) for t in toppings):
                raise ValidationError(f"items[{index}].toppings must be a list of strings")
            toppings = tuple(toppings)
        items.append(CartItem(
            name=name,
            qty=_positive_int(qty_raw, f"items[{index}].qty", maximum=MAX_ITEM_QUANTITY),
            price=_money(entry.get("price"), f"items[{index}].price"),
            meat_type=_optional_str(entry, "meat_type"),
            sauce=_optional_str(entry, "sauce"),
            toppings=toppings,
            image=_optional_str(entry, "image", max_length=2048),
        ))
    return items


@dataclass(frozen=True)
class CheckoutRequest:
    items: list[CartItem]
    customer_email: str | None
    customer_name: str
    customer_phone: str


def parse_checkout(body: Any) -> CheckoutRequest:
    data = _require_dict(body)
    return CheckoutRequest(
        items=parse_cart_items(data.get("items")),
        customer_email=_optional_str(data, "customer_email"),
        customer_name=_optional_str(data, "customer_name") or "",
        customer_phone=_optional_str(data, "customer_phone", max_length=64) or "",
    )


@dataclass(frozen=True)
class DevOrderRequest:
    items: list[CartItem]
    customer_email: str
    customer_name: str
    customer_phone: str
    guest_id: str | None
    total_amount: Decimal


def parse_dev_order(body: Any) -> DevOrderRequest:
    data = _require_dict(body)
    items = parse_cart_items(data.get("items"))
    total = data.get("total_amount")
    if total is None:
        total = sum((item.price * item.qty for item in items), Decimal("0.00"))
    return DevOrderRequest(
        items=items,
        customer_email=_optional_str(data, "customer_email") or "",
        customer_name=_optional_str(data, "customer_name") or "",
        customer_phone=_optional_str(data, "customer_phone", max_length=64) or "",
        guest_id=_optional_str(data, "guest_id", max_length=64),
        total_amount=_money(total, "total_amount"),
    )
