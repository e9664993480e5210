# Overview: Order confirmation email through the Resend HTTP API.

"""
Email Service

Sends the "order confirmed" message after payment intake. Delivery is a
notification side effect: callers log failures and move on, the order is
already recorded.
"""

from __future__ import annotations

import html
from decimal import Decimal

import httpx

from ..errors import UpstreamUnavailableError


RESEND_API_URL = "https://api.resend.com/emails"


def _item_label(item: dict) -> str:
    label = str(item.get("name") or "Item")
    if item.get("meat_type"):
        label += f" ({item['meat_type']})"
    if item.get("sauce"):
        label += f" with {item['sauce']}"
    if item.get("toppings"):
        label += f" + {', '.join(item['toppings'])}"
    return label


def _line_total(item: dict) -> Decimal:
    qty = item.get("qty") or item.get("quantity") or 1
    return Decimal(str(item.get("price") or 0)) * int(qty)


def render_order_confirmation(
    *,
    customer_name: str | None,
    order_id: str,
    items: list[dict],
    total: Decimal,
) -> tuple[str, str, str]:
    """Returns (subject, html_body, text_body)."""
    short_id = order_id[-8:].upper()
    name = customer_name or "Valued Customer"
    subject = f"Order #{short_id} confirmed"

    text_lines = [f"Hi {name}, thank you for your order.", "", f"Order #{short_id}", ""]
    rows = []
    for item in items:
        qty = item.get("qty") or item.get("quantity") or 1
        label = _item_label(item)
        line_total = _line_total(item)
        text_lines.append(f"{qty} x {label}  ${line_total:.2f}")
        rows.append(
            "<tr>"
            f"<td>{html.escape(label)}</td>"
            f"<td style=\"text-align:center\">{int(qty)}</td>"
            f"<td style=\"text-align:right\">${line_total:.2f}</td>"
            "</tr>"
        )
    text_lines += ["", f"Total: ${total:.2f}", "", "We'll let you know when the kitchen accepts it."]

    html_body = (
        "<!DOCTYPE html><html><body style=\"font-family:sans-serif\">"
        "<h1>Order Confirmed!</h1>"
        f"<p>Hi <strong>{html.escape(name)}</strong>! Thank you for your order.</p>"
        f"<p><strong>Order #{short_id}</strong></p>"
        "<table style=\"width:100%;border-collapse:collapse\">"
        "<tr><th style=\"text-align:left\">Item</th><th>Qty</th><th style=\"text-align:right\">Price</th></tr>"
        f"{''.join(rows)}"
        "</table>"
        f"<p style=\"text-align:right\"><strong>Total: ${total:.2f}</strong></p>"
        "</body></html>"
    )
    return subject, html_body, "\n".join(text_lines)


class ResendMailer:
    def __init__(
        self,
        api_key: str | None,
        sender: str,
        *,
        http_client: httpx.Client | None = None,
        timeout: float = 10.0,
    ):
        self.api_key = api_key
        self.sender = sender
        self._client = http_client or httpx.Client(timeout=timeout)

    @classmethod
    def from_config(cls, config) -> "ResendMailer":
        return cls(config.get("RESEND_API_KEY"), config.get("EMAIL_FROM"))

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def send_order_confirmation(
        self,
        *,
        recipient: str,
        order_id: str,
        items: list[dict],
        total: Decimal,
        customer_name: str | None = None,
    ) -> str:
        """
        Send the confirmation; returns the provider message id.

        Raises:
            UpstreamUnavailableError: not configured, transport error, or non-2xx reply
        """
        if not self.enabled:
            raise UpstreamUnavailableError("Email service not configured")

        subject, html_body, text_body = render_order_confirmation(
            customer_name=customer_name, order_id=order_id, items=items, total=total,
        )
        try:
            response = self._client.post(
                RESEND_API_URL,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={
                    "from": self.sender,
                    "to": [recipient],
                    "subject": subject,
                    "html": html_body,
                    "text": text_body,
                },
            )
        except httpx.HTTPError as exc:
            raise UpstreamUnavailableError(f"Email request failed: {exc}")

        if response.status_code >= 300:
            raise UpstreamUnavailableError(
                f"Email provider returned {response.status_code}: {response.text[:200]}"
            )
        try:
            return response.json().get("id", "")
        except ValueError:
            return ""
