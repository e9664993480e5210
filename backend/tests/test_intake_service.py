"""
Payment intake tests.

Verifies:
- N deliveries of one checkout session produce exactly one order
- Signature failures and malformed metadata are 400s scoped to one delivery
- Email failure never undoes an order
"""

import json
from decimal import Decimal

import pytest

from orderdesk.errors import InvalidSignatureError, PayloadError
from orderdesk.models import Order
from orderdesk.services import intake_service, order_store
from orderdesk.services.metadata_codec import encode_items_metadata

from conftest import (
    CUSTOMER_EMAIL,
    TACO,
    checkout_completed_event,
    sign_payload,
    signed_event,
)


WEBHOOK_URL = "/api/stripe/webhook"


def _deliver(client, event, secret=None):
    body, signature = signed_event(event) if secret is None else signed_event(event, secret)
    return client.post(
        WEBHOOK_URL,
        data=body,
        headers={"Stripe-Signature": signature, "Content-Type": "application/json"},
    )


def _orders_for(db_session, session_id):
    db_session.expire_all()
    return db_session.query(Order).filter_by(payment_session_id=session_id).all()


# =============================================================================
# IDEMPOTENT INTAKE
# =============================================================================


class TestIdempotentIntake:
    def test_first_delivery_creates_pending_order(self, client, db_session, mailer):
        resp = _deliver(client, checkout_completed_event("cs_test_1"))

        assert resp.status_code == 200
        assert resp.get_json()["received"] is True
        orders = _orders_for(db_session, "cs_test_1")
        assert len(orders) == 1
        order = orders[0]
        assert order.status == "pending"
        assert order.total_amount == Decimal("8.00")
        assert order.estimated_ready_at is None
        assert order.items[0]["name"] == "Taco"
        assert order.items[0]["qty"] == 2
        assert order.payment_intent_id == "pi_test_1"
        assert order.guest_id == "guest_abc"
        assert [e.status for e in order.status_events] == ["pending"]
        assert mailer.sent == [{"recipient": CUSTOMER_EMAIL, "order_id": order.id, "total": Decimal("8.00")}]

    def test_repeated_delivery_is_deduplicated(self, client, db_session, mailer):
        event = checkout_completed_event("cs_test_1")

        responses = [_deliver(client, event) for _ in range(4)]

        assert all(resp.status_code == 200 for resp in responses)
        assert "deduplicated" not in responses[0].get_json()
        assert all(resp.get_json()["deduplicated"] is True for resp in responses[1:])
        assert len(_orders_for(db_session, "cs_test_1")) == 1
        # Confirmation goes out once
        assert len(mailer.sent) == 1

    def test_deduplicated_delivery_reports_existing_order(self, client, db_session):
        first = _deliver(client, checkout_completed_event("cs_test_2")).get_json()
        second = _deliver(client, checkout_completed_event("cs_test_2")).get_json()

        assert second["order_id"] == first["order_id"]

    def test_other_event_types_are_acknowledged_and_ignored(self, client, db_session):
        event = checkout_completed_event("cs_test_3")
        event["type"] = "payment_intent.created"

        resp = _deliver(client, event)

        assert resp.status_code == 200
        assert resp.get_json()["ignored"] is True
        assert _orders_for(db_session, "cs_test_3") == []

    def test_chunked_metadata_is_reassembled(self, client, db_session):
        items = [dict(TACO, name=f"Taco {i}", toppings=["Onion", "Cilantro", "Lime"]) for i in range(20)]
        metadata = {"customer_name": "Dana", "guest_id": "guest_abc", **encode_items_metadata(items)}
        assert "order_items_chunks" in metadata

        resp = _deliver(client, checkout_completed_event("cs_test_4", metadata=metadata, amount_total=16000))

        assert resp.status_code == 200
        order = _orders_for(db_session, "cs_test_4")[0]
        assert [item["name"] for item in order.items] == [f"Taco {i}" for i in range(20)]
        assert order.total_amount == Decimal("160.00")

    def test_expanded_payment_intent_and_customer_details(self, db_session, gateway, mailer):
        event = checkout_completed_event("cs_test_5", email=None, payment_intent={"id": "pi_expanded"})
        event["data"]["object"]["customer_details"] = {"email": "fallback@example.com"}
        body, signature = signed_event(event)

        result = intake_service.handle_webhook(body, signature, gateway=gateway, mailer=mailer)

        assert result.order.payment_intent_id == "pi_expanded"
        assert result.order.customer_email == "fallback@example.com"
        assert result.email_sent is True

    def test_unique_constraint_catches_race_past_the_precheck(self, client, db_session, mailer, monkeypatch):
        _deliver(client, checkout_completed_event("cs_test_race"))

        # The second delivery's pre-check misses, as if both deliveries read before either committed
        real_find = order_store.find_by_session_id
        calls = []

        def stale_first_read(session_id):
            calls.append(session_id)
            if len(calls) == 1:
                return None
            return real_find(session_id)

        monkeypatch.setattr(order_store, "find_by_session_id", stale_first_read)

        resp = _deliver(client, checkout_completed_event("cs_test_race"))

        assert resp.status_code == 200
        assert resp.get_json()["deduplicated"] is True
        assert len(calls) >= 2
        assert len(_orders_for(db_session, "cs_test_race")) == 1
        assert len(mailer.sent) == 1


# =============================================================================
# FAILURES SCOPED TO ONE DELIVERY
# =============================================================================


class TestRejectedDeliveries:
    def test_bad_signature_is_400_and_creates_nothing(self, client, db_session, mailer):
        resp = _deliver(client, checkout_completed_event("cs_test_6"), secret="whsec_wrong")

        assert resp.status_code == 400
        assert resp.get_json()["code"] == "INVALID_SIGNATURE"
        assert _orders_for(db_session, "cs_test_6") == []
        assert mailer.sent == []

    def test_non_utf8_body_is_400(self, client, db_session):
        body = b"\xff\xfe{not utf8"
        signature = sign_payload(body.decode("latin-1"))

        resp = client.post(
            WEBHOOK_URL,
            data=body,
            headers={"Stripe-Signature": signature, "Content-Type": "application/json"},
        )

        assert resp.status_code == 400
        assert resp.get_json()["code"] == "INVALID_SIGNATURE"

    def test_missing_signature_header_is_400(self, client, db_session):
        resp = client.post(WEBHOOK_URL, data=json.dumps(checkout_completed_event("cs_test_7")))

        assert resp.status_code == 400

    def test_tampered_body_fails_verification(self, gateway, mailer, db_session):
        event = checkout_completed_event("cs_test_8")
        payload = json.dumps(event)
        signature = sign_payload(payload)
        tampered = payload.replace('"amount_total": 800', '"amount_total": 1')

        with pytest.raises(InvalidSignatureError):
            intake_service.handle_webhook(tampered.encode(), signature, gateway=gateway, mailer=mailer)

    def test_stale_timestamp_fails_verification(self, gateway, mailer, db_session):
        payload = json.dumps(checkout_completed_event("cs_test_9"))
        signature = sign_payload(payload, timestamp=1_000_000)

        with pytest.raises(InvalidSignatureError):
            intake_service.handle_webhook(payload.encode(), signature, gateway=gateway, mailer=mailer)

    def test_missing_chunk_is_400_and_other_orders_unaffected(self, client, db_session):
        _deliver(client, checkout_completed_event("cs_test_10"))

        items = [dict(TACO, name=f"Burrito {i}", toppings=["Rice", "Beans"]) for i in range(20)]
        metadata = {"guest_id": "guest_abc", **encode_items_metadata(items)}
        del metadata["order_items_1"]
        resp = _deliver(client, checkout_completed_event("cs_test_11", metadata=metadata))

        assert resp.status_code == 400
        assert resp.get_json()["code"] == "INVALID_PAYLOAD"
        assert _orders_for(db_session, "cs_test_11") == []
        assert len(_orders_for(db_session, "cs_test_10")) == 1

    def test_bad_chunk_raises_payload_error(self, gateway, mailer, db_session):
        metadata = {"order_items_chunks": "2", "order_items_0": "[{", "order_items_1": "oops"}
        body, signature = signed_event(checkout_completed_event("cs_test_12", metadata=metadata))

        with pytest.raises(PayloadError):
            intake_service.handle_webhook(body, signature, gateway=gateway, mailer=mailer)


# =============================================================================
# EMAIL IS BEST EFFORT
# =============================================================================


class TestConfirmationEmail:
    def test_email_failure_still_acknowledges_and_keeps_order(self, client, db_session, mailer):
        mailer.fail = True

        resp = _deliver(client, checkout_completed_event("cs_test_13"))

        assert resp.status_code == 200
        assert len(_orders_for(db_session, "cs_test_13")) == 1

    def test_email_failure_is_logged(self, db_session, gateway, mailer, caplog):
        mailer.fail = True
        body, signature = signed_event(checkout_completed_event("cs_test_14"))

        with caplog.at_level("WARNING", logger="orderdesk.services.intake_service"):
            result = intake_service.handle_webhook(body, signature, gateway=gateway, mailer=mailer)

        assert result.order is not None
        assert result.email_sent is False
        assert any(record.getMessage() == "order_email_failed" for record in caplog.records)

    def test_disabled_mailer_skips_email(self, db_session, gateway, mailer):
        mailer.enabled = False
        body, signature = signed_event(checkout_completed_event("cs_test_15"))

        result = intake_service.handle_webhook(body, signature, gateway=gateway, mailer=mailer)

        assert result.email_sent is False
        assert mailer.sent == []
