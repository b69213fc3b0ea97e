"""
Payment tests (Midtrans Snap).

Verifies:
- Transaction status mapping to payment/order status
- Notification signatures (sha512 of order_id + status_code + gross_amount + key)
- Snap sessions: item lines sum to gross_amount; unexpired sessions are reused
- Verify and notification move unpaid orders to in-review when settled
"""

import httpx
import pytest

from conftest import MIDTRANS_SERVER_KEY, json_body
from printshop.services import payment_service
from printshop.services.payment_service import PaymentError, PaymentSignatureError

SNAP_PATH = "/snap/v1/transactions"
SNAP_RESPONSE = {
    "token": "snap-token-1",
    "redirect_url": "https://app.sandbox.midtrans.com/snap/v4/redirection/snap-token-1",
}


def status_path(order):
    return f"/v2/{order.order_number}/status"


def settlement(order, **extra):
    body = {
        "status_code": "200",
        "transaction_status": "settlement",
        "payment_type": "bank_transfer",
        "transaction_id": "tx-123",
        "order_id": order.order_number,
        "gross_amount": "95000.00",
    }
    body.update(extra)
    return body


def signed_notification(order, transaction_status="settlement", **extra):
    payload = settlement(order, transaction_status=transaction_status, **extra)
    payload["signature_key"] = payment_service.notification_signature(
        payload["order_id"], payload["status_code"], payload["gross_amount"], MIDTRANS_SERVER_KEY
    )
    return payload


# =============================================================================
# PURE MAPPING
# =============================================================================


class TestStatusMapping:

    @pytest.mark.parametrize("transaction_status,fraud,expected", [
        ("capture", "accept", ("paid", "in-review")),
        ("capture", None, ("paid", "in-review")),
        ("capture", "challenge", ("pending", None)),
        ("settlement", None, ("paid", "in-review")),
        ("pending", None, ("pending", None)),
        ("deny", None, ("failed", "canceled")),
        ("expire", None, ("failed", "canceled")),
        ("cancel", None, ("failed", "canceled")),
        ("refund", None, ("refunded", None)),
        (None, None, ("pending", None)),
    ])
    def test_map_transaction_status(self, transaction_status, fraud, expected):
        assert payment_service.map_transaction_status(transaction_status, fraud) == expected

    @pytest.mark.parametrize("payment_type,expected", [
        ("bank_transfer", "bank_transfer"),
        ("credit_card", "credit_card"),
        ("gopay", "e_wallet"),
        ("qris", "e_wallet"),
        ("unknown_rail", None),
    ])
    def test_map_payment_type(self, payment_type, expected):
        assert payment_service.map_payment_type(payment_type) == expected


class TestSignature:

    def test_known_signature_verifies(self):
        payload = {"order_id": "ORD-1", "status_code": "200", "gross_amount": "95000.00"}
        payload["signature_key"] = payment_service.notification_signature(
            "ORD-1", "200", "95000.00", "server-key"
        )
        assert payment_service.verify_signature(payload, "server-key")

    def test_tampered_amount_fails(self):
        payload = {"order_id": "ORD-1", "status_code": "200", "gross_amount": "95000.00"}
        payload["signature_key"] = payment_service.notification_signature(
            "ORD-1", "200", "95000.00", "server-key"
        )
        payload["gross_amount"] = "1.00"
        assert not payment_service.verify_signature(payload, "server-key")


# =============================================================================
# SNAP SESSIONS
# =============================================================================


class TestInitializePayment:

    def test_creates_snap_session(self, client, customer_headers, placed_order, gateway):
        gateway.on("POST", SNAP_PATH, SNAP_RESPONSE)

        resp = client.post("/api/payment/initialize", json={"orderId": placed_order.id}, headers=customer_headers)

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["snapToken"] == "snap-token-1"
        assert body["orderNumber"] == placed_order.order_number
        assert placed_order.midtrans_order_id == placed_order.order_number

        request = gateway.calls("POST", SNAP_PATH)[0]
        assert request.headers["authorization"].startswith("Basic ")
        params = json_body(request)
        assert params["transaction_details"] == {"order_id": placed_order.order_number, "gross_amount": 95000}
        assert sum(line["price"] * line["quantity"] for line in params["item_details"]) == 95000

    def test_rounding_line_keeps_items_summing_to_gross(self, placed_order, app):
        placed_order.items[0].total_price = 80000.4
        placed_order.total_amount = 95000.6

        params = payment_service.build_snap_params(placed_order)

        assert params["transaction_details"]["gross_amount"] == 95001
        assert params["item_details"][-1]["id"] == "rounding"
        assert sum(line["price"] for line in params["item_details"]) == 95001

    def test_payment_method_restricts_channels(self, placed_order, app):
        params = payment_service.build_snap_params(placed_order, "e_wallet")
        assert "gopay" in params["enabled_payments"]
        assert "credit_card" not in params["enabled_payments"]

    def test_unexpired_session_is_reused(self, placed_order, gateway):
        gateway.on("POST", SNAP_PATH, SNAP_RESPONSE)

        first = payment_service.initialize_payment(placed_order)
        second = payment_service.initialize_payment(placed_order)

        assert first == second
        assert len(gateway.calls("POST", SNAP_PATH)) == 1

    def test_paid_order_cannot_be_paid_again(self, placed_order, db_session):
        placed_order.payment_status = "paid"
        db_session.commit()

        with pytest.raises(PaymentError) as exc:
            payment_service.initialize_payment(placed_order)
        assert exc.value.status_code == 409

    def test_gateway_rejection_is_502(self, client, customer_headers, placed_order, gateway):
        gateway.on("POST", SNAP_PATH, httpx.Response(401, json={"error_messages": ["Access denied"]}))

        resp = client.post("/api/payment/initialize", json={"orderId": placed_order.id}, headers=customer_headers)

        assert resp.status_code == 502
        assert "Access denied" in resp.get_json()["error"]
        assert placed_order.snap_token is None

    def test_other_customer_cannot_initialize(self, client, other_headers, placed_order, gateway):
        resp = client.post("/api/payment/initialize", json={"orderId": placed_order.id}, headers=other_headers)
        assert resp.status_code == 404

    def test_unconfigured_gateway_is_503(self, placed_order, app, monkeypatch):
        monkeypatch.setitem(app.config, "MIDTRANS_SERVER_KEY", "")
        with pytest.raises(PaymentError) as exc:
            payment_service.initialize_payment(placed_order)
        assert exc.value.status_code == 503


# =============================================================================
# VERIFY / NOTIFICATION
# =============================================================================


class TestVerifyPayment:

    def test_settlement_marks_paid_and_in_review(self, client, customer_headers, placed_order, gateway):
        gateway.on("POST", SNAP_PATH, SNAP_RESPONSE)
        payment_service.initialize_payment(placed_order)
        gateway.on("GET", status_path(placed_order), settlement(placed_order))

        resp = client.post("/api/payment/verify", json={"orderId": placed_order.id}, headers=customer_headers)

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["paymentStatus"] == "paid"
        assert body["orderStatus"] == "in-review"
        assert body["updated"] is True
        assert placed_order.transaction_id == "tx-123"
        assert placed_order.paid_at is not None
        assert [h.status for h in placed_order.status_history] == ["unpaid", "in-review"]
        assert placed_order.status_history[-1].changed_by_user_id is None

    def test_unknown_transaction_changes_nothing(self, placed_order, gateway):
        gateway.on("POST", SNAP_PATH, SNAP_RESPONSE)
        payment_service.initialize_payment(placed_order)
        gateway.on("GET", status_path(placed_order), {"status_code": "404", "status_message": "not found"})

        result = payment_service.verify_payment(placed_order)

        assert result["updated"] is False
        assert placed_order.status == "unpaid"

    def test_verify_before_initialize_is_rejected(self, placed_order):
        with pytest.raises(PaymentError):
            payment_service.verify_payment(placed_order)


class TestNotification:

    def test_bad_signature_is_403(self, client, placed_order, gateway):
        payload = signed_notification(placed_order)
        payload["signature_key"] = "0" * 128

        resp = client.post("/api/midtrans/notification", json=payload)

        assert resp.status_code == 403
        assert placed_order.payment_status == "pending"

    def test_service_raises_signature_error(self, placed_order):
        payload = signed_notification(placed_order)
        payload["gross_amount"] = "1.00"

        with pytest.raises(PaymentSignatureError):
            payment_service.handle_notification(payload)

    def test_missing_fields_is_400(self, client, placed_order):
        resp = client.post("/api/midtrans/notification", json={"order_id": placed_order.order_number})
        assert resp.status_code == 400

    def test_unknown_order_is_404(self, client, db_session, gateway):
        payload = {"order_id": "ORD-NOPE", "status_code": "200", "gross_amount": "1.00"}
        payload["signature_key"] = payment_service.notification_signature(
            "ORD-NOPE", "200", "1.00", MIDTRANS_SERVER_KEY
        )
        resp = client.post("/api/midtrans/notification", json=payload)
        assert resp.status_code == 404

    def test_settlement_uses_gateway_status(self, client, placed_order, gateway):
        gateway.on("GET", status_path(placed_order), settlement(placed_order, payment_type="gopay"))

        resp = client.post("/api/midtrans/notification", json=signed_notification(placed_order, "pending"))

        assert resp.status_code == 200
        assert resp.get_json()["paymentStatus"] == "paid"
        assert placed_order.payment_method == "e_wallet"
        assert placed_order.payment_gateway_method == "gopay"

    def test_falls_back_to_payload_when_status_unavailable(self, client, placed_order, gateway):
        resp = client.post("/api/midtrans/notification", json=signed_notification(placed_order, "expire"))

        assert resp.status_code == 200
        assert placed_order.payment_status == "failed"
        assert placed_order.status == "canceled"

    def test_repeated_notification_is_idempotent(self, client, placed_order, gateway):
        payload = signed_notification(placed_order)
        client.post("/api/midtrans/notification", json=payload)

        resp = client.post("/api/midtrans/notification", json=payload)

        assert resp.get_json()["updated"] is False
        assert [h.status for h in placed_order.status_history] == ["unpaid", "in-review"]

    def test_late_settlement_does_not_rewind_fulfillment(self, client, placed_order, admin, gateway):
        from printshop.services import order_service

        order_service.update_order(placed_order.id, admin, {"status": "printing"})
        client.post("/api/midtrans/notification", json=signed_notification(placed_order))

        assert placed_order.status == "printing"
        assert placed_order.payment_status == "paid"
