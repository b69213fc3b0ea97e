# Overview: Service-layer operations for payments via Midtrans Snap.

"""
Payment Service (Midtrans Snap)

WHY: Customers pay for a persisted order through Midtrans' hosted Snap
page. The gateway is the authority on whether money moved; this module
starts a Snap session for an order and reconciles the order's payment
snapshot (and status) with what Midtrans reports.

FLOW:
1. initialize_payment: create a Snap transaction for an unpaid order and
   store its token/redirect URL and expiry on the order.
2. Customer pays on Snap; Midtrans redirects back to
   /orders/{id}?payment=success|pending|error and POSTs a notification.
3. handle_notification (signature-checked) and verify_payment both fetch
   the authoritative transaction status and apply it.

STATUS MAPPING (transaction_status -> payment / order):
- capture + fraud accept, settlement -> paid / in-review
- cancel, deny, expire               -> failed / canceled
- pending                            -> pending / unchanged
- refund, partial_refund             -> refunded / unchanged

Order status changes go through the order transition table; a change the
table forbids (e.g. a late expiry on an order already printing) is logged
and skipped while the payment snapshot is still updated.
"""

from __future__ import annotations

import hashlib
import hmac

import httpx
from flask import current_app

from ..extensions import db
from ..models import Order
from ..validation import NotFoundError, ValidationError
from . import http_client, order_service
from printshop.time_utils import hours_from_now, utcnow


# =============================================================================
# CONSTANTS
# =============================================================================

SNAP_SANDBOX_URL = "https://app.sandbox.midtrans.com"
SNAP_PRODUCTION_URL = "https://app.midtrans.com"
API_SANDBOX_URL = "https://api.sandbox.midtrans.com"
API_PRODUCTION_URL = "https://api.midtrans.com"

PAYMENT_TYPE_METHODS = {
    "credit_card": "credit_card",
    "debit_card": "credit_card",
    "bank_transfer": "bank_transfer",
    "echannel": "bank_transfer",
    "bca_va": "bank_transfer",
    "bni_va": "bank_transfer",
    "bri_va": "bank_transfer",
    "permata_va": "bank_transfer",
    "other_va": "bank_transfer",
    "gopay": "e_wallet",
    "shopeepay": "e_wallet",
    "qris": "e_wallet",
}

METHOD_ENABLED_PAYMENTS = {
    "bank_transfer": ["bca_va", "bni_va", "bri_va", "permata_va", "echannel", "other_va"],
    "credit_card": ["credit_card"],
    "e_wallet": ["gopay", "shopeepay", "qris"],
}

ITEM_NAME_MAX = 50


class PaymentError(ValueError):
    """Raised for payment operations that cannot proceed (bad state, gateway failure)."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class PaymentSignatureError(PaymentError):
    """Raised when a notification's signature_key does not verify."""

    def __init__(self, message: str = "Invalid signature"):
        super().__init__(message, status_code=403)


# =============================================================================
# PURE MAPPING
# =============================================================================

def map_payment_type(payment_type: str | None) -> str | None:
    """Collapse a Midtrans payment_type into bank_transfer / credit_card / e_wallet."""
    if not payment_type:
        return None
    return PAYMENT_TYPE_METHODS.get(payment_type.lower())


def map_transaction_status(transaction_status: str | None, fraud_status: str | None = None) -> tuple[str, str | None]:
    """
    Returns (payment_status, order_status_or_None).

    None for the order status means "leave the order status alone".
    """
    status = (transaction_status or "").lower()
    if status == "capture":
        if (fraud_status or "accept").lower() == "accept":
            return "paid", "in-review"
        return "pending", None
    if status == "settlement":
        return "paid", "in-review"
    if status in {"cancel", "deny", "expire"}:
        return "failed", "canceled"
    if status in {"refund", "partial_refund"}:
        return "refunded", None
    return "pending", None


def notification_signature(order_id: str, status_code: str, gross_amount: str, server_key: str) -> str:
    raw = f"{order_id}{status_code}{gross_amount}{server_key}"
    return hashlib.sha512(raw.encode("utf-8")).hexdigest()


def verify_signature(payload: dict, server_key: str) -> bool:
    expected = notification_signature(
        str(payload.get("order_id", "")),
        str(payload.get("status_code", "")),
        str(payload.get("gross_amount", "")),
        server_key,
    )
    return hmac.compare_digest(expected, str(payload.get("signature_key", "")))


# =============================================================================
# GATEWAY CALLS
# =============================================================================

def _server_key() -> str:
    key = current_app.config.get("MIDTRANS_SERVER_KEY") or ""
    if not key:
        raise PaymentError("Payment gateway is not configured", status_code=503)
    return key


def _snap_base() -> str:
    return SNAP_PRODUCTION_URL if current_app.config.get("MIDTRANS_IS_PRODUCTION") else SNAP_SANDBOX_URL


def _api_base() -> str:
    return API_PRODUCTION_URL if current_app.config.get("MIDTRANS_IS_PRODUCTION") else API_SANDBOX_URL


def _gateway(base_url: str) -> httpx.Client:
    return http_client.build_client(
        base_url,
        headers={"Accept": "application/json", "Content-Type": "application/json"},
        auth=(_server_key(), ""),
    )


def create_snap_transaction(params: dict) -> dict:
    """POST /snap/v1/transactions -> {"token", "redirect_url"}."""
    try:
        with _gateway(_snap_base()) as client:
            response = client.post("/snap/v1/transactions", json=params)
    except httpx.HTTPError as exc:
        raise PaymentError(f"Payment gateway unreachable: {exc}", status_code=502)

    try:
        body = response.json()
    except ValueError:
        body = {}
    if response.status_code >= 400 or not body.get("token"):
        messages = body.get("error_messages") if isinstance(body, dict) else None
        detail = "; ".join(messages) if isinstance(messages, list) else f"status {response.status_code}"
        raise PaymentError(f"Payment gateway rejected the transaction: {detail}", status_code=502)
    return body


def fetch_transaction_status(midtrans_order_id: str) -> dict | None:
    """GET /v2/{order_id}/status; None when Midtrans has no such transaction yet."""
    try:
        with _gateway(_api_base()) as client:
            response = client.get(f"/v2/{midtrans_order_id}/status")
    except httpx.HTTPError as exc:
        raise PaymentError(f"Payment gateway unreachable: {exc}", status_code=502)

    if response.status_code == 404:
        return None
    if response.status_code >= 400:
        raise PaymentError(f"Payment status check failed with status {response.status_code}", status_code=502)
    try:
        body = response.json()
    except ValueError:
        raise PaymentError("Payment gateway returned invalid JSON", status_code=502)
    # Midtrans reports a missing transaction as HTTP 200 with status_code "404"
    if str(body.get("status_code")) == "404":
        return None
    return body


# =============================================================================
# ORDER OPERATIONS
# =============================================================================

def build_snap_params(order: Order, payment_method: str | None = None) -> dict:
    base = current_app.config.get("PUBLIC_BASE_URL", "").rstrip("/")
    item_details = [
        {
            "id": f"item-{item.id}",
            "price": int(round(item.total_price)),
            "quantity": 1,
            "name": f"{item.file_name} x{item.quantity}"[:ITEM_NAME_MAX],
        }
        for item in order.items
    ]
    if order.shipping_cost:
        courier = " ".join(p for p in (order.courier_name or (order.courier or "").upper(), order.courier_service) if p)
        item_details.append({
            "id": "shipping",
            "price": int(round(order.shipping_cost)),
            "quantity": 1,
            "name": f"Shipping {courier}".strip()[:ITEM_NAME_MAX],
        })

    # Snap rejects requests whose item lines do not sum to gross_amount
    gross_amount = int(round(order.total_amount or 0))
    difference = gross_amount - sum(line["price"] * line["quantity"] for line in item_details)
    if difference:
        item_details.append({"id": "rounding", "price": difference, "quantity": 1, "name": "Rounding"})

    user = order.user
    params = {
        "transaction_details": {"order_id": order.order_number, "gross_amount": gross_amount},
        "item_details": item_details,
        "customer_details": {
            "first_name": user.name if user else order.recipient_name,
            "email": user.email if user else None,
            "phone": order.phone_number or (user.phone_number if user else None),
            "shipping_address": {
                "first_name": order.recipient_name,
                "phone": order.phone_number,
                "address": " ".join(p for p in (order.address_line1, order.address_line2) if p),
                "city": order.regency_name,
                "postal_code": order.postal_code,
                "country_code": "IDN",
            },
        },
        "callbacks": {
            "finish": f"{base}/orders/{order.id}?payment=success",
            "unfinish": f"{base}/orders/{order.id}?payment=pending",
            "error": f"{base}/orders/{order.id}?payment=error",
        },
        "expiry": {"unit": "hour", "duration": int(current_app.config.get("PAYMENT_EXPIRY_HOURS", 24))},
    }
    if payment_method:
        params["enabled_payments"] = METHOD_ENABLED_PAYMENTS[payment_method]
    return params


def initialize_payment(order: Order, payment_method: str | None = None) -> dict:
    """
    Start (or resume) a Snap session for an unpaid order.

    An unexpired session is returned as-is instead of creating a second one.

    Returns:
        {"snapToken", "redirectUrl", "orderId", "orderNumber", "paymentExpiry"}

    Raises:
        PaymentError: order not payable, unknown method, gateway failure
    """
    if payment_method is not None and payment_method not in METHOD_ENABLED_PAYMENTS:
        raise ValidationError(f"paymentMethod must be one of: {', '.join(METHOD_ENABLED_PAYMENTS)}")
    if order.payment_status == "paid":
        raise PaymentError("Order is already paid", status_code=409)
    if order.status != "unpaid":
        raise PaymentError(f"Order in status '{order.status}' cannot be paid", status_code=409)

    if order.snap_token and order.payment_expiry and order.payment_expiry > utcnow():
        return _session_dict(order)

    result = create_snap_transaction(build_snap_params(order, payment_method))

    order.midtrans_order_id = order.order_number
    order.snap_token = result["token"]
    order.snap_url = result.get("redirect_url")
    order.payment_expiry = hours_from_now(int(current_app.config.get("PAYMENT_EXPIRY_HOURS", 24)))
    if payment_method:
        order.payment_method = payment_method
    order.payment_status = "pending"
    db.session.commit()

    current_app.logger.info("Initialized payment for order %s", order.order_number)
    return _session_dict(order)


def _session_dict(order: Order) -> dict:
    return {
        "snapToken": order.snap_token,
        "redirectUrl": order.snap_url,
        "orderId": order.id,
        "orderNumber": order.order_number,
        "paymentExpiry": order.payment_expiry.isoformat() + "Z" if order.payment_expiry else None,
    }


def apply_transaction_status(order: Order, transaction: dict) -> dict:
    """
    Reconcile an order with a Midtrans transaction status payload.

    Writes only when something changed. Returns a summary dict.
    """
    payment_status, target_status = map_transaction_status(
        transaction.get("transaction_status"), transaction.get("fraud_status")
    )
    changed = False

    if order.payment_status != payment_status:
        order.payment_status = payment_status
        changed = True
    if payment_status == "paid" and order.paid_at is None:
        order.paid_at = utcnow()
        changed = True

    transaction_id = transaction.get("transaction_id")
    if transaction_id and order.transaction_id != transaction_id:
        order.transaction_id = transaction_id
        changed = True

    gateway_method = transaction.get("payment_type")
    if gateway_method and order.payment_gateway_method != gateway_method:
        order.payment_gateway_method = gateway_method
        mapped = map_payment_type(gateway_method)
        if mapped:
            order.payment_method = mapped
        changed = True

    if target_status and order.status != target_status:
        if order_service.can_transition(order.status, target_status):
            order_service.change_status(order, target_status, changed_by_user_id=None)
            changed = True
        else:
            current_app.logger.warning(
                "Order %s: gateway reported %s but status %s cannot move to %s",
                order.order_number, transaction.get("transaction_status"), order.status, target_status,
            )

    if changed:
        db.session.commit()

    return {
        "orderId": order.id,
        "orderNumber": order.order_number,
        "paymentStatus": order.payment_status,
        "orderStatus": order.status,
        "transactionStatus": transaction.get("transaction_status"),
        "updated": changed,
    }


def verify_payment(order: Order) -> dict:
    """Pull the authoritative status for an order and apply it."""
    if not order.midtrans_order_id:
        raise PaymentError("Payment has not been initialized for this order")
    transaction = fetch_transaction_status(order.midtrans_order_id)
    if transaction is None:
        return {
            "orderId": order.id,
            "orderNumber": order.order_number,
            "paymentStatus": order.payment_status,
            "orderStatus": order.status,
            "transactionStatus": None,
            "updated": False,
        }
    return apply_transaction_status(order, transaction)


def handle_notification(payload: dict) -> dict:
    """
    Process a Midtrans HTTP notification.

    Raises:
        ValidationError: missing fields
        PaymentSignatureError: signature mismatch
        NotFoundError: no order with that order_id
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid notification payload")
    for key in ("order_id", "status_code", "gross_amount", "signature_key"):
        if not payload.get(key):
            raise ValidationError(f"Notification missing {key}")

    if not verify_signature(payload, _server_key()):
        current_app.logger.warning("Rejected Midtrans notification with bad signature for %s", payload.get("order_id"))
        raise PaymentSignatureError()

    order_id = str(payload["order_id"])
    order = db.session.query(Order).filter(
        db.or_(Order.midtrans_order_id == order_id, Order.order_number == order_id)
    ).first()
    if order is None:
        raise NotFoundError("Order not found")

    transaction = fetch_transaction_status(order_id) or payload
    result = apply_transaction_status(order, transaction)
    current_app.logger.info(
        "Midtrans notification for %s: payment %s, order %s",
        order.order_number, result["paymentStatus"], result["orderStatus"],
    )
    return result
