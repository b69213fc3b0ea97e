# Overview: Flask API routes for payments operations; parses input and returns JSON responses.

# backend/printshop/routes/payments.py
"""
Payment API Routes (Midtrans Snap)

- POST /api/payment/initialize  owner/admin starts a Snap session
- POST /api/payment/verify      owner/admin pulls the authoritative status
- POST /api/midtrans/notification  gateway callback, signature-checked

Verification is one-shot: the storefront calls it once after the Snap
redirect; the notification endpoint covers anything later.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..services import order_service, payment_service
from ..services.payment_service import PaymentError
from ..validation import NotFoundError, ValidationError


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payment")
midtrans_bp = Blueprint("midtrans", __name__, url_prefix="/api/midtrans")


def _order_from_body():
    data = request.get_json(silent=True) or {}
    order_id = data.get("orderId")
    if order_id in (None, ""):
        raise ValidationError("orderId is required")
    try:
        order_id = int(order_id)
    except (TypeError, ValueError):
        raise ValidationError("orderId must be an integer")
    return order_service.get_order(order_id, g.current_user), data


@payments_bp.post("/initialize")
@require_auth
def initialize_payment_route():
    """
    Request body: {"orderId": 12, "paymentMethod": "bank_transfer"}  (method optional)

    Returns:
        200: {"snapToken", "redirectUrl", "orderId", "orderNumber", "paymentExpiry"}
        404: order missing or not visible
        409: order already paid or no longer unpaid
        502/503: gateway failure or not configured
    """
    try:
        order, data = _order_from_body()
        session = payment_service.initialize_payment(order, data.get("paymentMethod") or None)
        return jsonify(session), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PaymentError as e:
        return jsonify({"error": str(e)}), e.status_code
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to initialize payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/verify")
@require_auth
def verify_payment_route():
    """Request body: {"orderId": 12}. Returns the reconciled payment/order status."""
    try:
        order, _ = _order_from_body()
        return jsonify(payment_service.verify_payment(order)), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PaymentError as e:
        return jsonify({"error": str(e)}), e.status_code
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to verify payment")
        return jsonify({"error": "Internal server error"}), 500


@midtrans_bp.post("/notification")
def notification_route():
    """
    Midtrans HTTP notification.

    Returns 200 once processed so the gateway stops retrying; 403 on a bad
    signature, 404 for unknown orders.
    """
    try:
        result = payment_service.handle_notification(request.get_json(silent=True))
        return jsonify(result), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PaymentError as e:
        return jsonify({"error": str(e)}), e.status_code
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to process payment notification")
        return jsonify({"error": "Internal server error"}), 500
