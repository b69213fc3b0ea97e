# Overview: Flask API routes for orders operations; parses input and returns JSON responses.

# backend/printshop/routes/orders.py
"""
Order API Routes

DESIGN:
- POST creates the whole aggregate (items, shipping snapshot, summary) in
  one write; prices are recomputed server-side. File finalization runs
  after the commit and never changes the response status.
- Customers list and read their own orders; admins see every order and
  are the only ones allowed to PATCH or DELETE.
- PATCH accepts `version`; a stale one returns 409, as does a status
  change outside the allowed transitions.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin, require_auth
from ..extensions import db
from ..services import finalization_service, order_service
from ..services.order_service import OrderError, OrderTransitionError
from ..services.pricing_service import PricingError, PricingMismatchError
from ..validation import ConflictError, NotFoundError, ValidationError


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _finalize_after_commit(order) -> None:
    if not current_app.config.get("FINALIZE_FILES_INLINE", True):
        return
    # Read before the job runs; a failed write expires the instance
    order_id, order_number = order.id, order.order_number
    try:
        finalization_service.process_order_job(order_id)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Inline file finalization failed for order %s", order_number)


@orders_bp.get("")
@require_auth
def list_orders_route():
    """
    Query params:
    - status: filter by order status
    - userId: (admin only) filter by customer
    - limit, offset: paging (limit max 100)
    """
    try:
        orders, total = order_service.list_orders(
            g.current_user,
            status=request.args.get("status") or None,
            user_id=request.args.get("userId", type=int),
            limit=request.args.get("limit", 20, type=int),
            offset=request.args.get("offset", 0, type=int),
        )
        return jsonify({"orders": [o.to_dict() for o in orders], "total": total}), 200
    except (ValidationError, OrderError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("")
@require_auth
def create_order_route():
    """
    Create an order.

    Request body:
    {
        "items": [{
            "file": "tmp_...",
            "fileName": "bracket.stl",
            "fileSize": 123456,
            "quantity": 2,
            "configuration": {"material": "PLA", "color": "White",
                              "layerHeight": 0.2, "infill": "20%", "wallCount": 2},
            "statistics": {"printTime": 95, "filamentWeight": 50},
            "pricing": {"pricePerGram": 800},          (optional echo)
            "totalPrice": 80000                        (optional echo)
        }],
        "shipping": {"addressId": 3, "courier": "jne", "service": "REG", "cost": 15000, ...},
        "summary": {"totalAmount": 95000},             (optional echo)
        "customerNotes": "..."
    }

    Returns:
        201: {"order": {...}}
        400: invalid payload or unpriced item
        409: price echo mismatch or duplicate orderNumber
    """
    try:
        order = order_service.create_order(g.current_user, request.get_json(silent=True))
    except PricingMismatchError as e:
        current_app.logger.warning("Rejected order from user %s: %s", g.current_user.id, e)
        return jsonify({"error": str(e)}), 409
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except (ValidationError, PricingError, OrderError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500

    _finalize_after_commit(order)
    return jsonify({"order": order.to_dict()}), 201


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id, g.current_user)
        return jsonify({"order": order.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>")
@require_auth
@require_admin
def update_order_route(order_id: int):
    """
    Admin update.

    Request body (any subset):
    {
        "status": "printing",
        "adminNotes": "...",
        "customerNotes": "...",
        "trackingNumber": "JNE123",
        "shippedAt": "2025-01-01T00:00:00Z",
        "version": 4
    }
    """
    try:
        order = order_service.update_order(order_id, g.current_user, request.get_json(silent=True))
        return jsonify({"order": order.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except (ConflictError, OrderTransitionError) as e:
        return jsonify({"error": str(e)}), 409
    except (ValidationError, OrderError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.delete("/<int:order_id>")
@require_auth
@require_admin
def delete_order_route(order_id: int):
    try:
        order_service.delete_order(order_id)
        return jsonify({"message": "Order deleted"}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to delete order")
        return jsonify({"error": "Internal server error"}), 500
