# Overview: Flask API routes for shipping quotes, destination search and courier settings.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin, require_auth
from ..services import address_service, shipping_service
from ..services.shipping_service import ShippingError
from ..validation import NotFoundError, ValidationError, parse_non_negative_number


shipping_bp = Blueprint("shipping", __name__, url_prefix="/api/shipping")


@shipping_bp.post("/calculate-cost")
@require_auth
def calculate_cost_route():
    """
    Quote shipping services for a parcel.

    Request body:
    {
        "addressId": 4,            (or "destinationId": 12345)
        "weight": 250,             grams, before the 300 g minimum
        "courier": "jne"           (optional, default: every enabled courier)
    }

    Returns:
        200: {"origin", "destination", "weight", "billableWeight", "services": [...]}
        400: missing destination, disabled courier, bad weight
        502/503: rate API unavailable or failing
    """
    try:
        data = request.get_json(silent=True) or {}

        destination_id = data.get("destinationId")
        if data.get("addressId") is not None:
            address = address_service.get_address(int(data["addressId"]), g.current_user)
            destination_id = address.rajaongkir_destination_id

        weight = parse_non_negative_number("weight", data.get("weight"))
        if weight <= 0:
            return jsonify({"error": "weight must be greater than 0"}), 400

        couriers = [data["courier"]] if data.get("courier") else list(
            shipping_service.get_courier_settings().enabled_couriers or []
        )

        quotes = [
            shipping_service.calculate_shipping_cost(destination_id, weight, courier)
            for courier in couriers
        ]
        if not quotes:
            return jsonify({"error": "No couriers are enabled"}), 400

        return jsonify({
            "origin": quotes[0]["origin"],
            "destination": quotes[0]["destination"],
            "weight": quotes[0]["weight"],
            "billableWeight": quotes[0]["billableWeight"],
            "services": [s for q in quotes for s in q["services"]],
            "cached": all(q["cached"] for q in quotes),
        }), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ShippingError as e:
        return jsonify({"error": str(e)}), e.status_code
    except (ValidationError, TypeError, ValueError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to calculate shipping cost")
        return jsonify({"error": "Internal server error"}), 500


@shipping_bp.get("/search-destination")
@require_auth
def search_destination_route():
    """?search=<term>&limit=10&offset=0"""
    try:
        results = shipping_service.search_destinations(
            request.args.get("search", ""),
            limit=request.args.get("limit", shipping_service.DEFAULT_SEARCH_LIMIT, type=int),
            offset=request.args.get("offset", 0, type=int),
        )
        return jsonify({"destinations": results}), 200
    except ShippingError as e:
        return jsonify({"error": str(e)}), e.status_code
    except (ValidationError, ValueError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to search destinations")
        return jsonify({"error": "Internal server error"}), 500


@shipping_bp.get("/courier-settings")
def get_courier_settings_route():
    try:
        return jsonify({"settings": shipping_service.get_courier_settings().to_dict()}), 200
    except Exception:
        current_app.logger.exception("Failed to load courier settings")
        return jsonify({"error": "Internal server error"}), 500


@shipping_bp.put("/courier-settings")
@require_auth
@require_admin
def update_courier_settings_route():
    try:
        settings = shipping_service.update_courier_settings(request.get_json(silent=True))
        current_app.logger.info("Courier settings updated by %s", g.current_user.id)
        return jsonify({"settings": settings.to_dict()}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update courier settings")
        return jsonify({"error": "Internal server error"}), 500
