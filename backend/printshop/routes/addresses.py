# Overview: Flask API routes for saved shipping addresses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..services import address_service
from ..validation import NotFoundError, ValidationError


addresses_bp = Blueprint("addresses", __name__, url_prefix="/api/addresses")


@addresses_bp.get("")
@require_auth
def list_addresses_route():
    try:
        addresses = address_service.list_addresses(g.current_user)
        return jsonify({"addresses": [a.to_dict() for a in addresses]}), 200
    except Exception:
        current_app.logger.exception("Failed to list addresses")
        return jsonify({"error": "Internal server error"}), 500


@addresses_bp.post("")
@require_auth
def create_address_route():
    """
    Request body (camelCase address fields):
    {
        "recipientName": "Budi",
        "phoneNumber": "081234567890",
        "addressLine1": "Jl. Merdeka 1",
        "provinceCode": "32", "regencyCode": "32.73", "districtCode": "32.73.01",
        "villageName": "Braga", "districtName": "Sumur Bandung",
        "regencyName": "Kota Bandung", "provinceName": "Jawa Barat",
        "postalCode": "40111",
        "isDefault": true,
        "rajaOngkir": {"destinationId": 12345, "locationLabel": "..."}   (optional)
    }
    """
    try:
        address = address_service.create_address(g.current_user, request.get_json(silent=True))
        return jsonify({"address": address.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create address")
        return jsonify({"error": "Internal server error"}), 500


@addresses_bp.get("/<int:address_id>")
@require_auth
def get_address_route(address_id: int):
    try:
        address = address_service.get_address(address_id, g.current_user)
        return jsonify({"address": address.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get address")
        return jsonify({"error": "Internal server error"}), 500


@addresses_bp.patch("/<int:address_id>")
@require_auth
def update_address_route(address_id: int):
    try:
        address = address_service.update_address(address_id, g.current_user, request.get_json(silent=True))
        return jsonify({"address": address.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update address")
        return jsonify({"error": "Internal server error"}), 500


@addresses_bp.post("/<int:address_id>/default")
@require_auth
def set_default_address_route(address_id: int):
    try:
        address = address_service.set_default_address(address_id, g.current_user)
        return jsonify({"address": address.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to set default address")
        return jsonify({"error": "Internal server error"}), 500


@addresses_bp.delete("/<int:address_id>")
@require_auth
def delete_address_route(address_id: int):
    try:
        address_service.delete_address(address_id, g.current_user)
        return jsonify({"message": "Address deleted"}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to delete address")
        return jsonify({"error": "Internal server error"}), 500
