# Overview: Flask API routes for the material catalog and pricing tables.

# backend/printshop/routes/catalog.py
"""
Catalog API Routes

Reads are public: the order wizard needs materials, colors, printing
options and price tables before the customer signs in. Inactive entries
are only listed for admins passing ?includeInactive=true.

Writes are admin-only. Pricing table edits carry the table `version`
they were based on; a stale version returns 409.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import optional_auth, require_admin, require_auth
from ..services import catalog_service, pricing_service
from ..validation import ConflictError, NotFoundError, ValidationError


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/catalog")


def _include_inactive() -> bool:
    user = getattr(g, "current_user", None)
    requested = request.args.get("includeInactive", "false").lower() == "true"
    return bool(requested and user is not None and user.is_admin)


# =============================================================================
# FILAMENTS
# =============================================================================

@catalog_bp.get("/filaments")
@optional_auth
def list_filaments_route():
    try:
        filaments = catalog_service.list_filaments(include_inactive=_include_inactive())
        return jsonify({"filaments": [f.to_dict() for f in filaments]}), 200
    except Exception:
        current_app.logger.exception("Failed to list filaments")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.post("/filaments")
@require_auth
@require_admin
def create_filament_route():
    """
    Request body:
    {
        "name": "PLA",
        "description": "Everyday prints",
        "colors": [{"name": "White", "hexCode": "#FFFFFF"}]
    }
    """
    try:
        filament = catalog_service.create_filament(request.get_json(silent=True))
        return jsonify({"filament": filament.to_dict()}), 201
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create filament")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.patch("/filaments/<int:filament_id>")
@require_auth
@require_admin
def update_filament_route(filament_id: int):
    try:
        filament = catalog_service.update_filament(filament_id, request.get_json(silent=True))
        return jsonify({"filament": filament.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update filament")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.delete("/filaments/<int:filament_id>")
@require_auth
@require_admin
def delete_filament_route(filament_id: int):
    try:
        catalog_service.delete_filament(filament_id)
        return jsonify({"message": "Filament type deactivated"}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to delete filament")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PRINTING OPTIONS
# =============================================================================

@catalog_bp.get("/printing-options")
@optional_auth
def list_printing_options_route():
    try:
        options = catalog_service.list_printing_options(include_inactive=_include_inactive())
        return jsonify({"printingOptions": options}), 200
    except Exception:
        current_app.logger.exception("Failed to list printing options")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.put("/printing-options/<option_type>")
@require_auth
@require_admin
def upsert_printing_option_route(option_type: str):
    """
    Request body:
    {
        "title": "Infill",
        "maxValue": 100,
        "values": [{"label": "Light", "value": "15%"}, {"label": "Solid", "value": "100%"}]
    }
    """
    try:
        option = catalog_service.upsert_printing_option(option_type, request.get_json(silent=True))
        return jsonify({"printingOption": option.to_dict()}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to save printing option")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PRICING
# =============================================================================

@catalog_bp.get("/pricing")
@optional_auth
def list_pricing_route():
    try:
        tables = pricing_service.list_pricing_tables(include_inactive=_include_inactive())
        return jsonify({"pricing": [t.to_dict() for t in tables]}), 200
    except Exception:
        current_app.logger.exception("Failed to list pricing tables")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.put("/pricing/<int:filament_type_id>")
@require_auth
@require_admin
def upsert_pricing_route(filament_type_id: int):
    """
    Replace a filament type's price rows.

    Request body:
    {
        "pricingTable": [{"layerHeight": 0.2, "pricePerGram": 800}],
        "isActive": true,      (optional)
        "version": 3           (optional, required to avoid lost updates)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        table = pricing_service.upsert_pricing_table(
            filament_type_id,
            data.get("pricingTable"),
            is_active=data.get("isActive"),
            expected_version=data.get("version"),
        )
        current_app.logger.info("Pricing table for filament %s updated by %s", filament_type_id, g.current_user.id)
        return jsonify({"pricing": table.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to save pricing table")
        return jsonify({"error": "Internal server error"}), 500
