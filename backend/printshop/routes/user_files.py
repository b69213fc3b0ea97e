# Overview: Flask API routes for permanent user files (finalized order models).

from flask import Blueprint, Response, current_app, g, jsonify, request

from ..decorators import require_auth
from ..services import user_file_service
from ..validation import NotFoundError


user_files_bp = Blueprint("user_files", __name__, url_prefix="/api/user-files")


@user_files_bp.get("")
@require_auth
def list_user_files_route():
    """Own files; admins may filter by ?userId=."""
    try:
        owner_id = request.args.get("userId", type=int)
        files = user_file_service.list_user_files(g.current_user, owner_id=owner_id)
        return jsonify({"files": [f.to_dict() for f in files]}), 200
    except Exception:
        current_app.logger.exception("Failed to list user files")
        return jsonify({"error": "Internal server error"}), 500


@user_files_bp.get("/<int:file_id>")
@require_auth
def get_user_file_route(file_id: int):
    try:
        record = user_file_service.get_user_file(file_id, g.current_user)
        return jsonify({"file": record.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get user file")
        return jsonify({"error": "Internal server error"}), 500


@user_files_bp.get("/<int:file_id>/download")
@require_auth
def download_user_file_route(file_id: int):
    try:
        record = user_file_service.get_user_file(file_id, g.current_user)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    safe_name = record.file_name.replace('"', "")
    return Response(
        record.data,
        mimetype=record.mime_type or "application/octet-stream",
        headers={"Content-Disposition": f'attachment; filename="{safe_name}"'},
    )
