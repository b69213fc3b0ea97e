# Overview: Flask API routes for profile picture upload, download and removal.

from flask import Blueprint, Response, current_app, g, jsonify, request
from werkzeug.exceptions import RequestEntityTooLarge

from ..decorators import require_auth
from ..services import profile_picture_service
from ..services.temp_file_service import TempFileError
from ..validation import NotFoundError


profile_pictures_bp = Blueprint("profile_pictures", __name__, url_prefix="/api/profile-pictures")


@profile_pictures_bp.post("")
@require_auth
def upload_profile_picture_route():
    """
    Upload one image (multipart field `file`) owned by the current user.

    Returns:
        201: {"picture": {...}, "id": 7}
        400: no file, empty file, not JPEG/PNG/WebP/GIF
        413: image above PROFILE_PICTURE_MAX_BYTES
    """
    try:
        upload = request.files.get("file")
        if upload is None:
            return jsonify({"error": "No file provided"}), 400

        picture = profile_picture_service.create_profile_picture(
            g.current_user, upload.filename, upload.read(), upload.mimetype,
        )
        return jsonify({"picture": picture.to_dict(), "id": picture.id}), 201

    except TempFileError as e:
        return jsonify({"error": str(e)}), e.status_code
    except RequestEntityTooLarge:
        return jsonify({"error": "File exceeds the maximum upload size"}), 413
    except Exception:
        current_app.logger.exception("Failed to store profile picture")
        return jsonify({"error": "Internal server error"}), 500


@profile_pictures_bp.get("")
@require_auth
def list_profile_pictures_route():
    """Own pictures, newest first; admins may filter by ?userId=."""
    try:
        pictures = profile_picture_service.list_profile_pictures(
            g.current_user, owner_id=request.args.get("userId", type=int),
        )
        return jsonify({"pictures": [p.to_dict() for p in pictures]}), 200
    except Exception:
        current_app.logger.exception("Failed to list profile pictures")
        return jsonify({"error": "Internal server error"}), 500


@profile_pictures_bp.get("/current")
@require_auth
def current_profile_picture_route():
    picture = profile_picture_service.current_profile_picture(g.current_user)
    return jsonify({"picture": picture.to_dict() if picture else None}), 200


@profile_pictures_bp.get("/<int:picture_id>")
@require_auth
def get_profile_picture_route(picture_id: int):
    try:
        picture = profile_picture_service.get_profile_picture(picture_id, g.current_user)
        return jsonify({"picture": picture.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@profile_pictures_bp.get("/<int:picture_id>/download")
@require_auth
def download_profile_picture_route(picture_id: int):
    try:
        picture = profile_picture_service.get_profile_picture(picture_id, g.current_user)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    safe_name = picture.file_name.replace('"', "")
    return Response(
        picture.data,
        mimetype=picture.mime_type,
        headers={"Content-Disposition": f'inline; filename="{safe_name}"'},
    )


@profile_pictures_bp.delete("/<int:picture_id>")
@require_auth
def delete_profile_picture_route(picture_id: int):
    try:
        profile_picture_service.delete_profile_picture(picture_id, g.current_user)
        return jsonify({"message": "Profile picture deleted"}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to delete profile picture")
        return jsonify({"error": "Internal server error"}), 500
