# Overview: Flask API routes for temporary model uploads and their cleanup.

from flask import Blueprint, current_app, g, jsonify, request
from werkzeug.exceptions import RequestEntityTooLarge

from ..decorators import optional_auth, require_auth, require_cron_secret
from ..services import temp_file_service
from ..services.temp_file_service import TempFileError
from ..validation import ValidationError


files_bp = Blueprint("files", __name__, url_prefix="/api/files")


@files_bp.post("/temp")
@optional_auth
def upload_temp_route():
    """
    Upload one model file before checkout (multipart field `file`).

    Anonymous uploads are allowed; the wizard uploads before sign-in.

    Returns:
        201: {"file": {id, fileName, fileSize, mimeType, fileType, createdAt, expiresAt}}
        400: no file, empty file
        413: file above MAX_UPLOAD_BYTES
    """
    try:
        upload = request.files.get("file")
        if upload is None:
            return jsonify({"error": "No file uploaded"}), 400

        user = getattr(g, "current_user", None)
        temp = temp_file_service.store_temp_file(
            upload.filename,
            upload.read(),
            mime_type=upload.mimetype if upload.mimetype != "application/octet-stream" else None,
            uploaded_by_user_id=user.id if user else None,
        )
        return jsonify({"file": temp.to_dict()}), 201

    except TempFileError as e:
        return jsonify({"error": str(e)}), e.status_code
    except RequestEntityTooLarge:
        return jsonify({"error": "File exceeds the maximum upload size"}), 413
    except Exception:
        current_app.logger.exception("Failed to store temp upload")
        return jsonify({"error": "Internal server error"}), 500


@files_bp.post("/temp/retrieve")
@require_auth
def retrieve_temp_route():
    """Request body: {"fileIds": ["tmp_..."]}. Unknown or expired ids are omitted."""
    try:
        data = request.get_json(silent=True) or {}
        return jsonify(temp_file_service.retrieve_temp_files(data.get("fileIds"))), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to retrieve temp files")
        return jsonify({"error": "Internal server error"}), 500


@files_bp.post("/temp/delete")
@require_auth
def delete_temp_route():
    try:
        data = request.get_json(silent=True) or {}
        deleted = temp_file_service.delete_temp_files(data.get("fileIds"))
        return jsonify({"deleted": deleted}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to delete temp files")
        return jsonify({"error": "Internal server error"}), 500


@files_bp.post("/cleanup")
@require_cron_secret
def cleanup_route():
    """Scheduled job: delete expired temp uploads."""
    try:
        deleted = temp_file_service.cleanup_expired_temp_files()
        current_app.logger.info("Temp file cleanup removed %d file(s)", deleted)
        return jsonify({"deleted": deleted}), 200
    except Exception:
        current_app.logger.exception("Failed to clean up temp files")
        return jsonify({"error": "Internal server error"}), 500
