# Overview: Admin routes for inspecting and repairing order file finalization jobs.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_admin, require_auth
from ..models.orders import JOB_STATUSES
from ..services import finalization_service
from ..validation import ConflictError, NotFoundError


jobs_bp = Blueprint("jobs", __name__, url_prefix="/api/jobs")


@jobs_bp.get("/finalize")
@require_auth
@require_admin
def list_finalize_jobs_route():
    """?status=needs_reconciliation to list jobs waiting on a human."""
    status = request.args.get("status") or None
    if status and status not in JOB_STATUSES:
        return jsonify({"error": f"status must be one of: {', '.join(JOB_STATUSES)}"}), 400
    try:
        jobs = finalization_service.list_jobs(status)
        return jsonify({"jobs": [j.to_dict() for j in jobs]}), 200
    except Exception:
        current_app.logger.exception("Failed to list finalization jobs")
        return jsonify({"error": "Internal server error"}), 500


@jobs_bp.post("/finalize/<int:order_id>/requeue")
@require_auth
@require_admin
def requeue_finalize_job_route(order_id: int):
    try:
        job = finalization_service.requeue_job(order_id)
        return jsonify({"job": job.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to requeue finalization job")
        return jsonify({"error": "Internal server error"}), 500
