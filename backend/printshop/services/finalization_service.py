# Overview: Background processing of order file finalization jobs (temp upload -> user file).

"""
Order File Finalization

WHY: Order items are created pointing at temp upload tokens. Once the
order exists, each temp upload is copied into a permanent UserFile owned by
the customer, the item is re-pointed at it, and the temp upload is removed.

DESIGN:
- Work is driven by FinalizeFilesJob rows enqueued with the order (outbox).
  The order is authoritative: nothing here can roll it back or fail it.
- A job is claimed by moving pending -> running under a version check, so
  two workers never process the same job, and a job runs once per order.
- Item re-pointing is one follow-up write to the order's items; it never
  enqueues another job.
- A temp file that is gone (expired, deleted) cannot be recovered by
  retrying; the item keeps its token and the job ends in
  needs_reconciliation with the count of dangling items.
- Unexpected exceptions put the job back to pending with exponential
  backoff; after FINALIZE_MAX_ATTEMPTS it ends in needs_reconciliation.
- Deleting finalized temp uploads is best-effort and only logged on failure.
"""

from __future__ import annotations

import base64
import binascii
from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import FinalizeFilesJob, Order
from ..models.orders import JOB_NEEDS_RECONCILIATION, JOB_PENDING, JOB_RUNNING, JOB_SUCCEEDED
from ..validation import ConflictError, NotFoundError
from . import temp_file_service, user_file_service
from .concurrency import backoff_seconds, lock_for_update
from .temp_file_service import TEMP_TOKEN_PREFIX
from printshop.time_utils import utcnow


def _claim(job: FinalizeFilesJob) -> bool:
    """pending -> running; False if another worker got there first."""
    if job.status != JOB_PENDING:
        return False
    job_id = job.id
    job.status = JOB_RUNNING
    job.attempts += 1
    try:
        db.session.commit()
    except StaleDataError:
        db.session.rollback()
        return False
    except SQLAlchemyError:
        # Job stays pending; the next drain picks it up
        db.session.rollback()
        current_app.logger.exception("Finalization job %s could not be claimed", job_id)
        return False
    return True


def _commit_outcome(job_id: int) -> bool:
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Finalization job %s: failed to record outcome", job_id)
        return False
    return True


def _decode(file_data: str) -> bytes:
    return base64.b64decode(file_data, validate=True)


def _finalize_items(order: Order) -> tuple[int, int, list[str]]:
    """
    Copy temp uploads into user files and re-point items.

    Returns (finalized_count, missing_count, temp_ids_to_delete).
    """
    pending_items = [
        item for item in order.items
        if not item.file_finalized and item.file_ref.startswith(TEMP_TOKEN_PREFIX)
    ]
    if not pending_items:
        return 0, 0, []

    temp_ids = list(dict.fromkeys(item.file_ref for item in pending_items))
    retrieved = temp_file_service.retrieve_temp_files(temp_ids)["files"]
    by_id = {f["id"]: f for f in retrieved}

    finalized = 0
    missing = 0
    created_for: dict[str, int] = {}
    for item in pending_items:
        payload = by_id.get(item.file_ref)
        if payload is None:
            missing += 1
            current_app.logger.warning(
                "Order %s: temp file %s not found; item keeps its temp reference",
                order.order_number, item.file_ref,
            )
            continue

        if item.file_ref not in created_for:
            try:
                content = _decode(payload["fileData"])
            except (binascii.Error, ValueError):
                missing += 1
                current_app.logger.warning(
                    "Order %s: temp file %s has undecodable data", order.order_number, item.file_ref,
                )
                continue
            record = user_file_service.create_user_file(
                owner_id=order.user_id,
                file_name=item.file_name or payload.get("fileName") or "model.stl",
                content=content,
                file_type=payload.get("fileType") or "stl",
                mime_type=payload.get("mimeType") or "application/octet-stream",
                description=f"Order {order.order_number} - {item.material} {item.color or ''}".strip(),
                commit=False,
            )
            created_for[item.file_ref] = record.id

        item.file_ref = str(created_for[item.file_ref])
        item.file_finalized = True
        finalized += 1

    # Single follow-up write for every re-pointed item
    db.session.commit()
    return finalized, missing, list(created_for)


def _delete_temp_files(order: Order, temp_ids: list[str]) -> None:
    if not temp_ids:
        return
    try:
        temp_file_service.delete_temp_files(temp_ids)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Order %s: failed to delete finalized temp files", order.order_number)


def run_job(job: FinalizeFilesJob) -> FinalizeFilesJob:
    """
    Process one claimed-or-claimable job and record its outcome.

    Never raises for processing failures; they are recorded on the job.
    """
    if not _claim(job):
        return job

    job_id = job.id
    order = job.order
    order_number = order.order_number
    max_attempts = int(current_app.config.get("FINALIZE_MAX_ATTEMPTS", 5))
    try:
        finalized, missing, temp_ids = _finalize_items(order)
    except Exception as exc:
        db.session.rollback()
        current_app.logger.exception("Order %s: file finalization attempt %d failed", order_number, job.attempts)
        job.last_error = f"{type(exc).__name__}: {exc}"[:2000]
        if job.attempts >= max_attempts:
            job.status = JOB_NEEDS_RECONCILIATION
            job.completed_at = utcnow()
        else:
            job.status = JOB_PENDING
            delay = backoff_seconds(job.attempts, base=int(current_app.config.get("FINALIZE_BACKOFF_SECONDS", 30)))
            job.next_attempt_at = utcnow() + timedelta(seconds=delay)
        _commit_outcome(job_id)
        return job

    _delete_temp_files(order, temp_ids)

    job.finalized_count += finalized
    job.missing_count = missing
    job.completed_at = utcnow()
    if missing:
        job.status = JOB_NEEDS_RECONCILIATION
        job.last_error = f"{missing} item file(s) not found in temporary storage"
    else:
        job.status = JOB_SUCCEEDED
        job.last_error = None
    if _commit_outcome(job_id):
        current_app.logger.info(
            "Order %s: finalized %d file(s), %d missing", order_number, finalized, missing,
        )
    return job


def process_order_job(order_id: int) -> FinalizeFilesJob | None:
    """Run the job for one order now, if it is still pending."""
    job = db.session.query(FinalizeFilesJob).filter_by(order_id=order_id).first()
    if job is None or job.status != JOB_PENDING:
        return job
    return run_job(job)


def process_due_jobs(limit: int = 20) -> list[FinalizeFilesJob]:
    """Run pending jobs whose next_attempt_at has passed, oldest first."""
    query = (
        db.session.query(FinalizeFilesJob)
        .filter(FinalizeFilesJob.status == JOB_PENDING, FinalizeFilesJob.next_attempt_at <= utcnow())
        .order_by(FinalizeFilesJob.next_attempt_at, FinalizeFilesJob.id)
        .limit(limit)
    )
    jobs = lock_for_update(query).all()
    return [run_job(job) for job in jobs]


def requeue_job(order_id: int) -> FinalizeFilesJob:
    """Admin repair: put a needs_reconciliation job back in the queue."""
    job = db.session.query(FinalizeFilesJob).filter_by(order_id=order_id).first()
    if job is None:
        raise NotFoundError("No finalization job for this order")
    if job.status != JOB_NEEDS_RECONCILIATION:
        raise ConflictError(f"Job is {job.status}; only needs_reconciliation jobs can be requeued")
    job.status = JOB_PENDING
    job.next_attempt_at = utcnow()
    db.session.commit()
    return job


def list_jobs(status: str | None = None) -> list[FinalizeFilesJob]:
    query = db.session.query(FinalizeFilesJob)
    if status:
        query = query.filter(FinalizeFilesJob.status == status)
    return query.order_by(FinalizeFilesJob.id.desc()).all()
