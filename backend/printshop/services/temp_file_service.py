# Overview: Service-layer operations for pre-checkout temporary uploads.

"""
Temporary Upload Service

Customers upload model files before they sign in. Each upload is stored as
a TempFile row addressed by an opaque token and expires after
TEMP_FILE_TTL_HOURS. Order file finalization turns tokens into permanent
UserFile rows; the cleanup job deletes whatever is left after expiry.
"""

from __future__ import annotations

import base64
import os
import uuid
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import TempFile
from ..validation import ValidationError
from printshop.time_utils import utcnow


MAX_IDS_PER_REQUEST = 50
TEMP_TOKEN_PREFIX = "tmp_"
EXTENSION_FILE_TYPES = {
    ".stl": "stl",
    ".3mf": "3mf",
    ".obj": "obj",
    ".glb": "glb",
    ".gltf": "glb",
}
MIME_TYPES = {
    "stl": "model/stl",
    "3mf": "model/3mf",
    "obj": "model/obj",
    "glb": "model/gltf-binary",
}


class TempFileError(ValueError):
    """Raised for rejected uploads (empty, too large, unnamed)."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


def detect_file_type(file_name: str) -> str:
    return EXTENSION_FILE_TYPES.get(os.path.splitext(file_name or "")[1].lower(), "other")


def new_token() -> str:
    return f"{TEMP_TOKEN_PREFIX}{uuid.uuid4().hex}"


def store_temp_file(
    file_name: str,
    content: bytes,
    *,
    mime_type: str | None = None,
    uploaded_by_user_id: int | None = None,
) -> TempFile:
    """
    Persist one upload.

    Raises:
        TempFileError: missing name, empty payload, or payload above MAX_UPLOAD_BYTES
    """
    file_name = os.path.basename((file_name or "").strip())
    if not file_name:
        raise TempFileError("A file name is required")
    if not content:
        raise TempFileError("Uploaded file is empty")

    max_bytes = int(current_app.config.get("MAX_UPLOAD_BYTES", 500 * 1024 * 1024))
    if len(content) > max_bytes:
        raise TempFileError(f"File exceeds the maximum size of {max_bytes // (1024 * 1024)} MB", status_code=413)

    file_type = detect_file_type(file_name)
    now = utcnow()
    temp = TempFile(
        id=new_token(),
        file_name=file_name,
        file_size=len(content),
        mime_type=mime_type or MIME_TYPES.get(file_type, "application/octet-stream"),
        file_type=file_type,
        data=content,
        uploaded_by_user_id=uploaded_by_user_id,
        created_at=now,
        expires_at=now + timedelta(hours=int(current_app.config.get("TEMP_FILE_TTL_HOURS", 24))),
    )
    db.session.add(temp)
    db.session.commit()
    return temp


def _clean_ids(file_ids) -> list[str]:
    if not isinstance(file_ids, list) or not file_ids:
        raise ValidationError("fileIds must be a non-empty list")
    if len(file_ids) > MAX_IDS_PER_REQUEST:
        raise ValidationError(f"At most {MAX_IDS_PER_REQUEST} fileIds per request")
    return list(dict.fromkeys(str(i) for i in file_ids if i))


def retrieve_temp_files(file_ids) -> dict:
    """
    Bulk fetch unexpired uploads.

    Returns {"files": [{id, fileData (base64), fileName, fileSize, fileType, mimeType}]};
    unknown or expired ids are simply absent.
    """
    ids = _clean_ids(file_ids)
    now = utcnow()
    rows = db.session.query(TempFile).filter(
        TempFile.id.in_(ids),
        TempFile.expires_at > now,
    ).all()
    by_id = {row.id: row for row in rows}
    files = []
    for file_id in ids:
        row = by_id.get(file_id)
        if row is None:
            continue
        files.append({
            "id": row.id,
            "fileData": base64.b64encode(row.data).decode("ascii"),
            "fileName": row.file_name,
            "fileSize": row.file_size,
            "fileType": row.file_type,
            "mimeType": row.mime_type,
        })
    return {"files": files}


def delete_temp_files(file_ids) -> int:
    ids = _clean_ids(file_ids)
    deleted = db.session.query(TempFile).filter(TempFile.id.in_(ids)).delete(synchronize_session=False)
    db.session.commit()
    return deleted


def cleanup_expired_temp_files() -> int:
    """Delete every temp upload past its expiry. Returns the count removed."""
    deleted = db.session.query(TempFile).filter(
        TempFile.expires_at <= utcnow()
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted
