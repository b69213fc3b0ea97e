# Overview: Service-layer operations for permanent, owner-scoped model files.

from __future__ import annotations

from ..extensions import db
from ..models import User, UserFile
from ..validation import NotFoundError


def create_user_file(
    *,
    owner_id: int,
    file_name: str,
    content: bytes,
    file_type: str = "stl",
    mime_type: str = "application/octet-stream",
    description: str | None = None,
    commit: bool = True,
) -> UserFile:
    record = UserFile(
        uploaded_by_user_id=owner_id,
        file_name=file_name,
        file_size=len(content),
        file_type=file_type,
        mime_type=mime_type,
        description=(description or "")[:255] or None,
        data=content,
    )
    db.session.add(record)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return record


def get_user_file(file_id: int, viewer: User) -> UserFile:
    """Owner or admin only; anyone else gets NotFoundError so ids cannot be enumerated."""
    record = db.session.get(UserFile, file_id)
    if record is None or not (viewer.is_admin or record.uploaded_by_user_id == viewer.id):
        raise NotFoundError("File not found")
    return record


def list_user_files(viewer: User, *, owner_id: int | None = None) -> list[UserFile]:
    query = db.session.query(UserFile)
    if viewer.is_admin:
        if owner_id is not None:
            query = query.filter(UserFile.uploaded_by_user_id == owner_id)
    else:
        query = query.filter(UserFile.uploaded_by_user_id == viewer.id)
    return query.order_by(UserFile.created_at.desc(), UserFile.id.desc()).all()
