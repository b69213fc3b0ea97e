# Overview: Service-layer operations for owner-scoped profile pictures.

"""
Profile Pictures

Any signed-in user may upload avatar images for themselves; the uploader
is always the current user, never a value from the request. Only the
owner or an admin can read or delete a picture. The newest upload is the
user's current picture.
"""

from __future__ import annotations

import os

from flask import current_app

from ..extensions import db
from ..models import ProfilePicture, User
from ..validation import NotFoundError
from .temp_file_service import TempFileError


ALLOWED_MIME_TYPES = ("image/jpeg", "image/png", "image/webp", "image/gif")


def create_profile_picture(owner: User, file_name: str, content: bytes, mime_type: str | None) -> ProfilePicture:
    """
    Raises:
        TempFileError: missing name, empty payload, non-image type (400) or
            payload above PROFILE_PICTURE_MAX_BYTES (413)
    """
    file_name = os.path.basename((file_name or "").strip())
    if not file_name:
        raise TempFileError("A file name is required")
    if not content:
        raise TempFileError("Uploaded file is empty")
    if mime_type not in ALLOWED_MIME_TYPES:
        raise TempFileError("Invalid file type. Only JPEG, PNG, WebP, and GIF are allowed.")

    max_bytes = int(current_app.config.get("PROFILE_PICTURE_MAX_BYTES", 2 * 1024 * 1024))
    if len(content) > max_bytes:
        raise TempFileError(f"File size exceeds the {max_bytes // (1024 * 1024)}MB limit", status_code=413)

    picture = ProfilePicture(
        uploaded_by_user_id=owner.id,
        file_name=file_name,
        file_size=len(content),
        mime_type=mime_type,
        data=content,
    )
    db.session.add(picture)
    db.session.commit()
    current_app.logger.info("User %s uploaded profile picture %s", owner.id, picture.id)
    return picture


def get_profile_picture(picture_id: int, viewer: User) -> ProfilePicture:
    """Owner or admin only; anyone else gets NotFoundError."""
    picture = db.session.get(ProfilePicture, picture_id)
    if picture is None or not (viewer.is_admin or picture.uploaded_by_user_id == viewer.id):
        raise NotFoundError("Profile picture not found")
    return picture


def current_profile_picture(user: User) -> ProfilePicture | None:
    return (
        db.session.query(ProfilePicture)
        .filter(ProfilePicture.uploaded_by_user_id == user.id)
        .order_by(ProfilePicture.created_at.desc(), ProfilePicture.id.desc())
        .first()
    )


def list_profile_pictures(viewer: User, *, owner_id: int | None = None) -> list[ProfilePicture]:
    query = db.session.query(ProfilePicture)
    if viewer.is_admin:
        if owner_id is not None:
            query = query.filter(ProfilePicture.uploaded_by_user_id == owner_id)
    else:
        query = query.filter(ProfilePicture.uploaded_by_user_id == viewer.id)
    return query.order_by(ProfilePicture.created_at.desc(), ProfilePicture.id.desc()).all()


def delete_profile_picture(picture_id: int, viewer: User) -> None:
    picture = get_profile_picture(picture_id, viewer)
    db.session.delete(picture)
    db.session.commit()
