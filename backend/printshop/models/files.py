from __future__ import annotations

from ..extensions import db
from printshop.time_utils import to_utc_z

FILE_TYPES = ("stl", "3mf", "obj", "glb", "other")


class TempFile(db.Model):
    """
    Pre-checkout upload, addressed by an opaque token.

    Uploads happen before the customer signs in, so uploaded_by is optional.
    Rows expire after TEMP_FILE_TTL_HOURS and are removed by the cleanup job
    or by order file finalization.
    """
    __tablename__ = "temp_files"

    id = db.Column(db.String(40), primary_key=True)
    file_name = db.Column(db.String(255), nullable=False)
    file_size = db.Column(db.Integer, nullable=False)
    mime_type = db.Column(db.String(120), nullable=False, default="application/octet-stream")
    file_type = db.Column(db.String(16), nullable=False, default="other")
    data = db.Column(db.LargeBinary, nullable=False)
    uploaded_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "fileName": self.file_name,
            "fileSize": self.file_size,
            "mimeType": self.mime_type,
            "fileType": self.file_type,
            "createdAt": to_utc_z(self.created_at),
            "expiresAt": to_utc_z(self.expires_at),
        }


class UserFile(db.Model):
    """Permanent model file owned by exactly one user."""
    __tablename__ = "user_files"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    uploaded_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    file_name = db.Column(db.String(255), nullable=False)
    file_size = db.Column(db.Integer, nullable=False)
    mime_type = db.Column(db.String(120), nullable=False, default="application/octet-stream")
    file_type = db.Column(db.String(16), nullable=False, default="stl")
    description = db.Column(db.String(255), nullable=True)
    data = db.Column(db.LargeBinary, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    uploaded_by = db.relationship("User", backref=db.backref("files", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "uploadedBy": self.uploaded_by_user_id,
            "fileName": self.file_name,
            "fileSize": self.file_size,
            "mimeType": self.mime_type,
            "fileType": self.file_type,
            "description": self.description,
            "createdAt": to_utc_z(self.created_at),
        }


class ProfilePicture(db.Model):
    """Avatar image owned by the user who uploaded it."""
    __tablename__ = "profile_pictures"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    uploaded_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    file_name = db.Column(db.String(255), nullable=False)
    file_size = db.Column(db.Integer, nullable=False)
    mime_type = db.Column(db.String(120), nullable=False)
    data = db.Column(db.LargeBinary, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    uploaded_by = db.relationship("User", backref=db.backref("profile_pictures", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "uploadedBy": self.uploaded_by_user_id,
            "fileName": self.file_name,
            "fileSize": self.file_size,
            "mimeType": self.mime_type,
            "url": f"/api/profile-pictures/{self.id}/download",
            "createdAt": to_utc_z(self.created_at),
        }
