"""
Temporary upload and user file tests.

Verifies:
- Anonymous uploads get a tmp_ token and a 24 h expiry
- Empty and oversized uploads are rejected
- Expired uploads are invisible and removed by the cron cleanup
- Cleanup requires the cron secret
- Finalized user files are only visible to their owner
"""

import base64
import io
from datetime import timedelta

import pytest

from printshop.models import TempFile
from printshop.services import temp_file_service, user_file_service
from printshop.services.temp_file_service import TempFileError
from printshop.time_utils import utcnow
from printshop.validation import ValidationError


def _upload(client, content=b"solid cube\nendsolid cube\n", name="cube.stl", headers=None):
    return client.post(
        "/api/files/temp",
        data={"file": (io.BytesIO(content), name)},
        content_type="multipart/form-data",
        headers=headers or {},
    )


class TestTempUpload:

    def test_anonymous_upload(self, client, db_session):
        resp = _upload(client)

        assert resp.status_code == 201
        body = resp.get_json()["file"]
        assert body["id"].startswith("tmp_")
        assert body["fileType"] == "stl"
        assert body["mimeType"] == "model/stl"
        assert body["fileSize"] == len(b"solid cube\nendsolid cube\n")

        stored = db_session.get(TempFile, body["id"])
        assert stored.uploaded_by_user_id is None
        assert stored.expires_at - stored.created_at == timedelta(hours=24)

    def test_signed_in_upload_records_uploader(self, client, customer, customer_headers, db_session):
        resp = _upload(client, headers=customer_headers)
        stored = db_session.get(TempFile, resp.get_json()["file"]["id"])
        assert stored.uploaded_by_user_id == customer.id

    def test_unknown_extension_is_other(self, client, db_session):
        resp = _upload(client, name="notes.txt")
        assert resp.get_json()["file"]["fileType"] == "other"

    def test_3mf_upload_typed(self, client, db_session):
        body = _upload(client, content=b"PK\x03\x04", name="bracket.3MF").get_json()["file"]
        assert body["fileType"] == "3mf"
        assert body["mimeType"] == "model/3mf"

    def test_missing_file_field(self, client, db_session):
        resp = client.post("/api/files/temp", data={}, content_type="multipart/form-data")
        assert resp.status_code == 400

    def test_empty_file(self, client, db_session):
        resp = _upload(client, content=b"")
        assert resp.status_code == 400

    def test_oversized_file(self, client, app, db_session):
        resp = _upload(client, content=b"x" * (app.config["MAX_UPLOAD_BYTES"] + 1))
        assert resp.status_code == 413

    def test_path_components_stripped(self, db_session):
        temp = temp_file_service.store_temp_file("../../etc/passwd.stl", b"solid")
        assert temp.file_name == "passwd.stl"

    def test_unnamed_upload_rejected(self, db_session):
        with pytest.raises(TempFileError):
            temp_file_service.store_temp_file("  ", b"solid")


class TestRetrieveAndDelete:

    def test_retrieve_skips_unknown_and_expired(self, client, customer_headers, temp_upload, db_session):
        live = temp_upload(content=b"live")
        expired = temp_upload(content=b"old")
        db_session.get(TempFile, expired).expires_at = utcnow() - timedelta(seconds=1)
        db_session.commit()

        resp = client.post(
            "/api/files/temp/retrieve",
            json={"fileIds": [live, expired, "tmp_missing"]},
            headers=customer_headers,
        )

        assert resp.status_code == 200
        files = resp.get_json()["files"]
        assert [f["id"] for f in files] == [live]
        assert base64.b64decode(files[0]["fileData"]) == b"live"

    def test_retrieve_requires_list(self, client, customer_headers):
        resp = client.post("/api/files/temp/retrieve", json={"fileIds": "tmp_x"}, headers=customer_headers)
        assert resp.status_code == 400

    def test_too_many_ids(self, db_session):
        with pytest.raises(ValidationError):
            temp_file_service.retrieve_temp_files([f"tmp_{i}" for i in range(51)])

    def test_delete(self, client, customer_headers, temp_upload, db_session):
        token = temp_upload()

        resp = client.post("/api/files/temp/delete", json={"fileIds": [token]}, headers=customer_headers)

        assert resp.get_json()["deleted"] == 1
        assert db_session.get(TempFile, token) is None


class TestCleanup:

    def test_requires_cron_secret(self, client, db_session):
        assert client.post("/api/files/cleanup").status_code == 401
        assert client.post("/api/files/cleanup", headers={"Authorization": "Bearer wrong"}).status_code == 401

    def test_removes_only_expired(self, client, temp_upload, db_session):
        keep = temp_upload()
        drop = temp_upload()
        db_session.get(TempFile, drop).expires_at = utcnow() - timedelta(minutes=5)
        db_session.commit()

        resp = client.post("/api/files/cleanup", headers={"Authorization": "Bearer cron-secret"})

        assert resp.status_code == 200
        assert resp.get_json()["deleted"] == 1
        assert db_session.get(TempFile, keep) is not None

    def test_disabled_without_secret(self, client, app, monkeypatch, db_session):
        monkeypatch.setitem(app.config, "CRON_SECRET", "")
        resp = client.post("/api/files/cleanup", headers={"Authorization": "Bearer "})
        assert resp.status_code == 401


class TestUserFiles:

    @pytest.fixture
    def owned_file(self, customer):
        return user_file_service.create_user_file(
            owner_id=customer.id,
            file_name="bracket.stl",
            content=b"solid bracket",
            mime_type="model/stl",
            file_type="stl",
        )

    def test_owner_lists_and_downloads(self, client, customer_headers, owned_file):
        listed = client.get("/api/user-files", headers=customer_headers).get_json()["files"]
        assert [f["id"] for f in listed] == [owned_file.id]

        resp = client.get(f"/api/user-files/{owned_file.id}/download", headers=customer_headers)
        assert resp.status_code == 200
        assert resp.data == b"solid bracket"
        assert 'filename="bracket.stl"' in resp.headers["Content-Disposition"]

    def test_other_customer_cannot_see(self, client, other_headers, owned_file):
        assert client.get("/api/user-files", headers=other_headers).get_json()["files"] == []
        assert client.get(f"/api/user-files/{owned_file.id}", headers=other_headers).status_code == 404
        assert client.get(f"/api/user-files/{owned_file.id}/download", headers=other_headers).status_code == 404

    def test_admin_filters_by_owner(self, client, admin_headers, customer, owned_file):
        resp = client.get(f"/api/user-files?userId={customer.id}", headers=admin_headers)
        assert [f["id"] for f in resp.get_json()["files"]] == [owned_file.id]
