"""
Account, session and health tests.

Verifies:
- Registration validates email/password and rejects duplicates
- Login issues a bearer token; logout revokes it
- Idle and deactivated sessions stop authenticating
- Health reports degraded while finalization jobs need reconciliation
"""

from datetime import timedelta

import pytest

from conftest import PASSWORD
from printshop.models import FinalizeFilesJob, SessionToken
from printshop.services import auth_service, session_service
from printshop.services.auth_service import PasswordValidationError
from printshop.time_utils import utcnow


# =============================================================================
# REGISTRATION / LOGIN
# =============================================================================


class TestRegistration:

    def test_register_signs_in(self, client, db_session):
        resp = client.post("/api/auth/register", json={
            "email": "  Budi@Example.com ",
            "name": "Budi",
            "password": "secret123",
            "phoneNumber": "081200000000",
        })

        assert resp.status_code == 201
        body = resp.get_json()
        assert body["user"]["email"] == "budi@example.com"
        assert body["user"]["role"] == "customer"

        me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['token']}"})
        assert me.get_json()["user"]["name"] == "Budi"

    def test_duplicate_email_conflicts(self, client, customer):
        resp = client.post("/api/auth/register", json={
            "email": "CUSTOMER@example.com", "name": "Again", "password": "secret123",
        })
        assert resp.status_code == 409

    @pytest.mark.parametrize("password", ["short1", "lettersonly", "12345678", ""])
    def test_weak_passwords(self, db_session, password):
        with pytest.raises(PasswordValidationError):
            auth_service.create_user("weak@example.com", "Weak", password)

    def test_bad_email_is_400(self, client, db_session):
        resp = client.post("/api/auth/register", json={"email": "nope", "name": "X", "password": "secret123"})
        assert resp.status_code == 400


class TestLogin:

    def test_login_and_logout(self, client, customer):
        resp = client.post("/api/auth/login", json={"email": customer.email, "password": PASSWORD})
        assert resp.status_code == 200
        token = resp.get_json()["token"]
        headers = {"Authorization": f"Bearer {token}"}

        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401
        assert client.post("/api/auth/logout", headers=headers).status_code == 401

    def test_wrong_password(self, client, customer):
        resp = client.post("/api/auth/login", json={"email": customer.email, "password": "Wrong1234"})
        assert resp.status_code == 401

    def test_missing_fields(self, client, db_session):
        assert client.post("/api/auth/login", json={"email": "a@b.co"}).status_code == 400

    def test_inactive_user_cannot_login(self, client, customer, db_session):
        customer.is_active = False
        db_session.commit()

        resp = client.post("/api/auth/login", json={"email": customer.email, "password": PASSWORD})
        assert resp.status_code == 401


class TestSessions:

    def test_only_hash_is_stored(self, customer, db_session):
        record, token = session_service.create_session(customer.id)
        assert record.token_hash == session_service.hash_token(token)
        assert token not in record.token_hash

    def test_idle_session_is_revoked(self, customer, db_session):
        record, token = session_service.create_session(customer.id)
        record.last_used_at = utcnow() - session_service.SESSION_IDLE_TIMEOUT - timedelta(minutes=1)
        db_session.commit()

        assert session_service.validate_session(token) is None
        assert db_session.get(SessionToken, record.id).revoked_reason == "Idle timeout"

    def test_expired_session_rejected(self, customer, db_session):
        record, token = session_service.create_session(customer.id)
        record.expires_at = utcnow() - timedelta(seconds=1)
        db_session.commit()

        assert session_service.validate_session(token) is None

    def test_deactivated_user_loses_session(self, customer, customer_headers, client, db_session):
        customer.is_active = False
        db_session.commit()

        assert client.get("/api/auth/me", headers=customer_headers).status_code == 401


# =============================================================================
# HEALTH
# =============================================================================


class TestHealth:

    def test_healthy(self, client, db_session):
        resp = client.get("/api/system/health")

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "healthy"
        assert body["timestamp"].endswith("Z")

    def test_degraded_when_jobs_need_reconciliation(self, client, placed_order, db_session):
        job = db_session.query(FinalizeFilesJob).filter_by(order_id=placed_order.id).one()
        job.status = "needs_reconciliation"
        db_session.commit()

        resp = client.get("/api/system/health")

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "degraded"
        assert body["checks"]["finalization_queue"]["details"]["needs_reconciliation"] == 1

    def test_version(self, client):
        assert client.get("/api/system/version").get_json()["api_version"] == "1.0.0"
