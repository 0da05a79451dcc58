"""
Auth API & identity tests.

Tests cover:
  - Password hashing (bcrypt)
  - Access tokens: generation, verification, expiry, wrong type
  - Auth API: login, church registration, me
  - Bearer gate on /api/v1/* (public prefixes, inactive users)
"""

from datetime import datetime, timedelta, timezone

import jwt as pyjwt
import pytest
from sqlalchemy import select

from churchdesk.models import db
from churchdesk.models.auth import ROLE_SUPER_ADMIN, User
from churchdesk.models.church import SUBSCRIPTION_TRIAL, Church
from churchdesk.models.platform import CATEGORY_NEW_CHURCH, PlatformActivity
from churchdesk.services.jwt_service import decode_access_token, generate_access_token
from churchdesk.utils.crypto import hash_password, verify_password
from churchdesk.utils.helpers import as_utc
from tests.factories import PASSWORD, auth_header


# ═══════════════════════════════════════════════════════════════
# CRYPTO
# ═══════════════════════════════════════════════════════════════

class TestPasswordHashing:
    def test_hash_and_verify(self):
        hashed = hash_password("CorrectHorse9")
        assert hashed != "CorrectHorse9"
        assert verify_password("CorrectHorse9", hashed)
        assert not verify_password("wrong-password", hashed)

    def test_verify_rejects_empty_or_foreign_hash(self):
        assert not verify_password("anything", "")
        assert not verify_password("anything", "pbkdf2:sha256:600000$abc$def")


# ═══════════════════════════════════════════════════════════════
# TOKENS
# ═══════════════════════════════════════════════════════════════

class TestAccessTokens:
    def test_roundtrip_carries_identity(self, org):
        token = generate_access_token(org.member.id, org.church.id, org.member.role)
        payload = decode_access_token(token)
        assert payload["sub"] == org.member.id
        assert payload["church_id"] == org.church.id
        assert payload["type"] == "access"
        assert payload["jti"]

    def test_expired_token_rejected(self, app, org):
        past = datetime.now(timezone.utc) - timedelta(hours=2)
        token = pyjwt.encode(
            {"sub": org.member.id, "type": "access", "iat": past, "exp": past + timedelta(minutes=1)},
            app.config["JWT_SECRET_KEY"], algorithm="HS256",
        )
        with pytest.raises(pyjwt.ExpiredSignatureError):
            decode_access_token(token)

    def test_wrong_token_type_rejected(self, app, org):
        token = pyjwt.encode(
            {"sub": org.member.id, "type": "refresh",
             "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
            app.config["JWT_SECRET_KEY"], algorithm="HS256",
        )
        with pytest.raises(pyjwt.InvalidTokenError):
            decode_access_token(token)


# ═══════════════════════════════════════════════════════════════
# LOGIN
# ═══════════════════════════════════════════════════════════════

class TestLogin:
    def test_login_success(self, client, org):
        res = client.post("/api/v1/auth/login", json={"email": "Mary.Member@example.org", "password": PASSWORD})
        assert res.status_code == 200
        body = res.get_json()
        assert body["token_type"] == "Bearer"
        assert body["expires_in"] == 28800
        assert body["user"]["id"] == org.member.id
        assert body["user"]["department_name"] == "Youth"
        assert "password_hash" not in body["user"]
        assert db.session.get(User, org.member.id).last_login_at is not None

    def test_wrong_password_and_unknown_email_look_the_same(self, client, org):
        bad_pw = client.post("/api/v1/auth/login", json={"email": "mary.member@example.org", "password": "nope-nope"})
        unknown = client.post("/api/v1/auth/login", json={"email": "ghost@example.org", "password": PASSWORD})
        assert bad_pw.status_code == unknown.status_code == 401
        assert bad_pw.get_json()["error"] == unknown.get_json()["error"]
        assert bad_pw.get_json()["code"] == "ERR_UNAUTHENTICATED"

    def test_missing_fields(self, client):
        res = client.post("/api/v1/auth/login", json={"email": "a@example.org"})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_inactive_user_cannot_login(self, client, org):
        org.member.is_active = False
        db.session.commit()
        res = client.post("/api/v1/auth/login", json={"email": "mary.member@example.org", "password": PASSWORD})
        assert res.status_code == 401


# ═══════════════════════════════════════════════════════════════
# REGISTER
# ═══════════════════════════════════════════════════════════════

class TestRegister:
    payload = {
        "church_name": "Bethel Assembly",
        "admin_name": "Ruth Admin",
        "admin_email": "ruth@bethel.example.org",
        "admin_password": "BethelPass1",
    }

    def test_register_creates_trial_church_and_super_admin(self, client):
        res = client.post("/api/v1/auth/register", json=self.payload)
        assert res.status_code == 201
        body = res.get_json()
        assert body["access_token"]
        assert body["user"]["role"] == ROLE_SUPER_ADMIN
        assert body["church"]["subscription_status"] == SUBSCRIPTION_TRIAL

        church = db.session.get(Church, body["church"]["id"])
        assert church.name == "Bethel Assembly"
        remaining = as_utc(church.subscription_ends_at) - datetime.now(timezone.utc)
        assert timedelta(days=29) < remaining <= timedelta(days=30)

        activity = db.session.scalars(
            select(PlatformActivity).where(PlatformActivity.church_id == church.id)
        ).one()
        assert activity.category == CATEGORY_NEW_CHURCH

    def test_duplicate_email(self, client):
        assert client.post("/api/v1/auth/register", json=self.payload).status_code == 201
        res = client.post("/api/v1/auth/register", json={**self.payload, "church_name": "Other"})
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_DUPLICATE"

    def test_short_password(self, client):
        res = client.post("/api/v1/auth/register", json={**self.payload, "admin_password": "short"})
        assert res.status_code == 422
        assert res.get_json()["details"]["password"] == "too short"

    def test_missing_field(self, client):
        res = client.post("/api/v1/auth/register", json={"church_name": "X"})
        assert res.status_code == 400
        assert "admin_email" in res.get_json()["details"]


# ═══════════════════════════════════════════════════════════════
# BEARER GATE
# ═══════════════════════════════════════════════════════════════

class TestBearerGate:
    def test_health_is_public(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json()["status"] == "ok"
        assert res.headers.get("X-Request-ID")

    def test_missing_token(self, client):
        res = client.get("/api/v1/requisitions")
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHENTICATED"

    def test_garbage_token(self, client):
        res = client.get("/api/v1/requisitions", headers={"Authorization": "Bearer not.a.jwt"})
        assert res.status_code == 401

    def test_me(self, client, org):
        res = client.get("/api/v1/auth/me", headers=auth_header(org.president))
        assert res.status_code == 200
        body = res.get_json()
        assert body["role"] == "Section President"
        assert body["section_name"] == "Main"
        assert body["church"]["id"] == org.church.id

    def test_deactivated_user_token_rejected(self, client, org):
        headers = auth_header(org.member)
        org.member.is_active = False
        db.session.commit()
        assert client.get("/api/v1/auth/me", headers=headers).status_code == 401

    def test_role_change_takes_effect_without_new_token(self, client, org):
        headers = auth_header(org.member)
        org.member.role = "Department Head"
        db.session.commit()
        assert client.get("/api/v1/auth/me", headers=headers).get_json()["role"] == "Department Head"

    def test_unknown_api_path_is_json_404(self, client, org):
        res = client.get("/api/v1/nope", headers=auth_header(org.member))
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_non_json_body_rejected(self, client, org):
        res = client.post(
            "/api/v1/requisitions", data="title=x",
            content_type="application/x-www-form-urlencoded",
            headers=auth_header(org.member),
        )
        assert res.status_code == 415
        res = client.post(
            "/api/v1/requisitions", data="hello", content_type="text/plain", headers=auth_header(org.member),
        )
        assert res.status_code == 415
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"
