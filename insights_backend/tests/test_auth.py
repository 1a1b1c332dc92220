"""
Authentication Tests
====================

Tests for:
1. Password hashing and JWT helpers
2. Register / login / refresh / me endpoints
3. Ownership helpers (other users' rows look like missing rows)
"""

from datetime import timedelta
from pathlib import Path
import sys

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from insights_backend.auth import (
    create_access_token, create_refresh_token, get_auth_service, get_password_hash,
    is_password_too_long, require_case, require_notebook, user_id_from_token, verify_password,
)
from insights_backend.db.models import LegalCase, Notebook, Subscription
from insights_backend.errors import AccessDeniedError, NotFoundError
from insights_backend.tests.helpers import register


# =============================================================================
# Unit Tests
# =============================================================================

class TestPasswords:

    def test_hash_and_verify(self):
        hashed = get_password_hash("tajne-haslo")
        assert hashed != "tajne-haslo"
        assert verify_password("tajne-haslo", hashed) is True
        assert verify_password("inne-haslo", hashed) is False

    def test_bcrypt_byte_limit(self):
        assert is_password_too_long("ą" * 37) is True  # 74 bytes
        assert is_password_too_long("a" * 72) is False
        with pytest.raises(ValueError):
            get_password_hash("a" * 73)

    def test_garbage_hash_does_not_raise(self):
        assert verify_password("x", "not-a-bcrypt-hash") is False


class TestTokens:

    def test_access_token_round_trip(self, sqlalchemy_db):
        token = create_access_token({"sub": "user-1"})
        assert user_id_from_token(token) == "user-1"

    def test_refresh_token_is_not_an_access_token(self, sqlalchemy_db):
        token = create_refresh_token({"sub": "user-1"})
        assert user_id_from_token(token) is None
        assert user_id_from_token(token, expected_type="refresh") == "user-1"

    def test_expired_token(self, sqlalchemy_db):
        token = create_access_token({"sub": "user-1"}, expires_delta=timedelta(seconds=-5))
        assert user_id_from_token(token) is None

    def test_empty_token(self):
        assert user_id_from_token(None) is None
        assert user_id_from_token("") is None


class TestAuthService:

    def test_register_creates_free_subscription(self, db, user):
        subscription = db.query(Subscription).filter(Subscription.user_id == user.id).first()
        assert subscription is not None
        assert subscription.plan_id.value == "free"
        assert subscription.legal_plan_id.value == "free"
        assert subscription.legal_cases_limit == 2

    def test_email_is_normalized_and_unique(self, db, user):
        service = get_auth_service(db)
        with pytest.raises(ValueError):
            service.register_user("  JAN@example.pl ", "inne-haslo")
        assert service.authenticate_user("Jan@Example.pl", "tajne-haslo").id == user.id

    def test_inactive_user_cannot_login(self, db, user):
        user.is_active = False
        db.commit()
        assert get_auth_service(db).authenticate_user("jan@example.pl", "tajne-haslo") is None
        assert get_auth_service(db).get_auth_context(user.id) is None


class TestOwnership:

    def test_foreign_rows_are_not_found(self, db, user):
        other = get_auth_service(db).register_user("obcy@example.pl", "tajne-haslo")
        notebook = Notebook(user_id=user.id, title="Mój")
        legal_case = LegalCase(user_id=user.id, title="Moja sprawa", category="cywilne")
        db.add_all([notebook, legal_case])
        db.commit()

        assert require_notebook(db, notebook.id, user.id).id == notebook.id
        with pytest.raises(NotFoundError):
            require_notebook(db, notebook.id, other.id)
        with pytest.raises(AccessDeniedError):
            require_case(db, legal_case.id, other.id)


# =============================================================================
# Integration Tests (API Level)
# =============================================================================

class TestAuthApi:

    def test_register_and_me(self, client):
        tokens = register(client, email="Anna@Example.pl")
        assert tokens["token_type"] == "bearer"

        me = client.get("/auth/me", headers={"Authorization": f"Bearer {tokens['access_token']}"}).json()
        assert me["email"] == "anna@example.pl"
        assert me["full_name"] == "Anna Nowak"
        assert "password_hash" not in me

    def test_duplicate_registration(self, client):
        register(client)
        response = client.post("/auth/register", json={"email": "anna@example.pl", "password": "tajne-haslo"})
        assert response.status_code == 400
        assert response.json() == {"error": "Email already registered"}

    def test_password_too_long(self, client):
        response = client.post("/auth/register", json={"email": "a@example.pl", "password": "x" * 80})
        assert response.status_code == 400
        assert "too long" in response.json()["error"]

    def test_login(self, client):
        register(client)
        ok = client.post("/auth/login", json={"email": "anna@example.pl", "password": "tajne-haslo"})
        assert ok.status_code == 200
        bad = client.post("/auth/login", json={"email": "anna@example.pl", "password": "zle-haslo"})
        assert bad.status_code == 401
        assert bad.json() == {"error": "Invalid email or password"}

    def test_refresh(self, client):
        tokens = register(client)
        response = client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert response.status_code == 200
        assert client.post("/auth/refresh", json={"refresh_token": tokens["access_token"]}).status_code == 401

    def test_protected_endpoint_requires_bearer(self, client):
        assert client.get("/auth/me").status_code == 401
        assert client.get("/auth/me", headers={"Authorization": "Bearer nonsense"}).status_code == 401
        assert client.get("/auth/me", headers={"Authorization": "Token abc"}).status_code == 401

    def test_update_profile(self, client, auth_headers):
        response = client.patch("/users/me", json={"full_name": "Anna Kowalska"}, headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["full_name"] == "Anna Kowalska"

    def test_health_is_public(self, client):
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert "version" in body
