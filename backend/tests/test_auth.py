"""
Tests for authentication endpoints and the bearer-token identity check.

Tests cover:
- Registration (201, aggregated validation, duplicate email)
- Login (token issue, invalid credentials)
- /auth/me with valid, missing and broken tokens
- Error envelope for malformed JSON and unknown routes
"""

import logging
from datetime import timedelta

from fastapi.testclient import TestClient

import models
from auth.security import create_access_token

logger = logging.getLogger(__name__)


# ============== Registration ==============


def test_register_creates_user(client: TestClient):
    """Test that registration returns the user without any password material."""
    response = client.post(
        "/auth/register",
        json={"email": "  New.User@Example.com ", "password": "longenough", "firstName": " Ada "}
    )

    assert response.status_code == 201, f"Expected 201, got {response.status_code}: {response.json()}"
    user = response.json()["user"]
    assert user["email"] == "new.user@example.com"
    assert user["firstName"] == "Ada"
    assert user["lastName"] is None
    assert "createdAt" in user
    assert "passwordHash" not in user and "password_hash" not in user
    logger.info("✓ Registration returns normalized user")


def test_register_reports_all_invalid_fields(client: TestClient):
    """Test that every invalid field is reported in one response."""
    response = client.post(
        "/auth/register",
        json={"email": "not-an-email", "password": "short", "firstName": "   ", "lastName": ""}
    )

    assert response.status_code == 422, f"Expected 422, got {response.status_code}: {response.json()}"
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["details"] == {
        "email": "Invalid email",
        "password": "Password must be at least 8 characters",
        "firstName": "First name must be at least 1 character",
        "lastName": "Last name must be at least 1 character",
    }
    logger.info("✓ Registration validation aggregated")


def test_register_duplicate_email(client: TestClient, owner_user: models.User):
    """Test that an email can only be registered once (case-insensitive)."""
    response = client.post(
        "/auth/register",
        json={"email": "OWNER@example.com", "password": "longenough"}
    )

    assert response.status_code == 409, f"Expected 409, got {response.status_code}: {response.json()}"
    assert response.json()["error"]["code"] == "EMAIL_IN_USE"
    logger.info("✓ Duplicate email rejected")


def test_register_invalid_json(client: TestClient):
    """Test that an unparseable body yields 400 INVALID_JSON."""
    response = client.post(
        "/auth/register",
        content="{not json",
        headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 400, f"Expected 400, got {response.status_code}: {response.json()}"
    assert response.json() == {"error": {"code": "INVALID_JSON", "message": "Invalid JSON body"}}
    logger.info("✓ Malformed JSON rejected")


def test_register_non_object_body(client: TestClient):
    """Test that a JSON array body is a validation error, not a crash."""
    response = client.post("/auth/register", json=["email", "password"])

    assert response.status_code == 422
    assert response.json()["error"]["details"] == {"body": "Request body must be a JSON object"}


# ============== Login ==============


def test_login_returns_token_usable_for_me(client: TestClient, owner_user: models.User):
    """Test that a login token authenticates /auth/me."""
    response = client.post(
        "/auth/login",
        json={"email": "owner@example.com", "password": "password123"}
    )

    assert response.status_code == 200, f"Expected 200, got {response.status_code}: {response.json()}"
    body = response.json()
    assert body["user"]["id"] == owner_user.id
    assert body["token"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {body['token']}"})
    assert me.status_code == 200
    assert me.json()["user"]["email"] == "owner@example.com"
    logger.info("✓ Login token accepted by /auth/me")


def test_login_wrong_password(client: TestClient, owner_user: models.User):
    """Test that a wrong password and an unknown email look the same."""
    wrong_password = client.post(
        "/auth/login",
        json={"email": "owner@example.com", "password": "wrong-password"}
    )
    unknown_email = client.post(
        "/auth/login",
        json={"email": "nobody@example.com", "password": "password123"}
    )

    for response in (wrong_password, unknown_email):
        assert response.status_code == 401, f"Expected 401, got {response.status_code}: {response.json()}"
        assert response.json()["error"] == {"code": "INVALID_CREDENTIALS", "message": "Invalid credentials"}
    logger.info("✓ Invalid credentials rejected uniformly")


def test_logout_is_stateless(client: TestClient):
    response = client.post("/auth/logout")

    assert response.status_code == 200
    assert response.json() == {"ok": True}


# ============== Identity ==============


def test_me_without_token(client: TestClient):
    """Test that protected endpoints require a bearer token."""
    response = client.get("/auth/me")

    assert response.status_code == 401, f"Expected 401, got {response.status_code}: {response.json()}"
    assert response.json()["error"]["code"] == "UNAUTHORIZED"
    assert response.headers.get("www-authenticate") == "Bearer"


def test_me_with_garbage_token(client: TestClient):
    response = client.get("/auth/me", headers={"Authorization": "Bearer not.a.jwt"})

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "UNAUTHORIZED"


def test_me_with_expired_token(client: TestClient, owner_user: models.User):
    """Test that expired tokens are rejected."""
    token = create_access_token(owner_user.id, expires_delta=timedelta(seconds=-10))

    response = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401, f"Expected 401, got {response.status_code}: {response.json()}"


def test_me_for_deleted_user(client: TestClient, test_db, owner_user: models.User, auth_headers_for):
    """Test that a valid token for a user that no longer exists is rejected."""
    headers = auth_headers_for(owner_user)
    test_db.delete(owner_user)
    test_db.commit()

    response = client.get("/auth/me", headers=headers)

    assert response.status_code == 401, f"Expected 401, got {response.status_code}: {response.json()}"


def test_health_and_unknown_route(client: TestClient):
    """Test the health probe and the envelope on unknown routes."""
    assert client.get("/health").json() == {"ok": True}

    response = client.get("/does-not-exist")
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"


def test_register_concurrent_duplicate(client: TestClient, test_db, monkeypatch):
    """Test that an email registered between the check and the insert yields 409, not 500."""
    from auth import routes as auth_routes

    real_hash = auth_routes.hash_password

    def hash_while_other_request_registers(password: str) -> str:
        test_db.add(models.User(email="racer@example.com", password_hash=real_hash(password)))
        test_db.commit()
        return real_hash(password)

    monkeypatch.setattr(auth_routes, "hash_password", hash_while_other_request_registers)

    response = client.post("/auth/register", json={"email": "racer@example.com", "password": "longenough"})

    assert response.status_code == 409, f"Expected 409, got {response.status_code}: {response.json()}"
    assert response.json()["error"]["code"] == "EMAIL_IN_USE"
    assert test_db.query(models.User).filter(models.User.email == "racer@example.com").count() == 1
