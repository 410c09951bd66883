"""Tests for authentication endpoints and flows."""

from datetime import datetime, timedelta

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.user import User
from app.services.jwt import get_jwt_service


def _login(client: TestClient, email: str, password: str):
    return client.post("/api/login", json={"email": email, "password": password})


class TestRegistration:
    """Tests for user registration."""

    def test_register_success(self, client: TestClient):
        """Register a new user; no tokens are issued."""
        response = client.post(
            "/api/register",
            json={"username": "new_user", "email": "New@Example.com", "password": "Str0ng!pass"},
        )
        assert response.status_code == 201
        data = response.json()
        assert data["message"].startswith("Registration successful")
        assert data["user"]["username"] == "new_user"
        assert data["user"]["email"] == "new@example.com"
        assert data["user"]["isActive"] is True
        assert "passwordHash" not in data["user"]
        assert "accessToken" not in data

    def test_register_duplicate_email(self, client: TestClient, test_user: dict):
        """Reject duplicate email registration."""
        response = client.post(
            "/api/register",
            json={"username": "someone_else", "email": "TEST@example.com", "password": "Str0ng!pass"},
        )
        assert response.status_code == 409
        assert response.json()["detail"] == "Email already registered"
        assert response.json()["code"] == "CONFLICT"

    def test_register_duplicate_username(self, client: TestClient, test_user: dict):
        """Reject a username that is already taken."""
        response = client.post(
            "/api/register",
            json={"username": "testuser", "email": "fresh@example.com", "password": "Str0ng!pass"},
        )
        assert response.status_code == 409
        assert response.json()["detail"] == "Username already taken"

    def test_register_weak_password(self, client: TestClient):
        """Passwords need upper, lower, digit and special characters."""
        response = client.post(
            "/api/register",
            json={"username": "weakling", "email": "weak@example.com", "password": "alllowercase1"},
        )
        assert response.status_code == 400
        data = response.json()
        assert data["detail"] == "Validation failed"
        assert data["code"] == "VALIDATION_FAILED"
        assert any(e["field"] == "password" for e in data["errors"])

    def test_register_invalid_username(self, client: TestClient):
        """Usernames are limited to letters, digits, underscore and hyphen."""
        response = client.post(
            "/api/register",
            json={"username": "bad name!", "email": "bad@example.com", "password": "Str0ng!pass"},
        )
        assert response.status_code == 400
        assert any(e["field"] == "username" for e in response.json()["errors"])

    def test_register_password_over_72_bytes(self, client: TestClient, db_session: Session):
        """Multi-byte passwords are limited by encoded length, not character count."""
        password = "Aa1!" + "é" * 40
        response = client.post(
            "/api/register",
            json={"username": "accented", "email": "accent@example.com", "password": password},
        )
        assert response.status_code == 400
        errors = response.json()["errors"]
        assert any(e["field"] == "password" and "72 bytes" in e["message"] for e in errors)
        assert db_session.query(User).filter(User.username == "accented").count() == 0

    def test_register_invalid_email(self, client: TestClient):
        response = client.post(
            "/api/register",
            json={"username": "mailless", "email": "not-an-email", "password": "Str0ng!pass"},
        )
        assert response.status_code == 400


class TestLogin:
    """Tests for user login and lockout."""

    def test_login_success(self, client: TestClient, test_user: dict, db_session: Session):
        """Login returns an access token, a refresh token and the user."""
        response = _login(client, "test@example.com", test_user["password"])
        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Login successful"
        assert data["accessToken"]
        assert data["refreshToken"]
        assert data["tokenExpiration"]
        assert data["user"]["email"] == "test@example.com"
        assert data["user"]["lastLoginAt"] is not None

        db_session.expire_all()
        user = db_session.query(User).filter(User.email == "test@example.com").first()
        assert user.last_login_at is not None

    def test_login_case_insensitive(self, client: TestClient, test_user: dict):
        """Login works regardless of email case."""
        response = _login(client, "TEST@EXAMPLE.COM", test_user["password"])
        assert response.status_code == 200

    def test_login_wrong_password(self, client: TestClient, test_user: dict, db_session: Session):
        """Reject login with wrong password and count the failure."""
        response = _login(client, "test@example.com", "Wrong-pass1")
        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_CREDENTIALS"

        db_session.expire_all()
        user = db_session.query(User).filter(User.email == "test@example.com").first()
        assert user.failed_login_attempts == 1

    def test_login_unknown_email_same_error(self, client: TestClient, test_user: dict):
        """Unknown email and wrong password are indistinguishable."""
        unknown = _login(client, "nobody@example.com", "Wrong-pass1")
        wrong = _login(client, "test@example.com", "Wrong-pass1")
        assert unknown.status_code == wrong.status_code == 401
        assert unknown.json() == wrong.json()

    def test_lockout_after_repeated_failures(self, client: TestClient, test_user: dict, db_session: Session):
        """The account locks after MAX_LOGIN_ATTEMPTS failures, even for the right password."""
        for _ in range(get_settings().MAX_LOGIN_ATTEMPTS):
            assert _login(client, "test@example.com", "Wrong-pass1").status_code == 401

        response = _login(client, "test@example.com", test_user["password"])
        assert response.status_code == 423
        assert response.json()["code"] == "ACCOUNT_LOCKED"

        db_session.expire_all()
        user = db_session.query(User).filter(User.email == "test@example.com").first()
        assert user.locked_until > datetime.utcnow() + timedelta(minutes=get_settings().LOCKOUT_MINUTES - 1)

    def test_expired_lock_allows_login(self, client: TestClient, test_user: dict, db_session: Session):
        """Once the lock runs out, a correct password succeeds and resets the counter."""
        user = db_session.query(User).filter(User.email == "test@example.com").first()
        user.failed_login_attempts = get_settings().MAX_LOGIN_ATTEMPTS
        user.locked_until = datetime.utcnow() - timedelta(minutes=1)
        db_session.commit()

        response = _login(client, "test@example.com", test_user["password"])
        assert response.status_code == 200

        db_session.expire_all()
        user = db_session.query(User).filter(User.email == "test@example.com").first()
        assert user.failed_login_attempts == 0
        assert user.locked_until is None

    def test_expired_lock_restarts_count(self, client: TestClient, test_user: dict, db_session: Session):
        """A failure after an expired lock starts counting from one again."""
        user = db_session.query(User).filter(User.email == "test@example.com").first()
        user.failed_login_attempts = get_settings().MAX_LOGIN_ATTEMPTS
        user.locked_until = datetime.utcnow() - timedelta(minutes=1)
        db_session.commit()

        assert _login(client, "test@example.com", "Wrong-pass1").status_code == 401

        db_session.expire_all()
        user = db_session.query(User).filter(User.email == "test@example.com").first()
        assert user.failed_login_attempts == 1
        assert user.locked_until is None

    def test_success_resets_failure_count(self, client: TestClient, test_user: dict, db_session: Session):
        _login(client, "test@example.com", "Wrong-pass1")
        _login(client, "test@example.com", "Wrong-pass1")
        assert _login(client, "test@example.com", test_user["password"]).status_code == 200

        db_session.expire_all()
        user = db_session.query(User).filter(User.email == "test@example.com").first()
        assert user.failed_login_attempts == 0

    def test_deactivated_account(self, client: TestClient, test_user: dict, db_session: Session):
        """Deactivated accounts cannot log in."""
        user = db_session.query(User).filter(User.email == "test@example.com").first()
        user.is_active = False
        db_session.commit()

        response = _login(client, "test@example.com", test_user["password"])
        assert response.status_code == 401
        assert response.json()["code"] == "ACCOUNT_DEACTIVATED"


class TestTokenVerification:
    """Tests for access token handling on protected routes."""

    def test_profile_with_valid_token(self, client: TestClient, test_user: dict):
        response = client.get("/api/profile", headers=test_user["headers"])
        assert response.status_code == 200
        assert response.json()["user"]["username"] == "testuser"

    def test_missing_token(self, client: TestClient):
        response = client.get("/api/profile")
        assert response.status_code == 401
        assert response.json()["code"] == "TOKEN_MISSING"

    def test_malformed_token(self, client: TestClient):
        response = client.get("/api/profile", headers={"Authorization": "Bearer invalid.token.here"})
        assert response.status_code == 403
        assert response.json()["code"] == "TOKEN_INVALID"

    def test_expired_token(self, client: TestClient, test_user: dict):
        token = get_jwt_service().create_access_token(
            test_user["user_id"], test_user["email"], test_user["username"], 0, expires_in=timedelta(seconds=-5)
        )
        response = client.get("/api/profile", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json()["code"] == "TOKEN_EXPIRED"

    def test_refresh_token_rejected_as_access_token(self, client: TestClient, test_user: dict):
        response = client.get("/api/profile", headers={"Authorization": f"Bearer {test_user['refresh_token']}"})
        assert response.status_code == 403

    def test_token_payload_claims(self, test_user: dict):
        """Access tokens carry identity, token version, issuer and audience."""
        payload = get_jwt_service().verify_access_token(test_user["token"])
        assert payload["sub"] == str(test_user["user_id"])
        assert payload["email"] == "test@example.com"
        assert payload["username"] == "testuser"
        assert payload["tokenVersion"] == 0
        assert payload["iss"] == get_settings().JWT_ISSUER
        assert payload["aud"] == get_settings().JWT_AUDIENCE

    def test_token_for_deactivated_user(self, client: TestClient, test_user: dict, db_session: Session):
        user = db_session.query(User).filter(User.email == "test@example.com").first()
        user.is_active = False
        db_session.commit()

        response = client.get("/api/profile", headers=test_user["headers"])
        assert response.status_code == 403


class TestLogout:
    """Tests for logout, logout-all and token refresh."""

    def test_logout_is_acknowledged(self, client: TestClient, test_user: dict):
        """Logout is stateless: the server only acknowledges it."""
        response = client.post("/api/auth/logout", headers=test_user["headers"])
        assert response.status_code == 200
        assert response.json()["message"] == "Logout successful"
        assert client.get("/api/profile", headers=test_user["headers"]).status_code == 200

    def test_logout_all_invalidates_existing_tokens(self, client: TestClient, test_user: dict):
        response = client.post("/api/auth/logout-all", headers=test_user["headers"])
        assert response.status_code == 200

        stale = client.get("/api/profile", headers=test_user["headers"])
        assert stale.status_code == 403
        assert stale.json()["code"] == "TOKEN_INVALID"

        login = _login(client, "test@example.com", test_user["password"])
        fresh_headers = {"Authorization": f"Bearer {login.json()['accessToken']}"}
        assert client.get("/api/profile", headers=fresh_headers).status_code == 200

    def test_refresh_issues_new_access_token(self, client: TestClient, test_user: dict):
        response = client.post("/api/auth/refresh", json={"refreshToken": test_user["refresh_token"]})
        assert response.status_code == 200
        data = response.json()
        assert data["tokenExpiration"]
        headers = {"Authorization": f"Bearer {data['accessToken']}"}
        assert client.get("/api/profile", headers=headers).status_code == 200

    def test_refresh_rejects_access_token(self, client: TestClient, test_user: dict):
        response = client.post("/api/auth/refresh", json={"refreshToken": test_user["token"]})
        assert response.status_code == 403

    def test_refresh_rejected_after_logout_all(self, client: TestClient, test_user: dict):
        client.post("/api/auth/logout-all", headers=test_user["headers"])
        response = client.post("/api/auth/refresh", json={"refreshToken": test_user["refresh_token"]})
        assert response.status_code == 403
        assert response.json()["code"] == "TOKEN_INVALID"


class TestHealthCheck:
    """Tests for health check endpoint."""

    def test_health_check(self, client: TestClient):
        """Health check returns ok status."""
        response = client.get("/api/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["app"] == "vocalog"
        assert data["transcriptionProviderConfigured"] is bool(get_settings().DEEPGRAM_API_KEY)

    def test_security_headers(self, client: TestClient):
        response = client.get("/api/health")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"

    def test_unknown_route_is_json(self, client: TestClient):
        response = client.get("/api/does-not-exist")
        assert response.status_code == 404
        assert "detail" in response.json()
