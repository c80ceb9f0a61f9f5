"""
Tests for login/logout and bearer-token resolution
"""

from datetime import datetime, timedelta, timezone

import jwt

from roomreport.core.config import settings


class TestLogin:
    """Tests for POST /api/auth/login"""

    def test_login_returns_token_and_user(self, client, member):
        response = client.post("/api/auth/login", json={"username": "alice", "password": "secret123"})

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Login successful"
        assert data["token"]
        assert data["user"] == {
            "id": member["id"],
            "username": "alice",
            "email": "alice@example.com",
            "role": "user",
        }

    def test_token_carries_identity_claims(self, client, manager):
        response = client.post("/api/auth/login", json={"username": "mandy", "password": "secret123"})

        claims = jwt.decode(response.json()["token"], settings.JWT_SECRET, algorithms=["HS256"])
        assert claims["user_id"] == manager["id"]
        assert claims["username"] == "mandy"
        assert claims["role"] == "manager"
        assert claims["exp"] > claims["iat"]

    def test_wrong_password_is_rejected(self, client, member):
        response = client.post("/api/auth/login", json={"username": "alice", "password": "nope"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid credentials"

    def test_unknown_user_gets_same_answer(self, client):
        response = client.post("/api/auth/login", json={"username": "ghost", "password": "secret123"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid credentials"

    def test_inactive_user_cannot_log_in(self, client, make_user):
        make_user("sleepy", is_active=False)

        response = client.post("/api/auth/login", json={"username": "sleepy", "password": "secret123"})

        assert response.status_code == 401

    def test_missing_field_is_invalid_request(self, client):
        response = client.post("/api/auth/login", json={"username": "alice"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid request data"

    def test_logout_is_stateless(self, client):
        response = client.post("/api/auth/logout")

        assert response.status_code == 200
        assert response.json()["message"] == "Logout successful"


class TestBearerToken:
    """Tests for the Authorization header handling shared by protected endpoints"""

    def test_missing_header(self, client):
        response = client.get("/api/rooms")

        assert response.status_code == 401
        assert response.json()["detail"] == "Authorization header required"

    def test_non_bearer_scheme(self, client):
        response = client.get("/api/rooms", headers={"Authorization": "Basic YWxpY2U6c2VjcmV0"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Authorization header required"

    def test_garbage_token(self, client):
        response = client.get("/api/rooms", headers={"Authorization": "Bearer not-a-token"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid token"

    def test_expired_token(self, client, member):
        past = datetime.now(timezone.utc) - timedelta(hours=2)
        token = jwt.encode(
            {"user_id": member["id"], "username": "alice", "role": "user", "iat": past, "exp": past + timedelta(hours=1)},
            settings.JWT_SECRET,
            algorithm="HS256",
        )

        response = client.get("/api/rooms", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid token"

    def test_token_of_deactivated_user(self, client, make_user, headers_for):
        user = make_user("former", is_active=False)

        response = client.get("/api/rooms", headers=headers_for(user))

        assert response.status_code == 401

    def test_valid_token(self, client, member, headers_for):
        response = client.get("/api/rooms", headers=headers_for(member))

        assert response.status_code == 200


class TestServiceEndpoints:
    """Tests for the unauthenticated root and health endpoints"""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert "running" in response.json()["message"]
