"""
Tests for the user management endpoints
"""

import pytest


def new_user(**overrides):
    payload = {
        "username": "bob",
        "email": "bob@example.com",
        "password": "hunter22",
        "role": "user",
    }
    payload.update(overrides)
    return payload


class TestListUsers:
    """Tests for GET /api/users"""

    def test_manager_lists_users_without_hashes(self, client, manager, member, headers_for):
        response = client.get("/api/users", headers=headers_for(manager))

        assert response.status_code == 200
        users = response.json()["users"]
        assert [user["username"] for user in users] == ["mandy", "alice"]
        assert all("password_hash" not in user and "password" not in user for user in users)

    def test_plain_user_is_forbidden(self, client, member, headers_for):
        response = client.get("/api/users", headers=headers_for(member))

        assert response.status_code == 403


class TestCreateUser:
    """Tests for POST /api/users"""

    def test_create(self, client, supervisor, headers_for):
        response = client.post("/api/users", json=new_user(), headers=headers_for(supervisor))

        assert response.status_code == 201
        data = response.json()
        assert data["message"] == "User created successfully"
        assert data["user"]["username"] == "bob"
        assert data["user"]["is_active"] is True

    def test_created_user_can_log_in(self, client, supervisor, headers_for):
        client.post("/api/users", json=new_user(), headers=headers_for(supervisor))

        response = client.post("/api/auth/login", json={"username": "bob", "password": "hunter22"})

        assert response.status_code == 200

    def test_duplicate_username(self, client, supervisor, member, headers_for):
        response = client.post("/api/users", json=new_user(username="alice"), headers=headers_for(supervisor))

        assert response.status_code == 409
        assert response.json()["detail"] == "Username already exists"

    def test_duplicate_email(self, client, supervisor, member, headers_for):
        response = client.post("/api/users", json=new_user(email="alice@example.com"), headers=headers_for(supervisor))

        assert response.status_code == 409
        assert response.json()["detail"] == "Email already exists"

    @pytest.mark.parametrize("overrides", [
        {"password": "12345"},
        {"role": "admin"},
        {"email": "not-an-email"},
        {"username": ""},
        {"username": "   "},
        {"username": "b" * 51},
    ])
    def test_invalid_payload(self, client, supervisor, headers_for, overrides):
        response = client.post("/api/users", json=new_user(**overrides), headers=headers_for(supervisor))

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid request data"

    def test_username_length_is_checked_after_trimming(self, client, supervisor, headers_for):
        response = client.post("/api/users", json=new_user(username=" " + "b" * 50 + " "), headers=headers_for(supervisor))

        assert response.status_code == 201
        assert response.json()["user"]["username"] == "b" * 50


class TestUpdateUser:
    """Tests for PUT /api/users/{id}"""

    def test_update_without_password_keeps_it(self, client, manager, member, headers_for):
        payload = {"username": "alice", "email": "alice@new.example.com", "role": "manager", "is_active": True, "password": ""}

        response = client.put(f"/api/users/{member['id']}", json=payload, headers=headers_for(manager))

        assert response.status_code == 200
        assert response.json()["user"]["role"] == "manager"
        login = client.post("/api/auth/login", json={"username": "alice", "password": "secret123"})
        assert login.status_code == 200

    def test_update_with_password_replaces_it(self, client, manager, member, headers_for):
        payload = {"username": "alice", "email": "alice@example.com", "role": "user", "is_active": True, "password": "brandnew"}

        client.put(f"/api/users/{member['id']}", json=payload, headers=headers_for(manager))

        assert client.post("/api/auth/login", json={"username": "alice", "password": "secret123"}).status_code == 401
        assert client.post("/api/auth/login", json={"username": "alice", "password": "brandnew"}).status_code == 200

    def test_deactivate(self, client, manager, member, headers_for):
        payload = {"username": "alice", "email": "alice@example.com", "role": "user", "is_active": False}

        response = client.put(f"/api/users/{member['id']}", json=payload, headers=headers_for(manager))

        assert response.json()["user"]["is_active"] is False
        assert client.post("/api/auth/login", json={"username": "alice", "password": "secret123"}).status_code == 401

    def test_rename_onto_existing_username(self, client, manager, member, headers_for):
        payload = {"username": "mandy", "email": "alice@example.com", "role": "user", "is_active": True}

        response = client.put(f"/api/users/{member['id']}", json=payload, headers=headers_for(manager))

        assert response.status_code == 409

    def test_missing_user(self, client, manager, headers_for):
        payload = {"username": "x", "email": "x@example.com", "role": "user", "is_active": True}

        response = client.put("/api/users/999", json=payload, headers=headers_for(manager))

        assert response.status_code == 404
        assert response.json()["detail"] == "User not found"


class TestDeleteUser:
    """Tests for DELETE /api/users/{id}"""

    def test_delete(self, client, manager, member, headers_for):
        response = client.delete(f"/api/users/{member['id']}", headers=headers_for(manager))

        assert response.status_code == 200
        assert response.json()["message"] == "User deleted successfully"

    def test_cannot_delete_self(self, client, manager, headers_for):
        response = client.delete(f"/api/users/{manager['id']}", headers=headers_for(manager))

        assert response.status_code == 400
        assert response.json()["detail"] == "Cannot delete your own account"

    def test_user_with_videos_is_kept(self, client, manager, member, make_room, make_video, headers_for):
        make_video(make_room("101"), member)

        response = client.delete(f"/api/users/{member['id']}", headers=headers_for(manager))

        assert response.status_code == 400
        assert response.json()["detail"] == "Cannot delete user with existing videos"

    def test_missing_user(self, client, manager, headers_for):
        response = client.delete("/api/users/999", headers=headers_for(manager))

        assert response.status_code == 404
