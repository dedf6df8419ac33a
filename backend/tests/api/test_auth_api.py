import pytest

from event_portal.models import UserRole

from tests.utils.factories import auth_headers, create_user


async def register(client, username="alice", email="alice@example.com", password="password123"):
    return await client.post(
        "/api/auth/register",
        json={"username": username, "email": email, "password": password},
    )


class TestRegister:
    async def test_register_returns_token_and_profile(self, client, dispatcher):
        response = await register(client)

        assert response.status_code == 201
        body = response.json()
        assert body["token"]
        assert body["user"]["username"] == "alice"
        assert body["user"]["email"] == "alice@example.com"
        assert body["user"]["role"] == "user"
        assert "passwordHash" not in body["user"]

        assert dispatcher.recipients("welcome") == ["alice@example.com"]
        link = dispatcher.published[0].email.action.url
        assert link.startswith("http://testserver/api/email/decline-registration?token=")

    async def test_email_is_normalised(self, client):
        response = await register(client, email="Alice@Example.COM")
        assert response.json()["user"]["email"] == "alice@example.com"

    async def test_portal_owner_email_gets_owner_role(self, client):
        response = await register(client, username="founder", email="owner@example.com")
        assert response.json()["user"]["role"] == "owner"

    async def test_owner_role_is_granted_once(self, client, session_factory):
        await create_user(session_factory, "founder", role=UserRole.owner, email="first@example.com")
        response = await register(client, username="late", email="owner@example.com")
        assert response.json()["user"]["role"] == "user"

    async def test_duplicate_email(self, client):
        await register(client)
        response = await register(client, username="alice2")
        assert response.status_code == 409
        assert response.json()["detail"] == "Email already exists"

    async def test_duplicate_username(self, client):
        await register(client)
        response = await register(client, email="other@example.com")
        assert response.status_code == 409
        assert response.json()["detail"] == "Username already exists"

    @pytest.mark.parametrize(
        "payload",
        [
            {"username": "al", "email": "al@example.com", "password": "password123"},
            {"username": "alice", "email": "not-an-email", "password": "password123"},
            {"username": "alice", "email": "alice@example.com", "password": "123"},
            # 40 characters but 80 bytes once encoded
            {"username": "alice", "email": "alice@example.com", "password": "é" * 40},
        ],
    )
    async def test_invalid_payloads(self, client, payload):
        response = await client.post("/api/auth/register", json=payload)
        assert response.status_code == 422


class TestLogin:
    @pytest.mark.parametrize("identifier", ["alice", "alice@example.com", "ALICE@example.com"])
    async def test_login_with_username_or_email(self, client, dispatcher, identifier):
        await register(client)

        response = await client.post(
            "/api/auth/login", json={"identifier": identifier, "password": "password123"}
        )

        assert response.status_code == 200
        assert response.json()["user"]["username"] == "alice"
        assert dispatcher.labels() == ["welcome", "login_alert"]

    async def test_wrong_password(self, client, dispatcher):
        await register(client)
        response = await client.post(
            "/api/auth/login", json={"identifier": "alice", "password": "wrong-password"}
        )
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid credentials"
        assert "login_alert" not in dispatcher.labels()

    async def test_unknown_user(self, client):
        response = await client.post(
            "/api/auth/login", json={"identifier": "nobody", "password": "password123"}
        )
        assert response.status_code == 401


class TestProfile:
    async def test_profile_requires_token(self, client):
        response = await client.get("/api/auth/profile")
        assert response.status_code == 401

    async def test_garbage_token(self, client):
        response = await client.get(
            "/api/auth/profile", headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401

    async def test_get_profile(self, client, session_factory):
        user = await create_user(session_factory, "bob")
        response = await client.get("/api/auth/profile", headers=auth_headers(user))

        assert response.status_code == 200
        body = response.json()
        assert "message" not in body
        assert body["user"]["id"] == str(user.id)
        assert body["user"]["verifiedBadge"] is False

    async def test_update_profile(self, client, session_factory):
        user = await create_user(session_factory, "bob")
        response = await client.put(
            "/api/auth/profile",
            headers=auth_headers(user),
            json={
                "bio": "Community organiser",
                "skills": ["python", " ", "sql "],
                "experience": [{"title": "Speaker", "year": 2029}],
                "portfolioLinks": ["https://example.com/bob"],
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Profile updated successfully"
        assert body["user"]["bio"] == "Community organiser"
        assert body["user"]["skills"] == ["python", "sql"]
        assert body["user"]["experience"][0]["title"] == "Speaker"
        assert body["user"]["portfolioLinks"] == ["https://example.com/bob"]

    async def test_username_taken(self, client, session_factory):
        await create_user(session_factory, "carol")
        user = await create_user(session_factory, "bob")
        response = await client.put(
            "/api/auth/profile", headers=auth_headers(user), json={"username": "carol"}
        )
        assert response.status_code == 409


class TestPassword:
    async def test_change_password(self, client, session_factory):
        user = await create_user(session_factory, "bob")
        response = await client.put(
            "/api/auth/password",
            headers=auth_headers(user),
            json={"currentPassword": "password123", "newPassword": "new-password"},
        )
        assert response.status_code == 200
        assert response.json() == {"message": "Password updated successfully"}

        login = await client.post(
            "/api/auth/login", json={"identifier": "bob", "password": "new-password"}
        )
        assert login.status_code == 200

    async def test_wrong_current_password(self, client, session_factory):
        user = await create_user(session_factory, "bob")
        response = await client.put(
            "/api/auth/password",
            headers=auth_headers(user),
            json={"currentPassword": "nope-nope", "newPassword": "new-password"},
        )
        assert response.status_code == 401
        assert response.json()["detail"] == "Current password is incorrect"

    async def test_new_password_over_72_bytes(self, client, session_factory):
        user = await create_user(session_factory, "bob")
        response = await client.put(
            "/api/auth/password",
            headers=auth_headers(user),
            json={"currentPassword": "password123", "newPassword": "é" * 40},
        )
        assert response.status_code == 422

    async def test_multibyte_password_within_72_bytes(self, client):
        response = await register(client, password="é" * 36)
        assert response.status_code == 201

        login = await client.post(
            "/api/auth/login", json={"identifier": "alice", "password": "é" * 36}
        )
        assert login.status_code == 200
