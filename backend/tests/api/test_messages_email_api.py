"""
API tests for contact messages, email decline links and reminder dispatch.
"""

import uuid
from datetime import timedelta

import pytest

from event_portal.auth import create_email_action_token
from event_portal.models import DeletionRequestType, UserRole

from tests.utils.factories import auth_headers, create_event, create_user


@pytest.fixture
async def owner(session_factory):
    return await create_user(session_factory, "owner", role=UserRole.owner)


@pytest.fixture
async def admin(session_factory):
    return await create_user(session_factory, "admin", role=UserRole.admin)


@pytest.fixture
async def member(session_factory):
    return await create_user(session_factory, "member")


async def decline(client, user, kind=DeletionRequestType.register_decline):
    path = {
        DeletionRequestType.register_decline: "/api/email/decline-registration",
        DeletionRequestType.login_decline: "/api/email/decline-login",
    }[kind]
    token = create_email_action_token(user.id, kind)
    return await client.get(path, params={"token": token})


async def deletion_requests(client, moderator):
    response = await client.get(
        "/api/messages/deletion-requests", headers=auth_headers(moderator)
    )
    assert response.status_code == 200
    return response.json()


class TestMessages:
    async def test_submit_message(self, client, member):
        response = await client.post(
            "/api/messages",
            headers=auth_headers(member),
            json={"message": "  Please add more workshops  "},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "Please add more workshops"
        assert body["type"] == "general"
        assert body["status"] == "pending"
        assert body["user"]["username"] == "member"

    async def test_short_message_is_rejected(self, client, member):
        response = await client.post(
            "/api/messages", headers=auth_headers(member), json={"message": "hi"}
        )
        assert response.status_code == 422

    async def test_whitespace_padding_does_not_count(self, client, member):
        response = await client.post(
            "/api/messages", headers=auth_headers(member), json={"message": "   short     "}
        )
        assert response.status_code == 400

    async def test_listing_requires_moderator(self, client, member):
        response = await client.get("/api/messages", headers=auth_headers(member))
        assert response.status_code == 403

    async def test_admin_lists_and_deletes(self, client, admin, member):
        created = await client.post(
            "/api/messages",
            headers=auth_headers(member),
            json={"message": "The schedule page is slow"},
        )
        message_id = created.json()["id"]

        listing = await client.get("/api/messages", headers=auth_headers(admin))
        assert [item["id"] for item in listing.json()] == [message_id]

        deleted = await client.delete(f"/api/messages/{message_id}", headers=auth_headers(admin))
        assert deleted.json() == {"message": "Message deleted successfully"}
        assert (await client.get("/api/messages", headers=auth_headers(admin))).json() == []

    async def test_delete_unknown_message(self, client, admin):
        response = await client.delete(
            f"/api/messages/{uuid.uuid4()}", headers=auth_headers(admin)
        )
        assert response.status_code == 404


class TestDeclineLinks:
    async def test_registration_decline_files_request(self, client, admin, member):
        response = await decline(client, member)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert "Request Submitted" in response.text

        [request] = await deletion_requests(client, admin)
        assert request["type"] == "account_deletion_request"
        assert request["requestType"] == "register_decline"
        assert request["userId"] == str(member.id)

    async def test_login_decline_files_security_request(self, client, admin, member):
        response = await decline(client, member, DeletionRequestType.login_decline)

        assert "Security Request Submitted" in response.text
        [request] = await deletion_requests(client, admin)
        assert request["requestType"] == "login_decline"

    async def test_repeated_clicks_file_one_request(self, client, admin, member):
        await decline(client, member)
        await decline(client, member)
        assert len(await deletion_requests(client, admin)) == 1

    async def test_invalid_token(self, client):
        response = await client.get(
            "/api/email/decline-registration", params={"token": "garbage"}
        )
        assert response.status_code == 400
        assert "Link expired" in response.text

    async def test_token_for_other_action(self, client, member):
        token = create_email_action_token(member.id, DeletionRequestType.login_decline)
        response = await client.get("/api/email/decline-registration", params={"token": token})
        assert response.status_code == 400

    async def test_missing_token(self, client):
        response = await client.get("/api/email/decline-login")
        assert response.status_code == 422

    async def test_unknown_user(self, client):
        token = create_email_action_token(uuid.uuid4(), DeletionRequestType.register_decline)
        response = await client.get("/api/email/decline-registration", params={"token": token})
        assert response.status_code == 404


class TestDeletionRequests:
    async def test_execute_deletes_account(self, client, admin, member):
        await decline(client, member)
        [request] = await deletion_requests(client, admin)

        response = await client.delete(
            f"/api/messages/deletion-request/{request['id']}/execute",
            headers=auth_headers(admin),
        )

        assert response.status_code == 200
        assert response.json() == {
            "message": "User account deleted successfully",
            "deletedUser": {"username": "member", "email": "member@example.com"},
        }
        missing = await client.get(
            f"/api/admin/users/{member.id}", headers=auth_headers(admin)
        )
        assert missing.status_code == 404
        assert await deletion_requests(client, admin) == []

        logs = await client.get("/api/admin/logs", headers=auth_headers(admin))
        assert logs.json()["logs"][0]["typeId"] == str(member.id)

    async def test_admin_cannot_execute_for_admin(self, client, session_factory, admin):
        other = await create_user(session_factory, "other-admin", role=UserRole.admin)
        await decline(client, other)
        [request] = await deletion_requests(client, admin)

        response = await client.delete(
            f"/api/messages/deletion-request/{request['id']}/execute",
            headers=auth_headers(admin),
        )
        assert response.status_code == 403
        assert response.json()["detail"] == "Only owner can delete admin accounts"

    async def test_owner_account_is_protected(self, client, owner, admin):
        await decline(client, owner)
        [request] = await deletion_requests(client, admin)

        response = await client.delete(
            f"/api/messages/deletion-request/{request['id']}/execute",
            headers=auth_headers(owner),
        )
        assert response.status_code == 403
        assert response.json()["detail"] == "Cannot delete owner account"

    async def test_general_message_cannot_be_executed(self, client, admin, member):
        created = await client.post(
            "/api/messages",
            headers=auth_headers(member),
            json={"message": "Just saying hello to the team"},
        )
        response = await client.delete(
            f"/api/messages/deletion-request/{created.json()['id']}/execute",
            headers=auth_headers(admin),
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "This is not a deletion request"

    async def test_dismiss(self, client, admin, member):
        await decline(client, member)
        [request] = await deletion_requests(client, admin)

        response = await client.patch(
            f"/api/messages/deletion-request/{request['id']}/dismiss",
            headers=auth_headers(admin),
        )

        assert response.json() == {"message": "Deletion request dismissed"}
        assert await deletion_requests(client, admin) == []
        # a dismissed request no longer blocks a new one
        await decline(client, member)
        assert len(await deletion_requests(client, admin)) == 1


class TestReminders:
    async def test_send_reminders(
        self, client, session_factory, admin, member, clock, email_service
    ):
        host = await create_user(session_factory, "host", role=UserRole.organizer)
        event = await create_event(
            session_factory,
            host,
            clock.now,
            reg_closes=timedelta(hours=1),
            starts=timedelta(hours=24),
            ends=timedelta(hours=26),
        )
        await client.post(f"/api/registration/{event.id}/register", headers=auth_headers(member))

        response = await client.post(
            "/api/email/send-reminders", headers=auth_headers(admin), json={"hours": [24, 1, 0]}
        )

        assert response.status_code == 200
        assert response.json() == {
            "message": "Reminder emails sent successfully",
            "results": {"24": 1, "1": 0, "0": 0},
        }
        assert [address for address, _, _ in email_service.sent] == ["member@example.com"]

    async def test_year_ahead_is_accepted(self, client, admin):
        response = await client.post(
            "/api/email/send-reminders", headers=auth_headers(admin), json={"hours": [24 * 365]}
        )
        assert response.status_code == 200
        assert response.json()["results"] == {"8760": 0}

    async def test_requires_moderator(self, client, member):
        response = await client.post(
            "/api/email/send-reminders", headers=auth_headers(member), json={"hours": [24]}
        )
        assert response.status_code == 403

    @pytest.mark.parametrize("hours", [[], [-1], [24 * 365 + 1], [100000000]])
    async def test_invalid_hours(self, client, admin, hours):
        response = await client.post(
            "/api/email/send-reminders", headers=auth_headers(admin), json={"hours": hours}
        )
        assert response.status_code == 422
