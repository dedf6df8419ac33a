import uuid
from datetime import timedelta

import pytest

from event_portal.models import UserRole

from tests.utils.factories import auth_headers, create_event, create_user, event_payload


@pytest.fixture
async def organizer(session_factory):
    return await create_user(session_factory, "organizer", role=UserRole.organizer)


@pytest.fixture
async def member(session_factory):
    return await create_user(session_factory, "member")


@pytest.fixture
async def admin(session_factory):
    return await create_user(session_factory, "admin", role=UserRole.admin)


@pytest.fixture
async def owner(session_factory):
    return await create_user(session_factory, "owner", role=UserRole.owner)


class TestCreateEvent:
    async def test_organizer_event_is_published(self, client, organizer, clock):
        response = await client.post(
            "/api/events", headers=auth_headers(organizer), json=event_payload(clock.now)
        )

        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "Event created successfully"
        assert body["event"]["isApproved"] is True
        assert body["event"]["hostId"] == str(organizer.id)
        assert body["event"]["tags"] == ["python", "community"]
        assert body["event"]["participants"] == []
        assert "otp" not in body["event"]

    async def test_user_event_awaits_approval(self, client, member, clock):
        response = await client.post(
            "/api/events", headers=auth_headers(member), json=event_payload(clock.now)
        )

        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "Event created successfully (Pending admin approval)"
        assert body["event"]["isApproved"] is False

    async def test_registration_start_defaults_to_now(self, client, organizer, clock):
        payload = event_payload(clock.now)
        del payload["regStartDateTime"]

        response = await client.post("/api/events", headers=auth_headers(organizer), json=payload)

        assert response.status_code == 201
        created = response.json()["event"]["regStartDateTime"]
        assert created.startswith(clock.now.strftime("%Y-%m-%dT%H:%M"))

    async def test_inconsistent_schedule(self, client, organizer, clock):
        payload = event_payload(
            clock.now, endDateTime=(clock.now + timedelta(hours=1)).isoformat()
        )
        response = await client.post("/api/events", headers=auth_headers(organizer), json=payload)

        assert response.status_code == 400
        assert response.json()["type"] == "ValidationError"

    async def test_requires_authentication(self, client, clock):
        response = await client.post("/api/events", json=event_payload(clock.now))
        assert response.status_code == 401

    async def test_missing_fields(self, client, organizer):
        response = await client.post(
            "/api/events", headers=auth_headers(organizer), json={"title": "Incomplete"}
        )
        assert response.status_code == 422


class TestListEvents:
    async def test_public_listing_hides_unapproved(
        self, client, session_factory, organizer, member, clock
    ):
        await create_event(session_factory, organizer, clock.now, title="Approved")
        await create_event(session_factory, member, clock.now, title="Pending", approved=False)

        public = await client.get("/api/events")
        everything = await client.get("/api/events/all")

        assert [event["title"] for event in public.json()] == ["Approved"]
        assert sorted(event["title"] for event in everything.json()) == ["Approved", "Pending"]

    async def test_my_events(self, client, session_factory, organizer, member, clock):
        await create_event(session_factory, organizer, clock.now, title="Mine")
        await create_event(session_factory, member, clock.now, title="Theirs", approved=False)

        response = await client.get("/api/events/my", headers=auth_headers(member))

        assert [event["title"] for event in response.json()] == ["Theirs"]

    async def test_get_single_event(self, client, session_factory, organizer, clock):
        event = await create_event(session_factory, organizer, clock.now)

        response = await client.get(f"/api/events/{event.id}")

        assert response.status_code == 200
        assert response.json()["id"] == str(event.id)

    async def test_unknown_event(self, client):
        response = await client.get(f"/api/events/{uuid.uuid4()}")
        assert response.status_code == 404
        assert response.json()["detail"] == "Event not found"

    async def test_malformed_event_id(self, client):
        response = await client.get("/api/events/not-a-uuid")
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid event id"


class TestUpdateEvent:
    async def test_host_updates_and_participants_are_notified(
        self, client, session_factory, organizer, member, clock, dispatcher
    ):
        event = await create_event(session_factory, organizer, clock.now)
        await client.post(
            f"/api/registration/{event.id}/register", headers=auth_headers(member)
        )

        response = await client.put(
            f"/api/events/{event.id}",
            headers=auth_headers(organizer),
            json={"location": "Auditorium"},
        )

        assert response.status_code == 200
        assert response.json()["message"] == "Event updated"
        assert response.json()["event"]["location"] == "Auditorium"
        assert dispatcher.recipients("event_updated") == ["member@example.com"]

    async def test_no_op_update_sends_nothing(
        self, client, session_factory, organizer, clock, dispatcher
    ):
        event = await create_event(session_factory, organizer, clock.now)
        response = await client.put(
            f"/api/events/{event.id}",
            headers=auth_headers(organizer),
            json={"title": "Python Meetup"},
        )
        assert response.status_code == 200
        assert dispatcher.recipients("event_updated") == []

    async def test_stranger_cannot_update(self, client, session_factory, organizer, member, clock):
        event = await create_event(session_factory, organizer, clock.now)
        response = await client.put(
            f"/api/events/{event.id}", headers=auth_headers(member), json={"title": "Hijacked"}
        )
        assert response.status_code == 403

    async def test_admin_can_update(self, client, session_factory, organizer, admin, clock):
        event = await create_event(session_factory, organizer, clock.now)
        response = await client.put(
            f"/api/events/{event.id}", headers=auth_headers(admin), json={"title": "Renamed"}
        )
        assert response.status_code == 200

    async def test_started_event_is_frozen(self, client, session_factory, organizer, clock):
        event = await create_event(session_factory, organizer, clock.now)
        clock.advance(hours=2)
        response = await client.put(
            f"/api/events/{event.id}", headers=auth_headers(organizer), json={"title": "Too late"}
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Event already started"


class TestDeleteEvent:
    async def test_host_deletes_and_participants_are_notified(
        self, client, session_factory, organizer, member, clock, dispatcher
    ):
        event = await create_event(session_factory, organizer, clock.now)
        await client.post(
            f"/api/registration/{event.id}/register", headers=auth_headers(member)
        )

        response = await client.delete(f"/api/events/{event.id}", headers=auth_headers(organizer))

        assert response.status_code == 200
        assert response.json() == {"message": "Event deleted"}
        assert dispatcher.recipients("event_cancelled") == ["member@example.com"]
        assert (await client.get(f"/api/events/{event.id}")).status_code == 404

    async def test_admin_cannot_delete_owner_event(
        self, client, session_factory, owner, admin, clock
    ):
        event = await create_event(session_factory, owner, clock.now)
        response = await client.delete(f"/api/events/{event.id}", headers=auth_headers(admin))
        assert response.status_code == 403
        assert response.json()["detail"] == "Admins cannot delete events created by owner"

    async def test_owner_can_delete_any_event(
        self, client, session_factory, owner, organizer, clock
    ):
        event = await create_event(session_factory, organizer, clock.now)
        response = await client.delete(f"/api/events/{event.id}", headers=auth_headers(owner))
        assert response.status_code == 200
