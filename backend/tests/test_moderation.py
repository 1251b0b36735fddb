"""Tests for the moderation workflow driven by admins.

Covers:
- Submit → admin email → approve → public (end to end)
- Reject path and owner notifications
- Role checks: posters cannot moderate, not even their own events
- Transitions only from pending (409 otherwise)
- Email failures never undo a state change
- Admin edits, the active flag and the review queue
- Concurrent approvals: exactly one winner
"""
from concurrent.futures import ThreadPoolExecutor

import pytest

from app.config import settings
from app.errors import Forbidden, InvalidState
from app.services import moderation_service
from app.services.notification_service import NotificationDispatcher
from tests.conftest import (
    ADMIN_EMAIL,
    RecordingGateway,
    register_user,
    create_admin,
    submit_event,
    approve_event,
)


class TestApproveFlow:
    """Submission through approval."""

    def test_submit_approve_publish(self, client, db, gateway):
        poster = register_user(client, email="owner@example.com")
        admin = create_admin(client, db)
        event = submit_event(client, poster["headers"], title="Diwali Night")

        admin_mail = gateway.to(ADMIN_EMAIL)
        assert len(admin_mail) == 1
        assert admin_mail[0].subject == "New Event Pending Approval: Diwali Night"
        assert "/api/events/approve-email/" in admin_mail[0].html_body
        assert "/api/events/reject-email/" in admin_mail[0].html_body

        approved = approve_event(client, admin["headers"], event["event_id"])
        assert approved["approval_status"] == "approved"

        feed = client.get("/api/events/").json()
        assert [e["event_id"] for e in feed] == [event["event_id"]]

        owner_mail = gateway.to("owner@example.com")
        assert [m.subject for m in owner_mail] == ["Your event has been approved: Diwali Night"]

    def test_reject(self, client, db, gateway):
        poster = register_user(client, email="owner@example.com")
        admin = create_admin(client, db)
        event = submit_event(client, poster["headers"], title="Garage Sale")

        resp = client.post(f"/api/admin/reject/{event['event_id']}", headers=admin["headers"])
        assert resp.status_code == 200
        assert resp.json()["approval_status"] == "rejected"
        assert client.get("/api/events/").json() == []
        assert [m.subject for m in gateway.to("owner@example.com")] == ["Your event was not approved: Garage Sale"]

    def test_rejected_event_can_be_resubmitted(self, client, db):
        poster = register_user(client)
        admin = create_admin(client, db)
        event = submit_event(client, poster["headers"])
        client.post(f"/api/admin/reject/{event['event_id']}", headers=admin["headers"])

        resp = client.patch(
            f"/api/events/{event['event_id']}", json={"description": "Now with a full programme."},
            headers=poster["headers"],
        )
        assert resp.json()["approval_status"] == "pending"
        approve_event(client, admin["headers"], event["event_id"])

    def test_owner_edit_notifies_admin_again(self, client, gateway):
        poster = register_user(client)
        event = submit_event(client, poster["headers"])
        client.patch(f"/api/events/{event['event_id']}", json={"title": "Renamed"}, headers=poster["headers"])

        subjects = [m.subject for m in gateway.to(ADMIN_EMAIL)]
        assert subjects == ["New Event Pending Approval: Diwali Night", "New Event Pending Approval: Renamed"]


class TestAuthorization:
    """Only admins move events between statuses."""

    def test_poster_cannot_approve_own_event(self, client):
        poster = register_user(client)
        event = submit_event(client, poster["headers"])
        resp = client.post(f"/api/admin/approve/{event['event_id']}", headers=poster["headers"])
        assert resp.status_code == 403
        assert client.get(f"/api/events/{event['event_id']}", headers=poster["headers"]).json()["approval_status"] == "pending"

    def test_anonymous_cannot_approve(self, client):
        poster = register_user(client)
        event = submit_event(client, poster["headers"])
        assert client.post(f"/api/admin/approve/{event['event_id']}").status_code == 401

    def test_poster_cannot_see_queue(self, client):
        poster = register_user(client)
        assert client.get("/api/admin/pending", headers=poster["headers"]).status_code == 403

    def test_service_refuses_non_admin(self, client, db, gateway):
        poster = register_user(client)
        event = submit_event(client, poster["headers"])
        with pytest.raises(Forbidden):
            moderation_service.approve(db, event["event_id"], False, NotificationDispatcher(gateway))

    def test_approve_unknown_event(self, client, db):
        admin = create_admin(client, db)
        resp = client.post("/api/admin/approve/missing", headers=admin["headers"])
        assert resp.status_code == 404


class TestInvalidTransitions:
    """Transitions start from pending only."""

    def test_approve_twice(self, client, db):
        poster = register_user(client)
        admin = create_admin(client, db)
        event = submit_event(client, poster["headers"])
        approve_event(client, admin["headers"], event["event_id"])

        resp = client.post(f"/api/admin/approve/{event['event_id']}", headers=admin["headers"])
        assert resp.status_code == 409
        assert resp.json()["detail"] == "Event is not in pending status"

    def test_reject_after_approve(self, client, db, gateway):
        poster = register_user(client, email="owner@example.com")
        admin = create_admin(client, db)
        event = submit_event(client, poster["headers"])
        approve_event(client, admin["headers"], event["event_id"])

        resp = client.post(f"/api/admin/reject/{event['event_id']}", headers=admin["headers"])
        assert resp.status_code == 409
        # no second notification for a refused transition
        assert len(gateway.to("owner@example.com")) == 1


class TestNotificationFailures:
    """A broken mail gateway never undoes a committed transition."""

    def test_gateway_returns_false(self, client, db, gateway):
        poster = register_user(client)
        admin = create_admin(client, db)
        event = submit_event(client, poster["headers"])

        gateway.fail = True
        approved = approve_event(client, admin["headers"], event["event_id"])
        assert approved["approval_status"] == "approved"
        assert len(client.get("/api/events/").json()) == 1

    def test_gateway_raises(self, client, db, gateway):
        poster = register_user(client)
        admin = create_admin(client, db)

        gateway.raise_error = True
        event = submit_event(client, poster["headers"])
        approved = approve_event(client, admin["headers"], event["event_id"])
        assert approved["approval_status"] == "approved"
        assert gateway.sent == []


class TestAdminEditing:
    """Admin edits, the active flag and listings."""

    def test_admin_edit_keeps_status(self, client, db):
        poster = register_user(client)
        admin = create_admin(client, db)
        event = submit_event(client, poster["headers"])
        approve_event(client, admin["headers"], event["event_id"])

        resp = client.patch(
            f"/api/admin/events/{event['event_id']}", json={"title": "Fixed typo"}, headers=admin["headers"]
        )
        assert resp.status_code == 200
        assert resp.json()["title"] == "Fixed typo"
        assert resp.json()["approval_status"] == "approved"

    def test_admin_edit_repends_when_configured(self, client, db, monkeypatch):
        monkeypatch.setattr(settings, "ADMIN_EDITS_REPEND", True)
        poster = register_user(client)
        admin = create_admin(client, db)
        event = submit_event(client, poster["headers"])
        approve_event(client, admin["headers"], event["event_id"])

        resp = client.patch(
            f"/api/admin/events/{event['event_id']}", json={"title": "Fixed typo"}, headers=admin["headers"]
        )
        assert resp.json()["approval_status"] == "pending"

    def test_deactivate_hides_event(self, client, db):
        poster = register_user(client)
        admin = create_admin(client, db)
        event = submit_event(client, poster["headers"])
        approve_event(client, admin["headers"], event["event_id"])

        resp = client.patch(
            f"/api/admin/events/{event['event_id']}", json={"is_active": False}, headers=admin["headers"]
        )
        assert resp.json()["is_active"] is False
        assert client.get("/api/events/").json() == []
        assert client.get(f"/api/events/{event['event_id']}").status_code == 404

    def test_admin_edit_unknown_event(self, client, db):
        admin = create_admin(client, db)
        resp = client.patch("/api/admin/events/missing", json={"title": "x"}, headers=admin["headers"])
        assert resp.status_code == 404

    def test_poster_cannot_admin_edit(self, client):
        poster = register_user(client)
        event = submit_event(client, poster["headers"])
        resp = client.patch(
            f"/api/admin/events/{event['event_id']}", json={"is_active": False}, headers=poster["headers"]
        )
        assert resp.status_code == 403

    def test_pending_queue_newest_first(self, client, db):
        poster = register_user(client)
        admin = create_admin(client, db)
        first = submit_event(client, poster["headers"], title="First")
        second = submit_event(client, poster["headers"], title="Second")
        third = submit_event(client, poster["headers"], title="Third")
        approve_event(client, admin["headers"], second["event_id"])

        queue = client.get("/api/admin/pending", headers=admin["headers"]).json()
        assert [e["event_id"] for e in queue] == [third["event_id"], first["event_id"]]

        everything = client.get("/api/admin/events", headers=admin["headers"]).json()
        assert len(everything) == 3


class TestConcurrentApproval:
    """Racing approvals of the same event produce one winner."""

    def test_one_hundred_concurrent_approvals(self, client, session_factory):
        poster = register_user(client, email="owner@example.com")
        event = submit_event(client, poster["headers"])
        recorder = RecordingGateway()

        def attempt(_):
            session = session_factory()
            try:
                moderation_service.approve(session, event["event_id"], True, NotificationDispatcher(recorder))
                return "approved"
            except InvalidState:
                return "conflict"
            finally:
                session.close()

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(attempt, range(100)))

        assert results.count("approved") == 1
        assert results.count("conflict") == 99
        assert len(recorder.to("owner@example.com")) == 1
