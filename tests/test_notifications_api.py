from datetime import timedelta

import pytest

from notifier.db.models import Notification, NotificationStatus, NotificationTarget
from notifier.services.onesignal.onesignal_client import DeliveryResult
from notifier.utils.datetime_utils import naive_utc_now

BASE_URL = "/api/v1/admin/notifications"


def reload(db_session, notification_id) -> Notification:
    db_session.expire_all()
    return db_session.get(Notification, notification_id)


def iso(dt) -> str:
    return dt.isoformat() + "Z"


class TestHealth:
    def test_health(self, client):
        response = client.get("/api/v1/health/")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["status"] == "healthy"
        assert body["data"]["schedulerMode"] == "disabled"

    def test_request_id_is_echoed(self, client):
        request_id = "6d1f4d52-1f7a-4c3e-9a8e-0f6f7b1c2d3e"
        response = client.get("/api/v1/health/", headers={"X-Request-ID": request_id})

        assert response.headers["X-Request-ID"] == request_id
        assert response.json()["request_id"] == request_id


class TestCreateNotification:
    """Status is derived from the requested status and scheduledFor"""

    def test_defaults_to_draft_broadcast(self, client, fake_gateway):
        response = client.post(BASE_URL + "/", json={"title": " Reminder ", "message": "Don't forget!"})

        assert response.status_code == 201
        item = response.json()["data"]
        assert item["title"] == "Reminder"
        assert item["status"] == "draft"
        assert item["target"] == "all"
        assert item["recipientIds"] == []
        assert fake_gateway.calls == []

    def test_future_schedule_is_scheduled(self, client):
        scheduled_for = naive_utc_now() + timedelta(hours=1)
        response = client.post(
            BASE_URL + "/",
            json={"title": "Later", "message": "m", "scheduledFor": iso(scheduled_for), "status": "draft"},
        )

        assert response.status_code == 201
        assert response.json()["data"]["status"] == "scheduled"

    def test_past_schedule_without_status_is_draft(self, client):
        scheduled_for = naive_utc_now() - timedelta(hours=1)
        response = client.post(
            BASE_URL + "/",
            json={"title": "Past", "message": "m", "scheduledFor": iso(scheduled_for)},
        )

        assert response.json()["data"]["status"] == "draft"

    def test_targeted_keeps_recipients(self, client, make_user):
        user = make_user()
        response = client.post(
            BASE_URL + "/",
            json={"title": "Hi", "message": "m", "target": "users", "userIds": [user.id]},
        )

        item = response.json()["data"]
        assert item["target"] == "users"
        assert item["recipientIds"] == [user.id]

    def test_sent_is_dispatched_immediately(self, client, fake_gateway, db_session):
        response = client.post(
            BASE_URL + "/", json={"title": "Now", "message": "m", "status": "sent"}
        )

        assert response.status_code == 201
        body = response.json()
        assert body["data"]["status"] == "sent"
        assert body["meta"]["dispatch"]["result"] == "sent"
        assert len(fake_gateway.calls) == 1

        stored = reload(db_session, body["data"]["id"])
        assert stored.status == NotificationStatus.SENT
        assert stored.provider_notification_id == "onesignal-1"

    def test_sent_with_failed_delivery_is_failed(self, client, fake_gateway):
        fake_gateway.results.append(DeliveryResult.failed("OneSignal request failed"))

        response = client.post(
            BASE_URL + "/", json={"title": "Now", "message": "m", "status": "sent"}
        )

        body = response.json()
        assert body["data"]["status"] == "failed"
        assert body["data"]["lastError"] == "OneSignal request failed"
        assert body["meta"]["dispatch"]["result"] == "failed"

    def test_sent_with_gateway_crash_is_left_failed(self, client, fake_gateway, db_session):
        fake_gateway.results.append(RuntimeError("connection reset"))

        response = client.post(
            BASE_URL + "/", json={"title": "Now", "message": "m", "status": "sent"}
        )

        assert response.status_code == 201
        body = response.json()
        assert body["data"]["status"] == "failed"
        assert body["data"]["lastError"] == "connection reset"
        assert body["meta"]["dispatch"]["errorCode"] == "DISPATCH_ERROR"

        stored = reload(db_session, body["data"]["id"])
        assert stored.status == NotificationStatus.FAILED
        assert stored.dispatch_claimed_at is None

        # No claim is left behind, so the record can still be edited and resent
        retry = client.patch(
            f"{BASE_URL}/{stored.id}", json={"title": "Again", "status": "sent"}
        )
        assert retry.status_code == 200
        assert retry.json()["data"]["status"] == "sent"

    @pytest.mark.parametrize(
        "payload",
        [
            {"title": "   ", "message": "m"},
            {"title": "t"},
            {"title": "t", "message": "m", "target": "everyone"},
            {"title": "t", "message": "m", "status": "failed"},
        ],
    )
    def test_invalid_body(self, client, payload):
        response = client.post(BASE_URL + "/", json=payload)

        assert response.status_code == 422
        assert response.json()["meta"]["error_code"] == "VALIDATION_ERROR"


class TestListAndGet:
    def test_filters_search_and_pagination(self, client, make_notification):
        now = naive_utc_now()
        make_notification(title="Morning stretch", created_at=now - timedelta(minutes=3))
        make_notification(
            title="Evening reflection",
            status=NotificationStatus.SCHEDULED,
            created_at=now - timedelta(minutes=2),
        )
        make_notification(
            title="Weekly check-in",
            message="How was your week?",
            target=NotificationTarget.USERS,
            created_at=now - timedelta(minutes=1),
        )

        response = client.get(BASE_URL + "/", params={"limit": 2})
        body = response.json()
        assert response.status_code == 200
        assert [item["title"] for item in body["data"]] == ["Weekly check-in", "Evening reflection"]
        assert body["pagination"] == {
            "page": 1,
            "limit": 2,
            "total": 3,
            "pages": 2,
            "hasNext": True,
            "hasPrev": False,
        }

        scheduled = client.get(BASE_URL + "/", params={"status": "scheduled"}).json()
        assert [item["title"] for item in scheduled["data"]] == ["Evening reflection"]

        targeted = client.get(BASE_URL + "/", params={"target": "users"}).json()
        assert [item["title"] for item in targeted["data"]] == ["Weekly check-in"]

        searched = client.get(BASE_URL + "/", params={"search": "YOUR WEEK"}).json()
        assert [item["title"] for item in searched["data"]] == ["Weekly check-in"]

    def test_search_treats_wildcards_literally(self, client, make_notification):
        make_notification(title="Reminder")

        response = client.get(BASE_URL + "/", params={"search": "%"})

        assert response.json()["data"] == []

    def test_get_one(self, client, make_notification):
        notification = make_notification()

        response = client.get(f"{BASE_URL}/{notification.id}")

        assert response.status_code == 200
        assert response.json()["data"]["id"] == notification.id

    def test_get_missing(self, client):
        response = client.get(f"{BASE_URL}/does-not-exist")

        assert response.status_code == 404
        assert response.json()["meta"]["error_code"] == "NOTIFICATION_NOT_FOUND"


class TestUpdateAndDelete:
    def test_partial_update(self, client, make_notification, db_session):
        notification = make_notification(title="Old", message="Keep me")
        scheduled_for = naive_utc_now() + timedelta(days=1)

        response = client.patch(
            f"{BASE_URL}/{notification.id}",
            json={"title": "New", "scheduledFor": iso(scheduled_for), "status": "scheduled"},
        )

        assert response.status_code == 200
        stored = reload(db_session, notification.id)
        assert stored.title == "New"
        assert stored.message == "Keep me"
        assert stored.status == NotificationStatus.SCHEDULED
        assert stored.scheduled_for == scheduled_for

    def test_target_all_clears_recipients(self, client, make_user, make_notification, db_session):
        user = make_user()
        notification = make_notification(
            target=NotificationTarget.USERS, recipient_ids=[user.id]
        )

        client.patch(f"{BASE_URL}/{notification.id}", json={"target": "all"})

        stored = reload(db_session, notification.id)
        assert stored.target == NotificationTarget.ALL
        assert stored.recipient_ids == []

    def test_sent_notification_cannot_be_changed(self, client, make_notification, db_session):
        notification = make_notification(
            status=NotificationStatus.SENT, sent_at=naive_utc_now()
        )

        response = client.patch(f"{BASE_URL}/{notification.id}", json={"title": "Edited"})

        assert response.status_code == 400
        assert response.json()["meta"]["error_code"] == "NOTIFICATION_ALREADY_SENT"
        assert reload(db_session, notification.id).title == "Reminder"

    def test_status_sent_dispatches_after_saving(self, client, fake_gateway, make_notification):
        notification = make_notification(status=NotificationStatus.FAILED)

        response = client.patch(
            f"{BASE_URL}/{notification.id}", json={"message": "Second try", "status": "sent"}
        )

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "sent"
        assert fake_gateway.calls[0]["body"] == "Second try"

    def test_status_sent_with_gateway_crash_is_left_failed(
        self, client, fake_gateway, make_notification, db_session
    ):
        fake_gateway.results.append(RuntimeError("connection reset"))
        notification = make_notification()

        response = client.patch(
            f"{BASE_URL}/{notification.id}", json={"status": "sent"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["data"]["status"] == "failed"
        assert body["meta"]["dispatch"]["reason"] == "connection reset"

        stored = reload(db_session, notification.id)
        assert stored.status == NotificationStatus.FAILED
        assert stored.last_error == "connection reset"
        assert stored.dispatch_claimed_at is None

        follow_up = client.patch(f"{BASE_URL}/{notification.id}", json={"title": "Edited"})
        assert follow_up.status_code == 200

    def test_delete(self, client, make_notification):
        notification = make_notification()

        response = client.delete(f"{BASE_URL}/{notification.id}")
        assert response.status_code == 200

        assert client.get(f"{BASE_URL}/{notification.id}").status_code == 404
        assert client.delete(f"{BASE_URL}/{notification.id}").status_code == 404


class TestSendNotification:
    """POST /{id}/send goes through the shared dispatch routine"""

    def test_send(self, client, fake_gateway, make_notification):
        notification = make_notification()

        response = client.post(f"{BASE_URL}/{notification.id}/send")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["notificationId"] == "onesignal-1"
        assert body["item"]["id"] == notification.id
        assert body["item"]["status"] == "sent"
        assert body["item"]["sentAt"] is not None

    def test_send_twice(self, client, fake_gateway, make_notification):
        notification = make_notification()

        client.post(f"{BASE_URL}/{notification.id}/send")
        response = client.post(f"{BASE_URL}/{notification.id}/send")

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert response.json()["meta"]["error_code"] == "NOTIFICATION_ALREADY_SENT"
        assert len(fake_gateway.calls) == 1

    def test_send_missing(self, client):
        response = client.post(f"{BASE_URL}/does-not-exist/send")

        assert response.status_code == 404
        assert response.json()["meta"]["error_code"] == "NOTIFICATION_NOT_FOUND"

    def test_send_while_claimed(self, client, fake_gateway, make_notification):
        notification = make_notification(dispatch_claimed_at=naive_utc_now())

        response = client.post(f"{BASE_URL}/{notification.id}/send")

        assert response.status_code == 409
        assert response.json()["meta"]["error_code"] == "NOTIFICATION_IN_PROGRESS"
        assert fake_gateway.calls == []

    def test_delivery_failure(self, client, fake_gateway, make_notification, db_session):
        fake_gateway.results.append(DeliveryResult.failed("OneSignal authentication failed"))
        notification = make_notification()

        response = client.post(f"{BASE_URL}/{notification.id}/send")

        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "OneSignal authentication failed"
        assert reload(db_session, notification.id).status == NotificationStatus.FAILED

    def test_unexpected_error_marks_failed(self, client, fake_gateway, make_notification, db_session):
        fake_gateway.results.append(RuntimeError("socket closed"))
        notification = make_notification(status=NotificationStatus.SCHEDULED)

        response = client.post(f"{BASE_URL}/{notification.id}/send")

        assert response.status_code == 500
        assert response.json()["error"] == "socket closed"
        stored = reload(db_session, notification.id)
        assert stored.status == NotificationStatus.FAILED
        assert stored.last_error == "socket closed"
        assert stored.dispatch_claimed_at is None


class TestSchedulerRoutes:
    def test_status_without_embedded_scheduler(self, client):
        response = client.get("/api/v1/admin/scheduler/status")

        assert response.status_code == 200
        assert response.json()["data"] == {"mode": "disabled", "running": False}

    def test_run_rejected_when_disabled(self, client):
        response = client.post("/api/v1/admin/scheduler/run")

        assert response.status_code == 400
        assert response.json()["meta"]["error_code"] == "SCHEDULER_DISABLED"
