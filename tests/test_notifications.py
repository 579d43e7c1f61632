from datetime import datetime, timedelta, timezone

import pytest
from bson import ObjectId

from notifications import _clip, insert_notifications, notify_admins_of_order
from schemas import Notification


@pytest.fixture
def notify(db):
    def _notify(recipient_id, count=1, **fields):
        insert_notifications(
            Notification(title=f"Note {i}", message="Something happened", recipient_id=recipient_id, **fields)
            for i in range(count)
        )
        return [str(n["_id"]) for n in db["notification"].find({"recipient_id": recipient_id})]

    return _notify


def test_list_is_scoped_to_recipient(client, customer, make_user, notify):
    user, headers = customer
    other, _ = make_user()
    notify(user["id"], count=2, type="order")
    notify(other["id"], count=3)

    data = client.get("/api/notifications", headers=headers).json()["data"]
    assert len(data["notifications"]) == 2
    assert data["unread_count"] == 2
    assert data["pagination"]["total"] == 2
    assert all(n["recipient_id"] == user["id"] for n in data["notifications"])


def test_list_filters(client, customer, notify):
    user, headers = customer
    notify(user["id"], type="order", priority="high")
    notify(user["id"], type="system")

    orders = client.get("/api/notifications", headers=headers, params={"type": "order"}).json()["data"]
    assert [n["priority"] for n in orders["notifications"]] == ["high"]

    read = client.get("/api/notifications", headers=headers, params={"is_read": "true"}).json()["data"]
    assert read["notifications"] == []
    assert read["unread_count"] == 2


def test_unread_count_and_mark_read(client, customer, notify):
    user, headers = customer
    first, second = notify(user["id"], count=2)

    res = client.put(f"/api/notifications/{first}/read", headers=headers)
    assert res.status_code == 200
    assert res.json()["data"]["notification"]["is_read"] is True
    assert client.get("/api/notifications/unread-count", headers=headers).json()["data"]["unread_count"] == 1


def test_cannot_touch_someone_elses_notification(client, customer, make_user, notify, db):
    _, headers = customer
    other, _ = make_user()
    [theirs] = notify(other["id"])

    assert client.put(f"/api/notifications/{theirs}/read", headers=headers).status_code == 404
    assert client.delete(f"/api/notifications/{theirs}", headers=headers).status_code == 404
    assert db["notification"].find_one({"_id": ObjectId(theirs)})["is_read"] is False


def test_invalid_notification_id(client, customer):
    _, headers = customer
    res = client.put("/api/notifications/nope/read", headers=headers)
    assert res.status_code == 400
    assert res.json()["message"] == "Invalid ID"


def test_mark_all_read(client, customer, make_user, notify, db):
    user, headers = customer
    other, _ = make_user()
    notify(user["id"], count=3)
    notify(other["id"])

    res = client.put("/api/notifications/mark-all-read", headers=headers)
    assert res.json()["data"]["modified_count"] == 3
    assert db["notification"].count_documents({"recipient_id": other["id"], "is_read": False}) == 1


def test_clear_read_and_clear_all(client, customer, notify):
    user, headers = customer
    first, _, _ = notify(user["id"], count=3)
    client.put(f"/api/notifications/{first}/read", headers=headers)

    assert client.delete("/api/notifications/clear-read", headers=headers).json()["data"]["deleted_count"] == 1
    assert client.delete("/api/notifications/clear-all", headers=headers).json()["data"]["deleted_count"] == 2


def test_delete_notification(client, customer, notify):
    user, headers = customer
    [note] = notify(user["id"])
    assert client.delete(f"/api/notifications/{note}", headers=headers).status_code == 200
    assert client.delete(f"/api/notifications/{note}", headers=headers).status_code == 404


def test_admin_paths_serve_the_same_inbox(client, admin, notify):
    user, headers = admin
    notify(user["id"], count=2)
    data = client.get("/api/admin/notifications", headers=headers).json()["data"]
    assert data["unread_count"] == 2
    assert client.put("/api/admin/notifications/mark-all-read", headers=headers).json()["data"]["modified_count"] == 2
    assert client.get("/api/admin/notifications/unread-count", headers=headers).json()["data"]["unread_count"] == 0


def test_notifications_require_auth(client):
    assert client.get("/api/notifications").status_code == 401


def test_notification_expiry_default():
    note = Notification(title="Hello", message="World", recipient_id="abc")
    expected = datetime.now(timezone.utc) + timedelta(days=30)
    assert abs((note.expires_at - expected).total_seconds()) < 5
    assert note.type == "system"
    assert note.priority == "medium"
    assert note.is_read is False


def test_clip():
    assert _clip("short", 10) == "short"
    clipped = _clip("x" * 600, 500)
    assert len(clipped) == 500
    assert clipped.endswith("...")


def test_no_admins_means_no_order_notifications(db):
    order = {"order_number": "ORD-20240101-000001", "total_amount": 410.0, "items": []}
    assert notify_admins_of_order(str(ObjectId()), order, {"id": "u1", "name": "Buyer"}) == 0
    assert db["notification"].count_documents({}) == 0
