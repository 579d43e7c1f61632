import json
import threading

import pytest
from fastapi.testclient import TestClient

import main
from cart import MemoryStorage, cart_key
from conftest import PASSWORD
from notifications import insert_notifications
from schemas import Notification
from storefront import ApiError, NotificationPoller, StorefrontClient


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def store(storage):
    return StorefrontClient("http://testserver", storage, http=TestClient(main.app), timeout=None)


def test_register_starts_session(store, storage):
    user = store.register(name="Asha Kale", email="asha@example.com", password="Build@2024", phone="9811122233")
    assert store.auth.is_authenticated
    assert store.auth.role == "registered"
    assert not store.auth.is_admin
    assert json.loads(storage.get("user"))["id"] == user["id"]
    assert store.cart.user_id == user["id"]


def test_validation_errors_surface_as_api_error(store):
    with pytest.raises(ApiError) as exc:
        store.register(name="Asha Kale", email="asha@example.com", password="weak", phone="9811122233")
    assert exc.value.status_code == 400
    assert exc.value.errors
    assert not store.auth.is_authenticated


def test_guest_and_user_carts_are_separate(store, storage, customer, make_product):
    pid = make_product()
    product = store.product(pid)
    store.cart.add_item(product, 2)
    assert store.cart.total == 700

    user = store.login("primary@example.com", PASSWORD)
    assert store.cart.items == []
    store.cart.add_item(store.product(pid), 1)
    assert store.cart.total == 320
    assert storage.get(cart_key(user["id"]))

    store.logout()
    assert not store.auth.is_authenticated
    assert storage.get("token") is None
    assert store.cart.total == 700


def test_checkout_clears_cart(store, customer, make_product, make_zone, shipping_address):
    make_zone()
    pid = make_product()
    store.login("primary@example.com", PASSWORD)
    product = store.products()["products"][0]
    assert product["user_price"] == 320
    store.cart.add_item(product, 5)

    data = store.checkout(shipping_address, payment_method="cod")
    assert data["order"]["total_amount"] == 1660
    assert store.cart.items == []

    orders = store.my_orders()
    assert [o["order_number"] for o in orders] == [data["order"]["order_number"]]
    assert store.order(data["order"]["id"])["status"] == "Processing"
    assert store.cancel_order(data["order"]["id"])["status"] == "Cancelled"


def test_checkout_with_empty_cart(store):
    with pytest.raises(ValueError):
        store.checkout({"street": "x", "city": "y", "state": "z", "pincode": "421302"})


def test_failed_checkout_keeps_cart(store, customer, make_product, shipping_address):
    pid = make_product()
    store.login("primary@example.com", PASSWORD)
    store.cart.add_item(store.product(pid), 1)
    with pytest.raises(ApiError) as exc:
        store.checkout(shipping_address)
    assert exc.value.status_code == 400
    assert store.cart.item_count == 1


def test_pricing_calls(store, customer, make_product):
    pid = make_product()
    store.login("primary@example.com", PASSWORD)
    assert store.price(pid)["savings"] == 30
    assert store.bulk_prices([pid])[0]["price"] == 320
    assert store.categories() == ["Cement"]


def test_check_delivery(store, make_zone):
    make_zone()
    assert [z["area"] for z in store.check_delivery("421302")] == ["Kalher"]
    assert store.check_delivery("999999") == []


def test_expired_session_is_cleared_on_401(storage):
    storage.set("token", "stale-token")
    storage.set("user", json.dumps({"id": "abc", "role": "primary"}))
    store = StorefrontClient("http://testserver", storage, http=TestClient(main.app), timeout=None)
    assert store.auth.is_authenticated

    with pytest.raises(ApiError) as exc:
        store.profile()
    assert exc.value.status_code == 401
    assert not store.auth.is_authenticated
    assert storage.get("token") is None
    assert store.cart.user_id is None


def test_lists_degrade_to_empty(store):
    assert store.notifications() == []
    assert store.my_orders() == []


def test_notification_calls(store, customer, notify_user):
    user = store.login("primary@example.com", PASSWORD)
    notify_user(user["id"], 3)
    notes = store.notifications()
    assert len(notes) == 3
    store.mark_read(notes[0]["id"])
    assert store.unread_count() == 2
    assert store.clear_read_notifications() == 1
    assert store.mark_all_read() == 2
    store.delete_notification(notes[1]["id"])
    assert len(store.notifications()) == 1


def test_profile_updates_session_user(store, customer):
    store.login("primary@example.com", PASSWORD)
    store.update_profile(name="Primary Trader")
    assert store.auth.user["name"] == "Primary Trader"
    assert store.profile()["name"] == "Primary Trader"
    store.change_password(PASSWORD, "Fresh@456")


def test_contact(store):
    data = store.contact("Sunil Shinde", "sunil@example.com", "Quote", "Need sand")
    assert data["submitted_at"]


@pytest.fixture
def notify_user():
    def _notify(recipient_id, count):
        insert_notifications(
            Notification(title="Order Status Update", message=f"Update {i}", recipient_id=recipient_id)
            for i in range(count)
        )

    return _notify


class FakeAuth:
    def __init__(self, authenticated):
        self.is_authenticated = authenticated


class FakeClient:
    def __init__(self, authenticated=True, count=4, error=None):
        self.auth = FakeAuth(authenticated)
        self.count = count
        self.error = error

    def unread_count(self):
        if self.error:
            raise self.error
        return self.count


def test_poll_once():
    seen = []
    assert NotificationPoller(FakeClient(authenticated=False), seen.append).poll_once() is None
    assert NotificationPoller(FakeClient(count=4), seen.append).poll_once() == 4
    assert NotificationPoller(FakeClient(error=ApiError(500, "boom")), seen.append).poll_once() is None
    assert seen == [4]


def test_poller_thread_reports_counts():
    got = threading.Event()
    poller = NotificationPoller(FakeClient(count=2), lambda count: got.set(), interval=0.05)
    poller.start()
    try:
        assert got.wait(timeout=5)
    finally:
        poller.stop()
    assert poller._thread is None
