"""
Python client for the store API.

AuthSession and CartSession are plain objects that the application passes
around explicitly; both persist through the same storage port
(`MemoryStorage` in tests, `JsonFileStorage` on disk).
"""
import json
import threading
from typing import Callable, List, Optional

import requests
import structlog

from cart import CartSession

logger = structlog.get_logger(__name__)

TOKEN_KEY = "token"
USER_KEY = "user"


class ApiError(Exception):
    def __init__(self, status_code: int, message: str, errors: Optional[list] = None):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.errors = errors or []


class AuthSession:
    def __init__(self, storage):
        self.storage = storage
        self.token = storage.get(TOKEN_KEY)
        raw_user = storage.get(USER_KEY)
        self.user = json.loads(raw_user) if raw_user else None
        if not (self.token and self.user):
            self.token, self.user = None, None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token and self.user)

    @property
    def user_id(self) -> Optional[str]:
        return self.user["id"] if self.user else None

    @property
    def role(self) -> str:
        return (self.user or {}).get("role", "registered")

    @property
    def is_admin(self) -> bool:
        return self.is_authenticated and self.role == "admin"

    def login(self, token: str, user: dict) -> None:
        self.token, self.user = token, user
        self.storage.set(TOKEN_KEY, token)
        self.storage.set(USER_KEY, json.dumps(user))

    def update_user(self, user: dict) -> None:
        self.user = user
        self.storage.set(USER_KEY, json.dumps(user))

    def logout(self) -> None:
        self.token, self.user = None, None
        self.storage.remove(TOKEN_KEY)
        self.storage.remove(USER_KEY)


class StorefrontClient:
    """
    Talks to the REST API on behalf of one storefront session.

    `http` is anything with a requests-style `request(method, url, ...)`
    method; a `requests.Session` is created when none is given.
    """

    def __init__(self, base_url: str, storage, http=None, timeout: Optional[float] = 10):
        self.base_url = base_url.rstrip("/")
        self.http = http or requests.Session()
        self.timeout = timeout
        self.auth = AuthSession(storage)
        self.cart = CartSession(storage, self.auth.user_id)

    def _request(self, method: str, path: str, **kwargs):
        headers = kwargs.pop("headers", {})
        if self.auth.token:
            headers["Authorization"] = f"Bearer {self.auth.token}"
        if self.timeout is not None:
            kwargs["timeout"] = self.timeout
        response = self.http.request(method, f"{self.base_url}/api{path}", headers=headers, **kwargs)
        try:
            body = response.json()
        except ValueError:
            body = {"success": False, "message": response.text or "Invalid response"}
        if response.status_code >= 400 or not body.get("success", False):
            if response.status_code == 401 and self.auth.is_authenticated:
                logger.info("session_expired")
                self._end_session()
            raise ApiError(response.status_code, body.get("message", "Request failed"), body.get("errors"))
        return body

    def _start_session(self, data: dict) -> dict:
        self.auth.login(data["token"], data["user"])
        self.cart.switch_user(self.auth.user_id)
        return data["user"]

    def _end_session(self) -> None:
        self.auth.logout()
        self.cart.switch_user(None)

    # auth
    def register(self, **fields) -> dict:
        return self._start_session(self._request("POST", "/auth/register", json=fields)["data"])

    def login(self, email: str, password: str) -> dict:
        data = self._request("POST", "/auth/login", json={"email": email, "password": password})["data"]
        return self._start_session(data)

    def logout(self) -> None:
        self._end_session()

    def profile(self) -> dict:
        user = self._request("GET", "/auth/profile")["data"]["user"]
        self.auth.update_user(user)
        return user

    def update_profile(self, **fields) -> dict:
        user = self._request("PUT", "/auth/profile", json=fields)["data"]["user"]
        self.auth.update_user(user)
        return user

    def change_password(self, current_password: str, new_password: str) -> None:
        self._request("POST", "/auth/change-password",
                      json={"current_password": current_password, "new_password": new_password})

    # catalog
    def products(self, **params) -> dict:
        return self._request("GET", "/products", params=params)["data"]

    def product(self, product_id: str) -> dict:
        return self._request("GET", f"/products/{product_id}")["data"]["product"]

    def categories(self) -> List[str]:
        return self._request("GET", "/products/categories")["data"]["categories"]

    def price(self, product_id: str) -> dict:
        return self._request("GET", f"/products/{product_id}/price")["data"]

    def bulk_prices(self, product_ids: List[str]) -> List[dict]:
        return self._request("POST", "/products/bulk-prices", json={"product_ids": product_ids})["data"]["products"]

    # delivery
    def check_delivery(self, pincode: str) -> List[dict]:
        try:
            return self._request("GET", f"/delivery-zones/check/{pincode}")["data"]
        except ApiError as e:
            if e.status_code == 404:
                return []
            raise

    # orders
    def checkout(self, shipping_address: dict, payment_method: str = "cod", notes: Optional[str] = None) -> dict:
        if not self.cart.items:
            raise ValueError("Cart is empty")
        payload = {
            "items": [{"product": i.product_id, "quantity": i.quantity, "price": i.price} for i in self.cart.items],
            "shipping_address": shipping_address,
            "payment_method": payment_method,
            "notes": notes,
        }
        data = self._request("POST", "/orders", json=payload)["data"]
        self.cart.clear()
        return data

    def my_orders(self, **params) -> List[dict]:
        try:
            return self._request("GET", "/orders/my-orders", params=params)["data"]["orders"]
        except (ApiError, requests.RequestException) as e:
            logger.warning("orders_unavailable", error=str(e))
            return []

    def order(self, order_id: str) -> dict:
        return self._request("GET", f"/orders/{order_id}")["data"]["order"]

    def cancel_order(self, order_id: str) -> dict:
        return self._request("PUT", f"/orders/{order_id}/cancel")["data"]["order"]

    # notifications
    def notifications(self, **params) -> List[dict]:
        try:
            return self._request("GET", "/notifications", params=params)["data"]["notifications"]
        except (ApiError, requests.RequestException) as e:
            logger.warning("notifications_unavailable", error=str(e))
            return []

    def unread_count(self) -> int:
        return self._request("GET", "/notifications/unread-count")["data"]["unread_count"]

    def mark_read(self, notification_id: str) -> dict:
        return self._request("PUT", f"/notifications/{notification_id}/read")["data"]["notification"]

    def mark_all_read(self) -> int:
        return self._request("PUT", "/notifications/mark-all-read")["data"]["modified_count"]

    def delete_notification(self, notification_id: str) -> None:
        self._request("DELETE", f"/notifications/{notification_id}")

    def clear_read_notifications(self) -> int:
        return self._request("DELETE", "/notifications/clear-read")["data"]["deleted_count"]

    # contact
    def contact(self, name: str, email: str, subject: str, message: str, phone: Optional[str] = None) -> dict:
        body = {"name": name, "email": email, "subject": subject, "message": message, "phone": phone}
        return self._request("POST", "/contact", json=body)["data"]


class NotificationPoller:
    """Polls the unread count at a fixed interval on a daemon thread."""

    def __init__(self, client: StorefrontClient, on_count: Callable[[int], None], interval: float = 30):
        self.client = client
        self.on_count = on_count
        self.interval = interval
        self._stop = threading.Event()
        self._thread = None

    def poll_once(self) -> Optional[int]:
        if not self.client.auth.is_authenticated:
            return None
        try:
            count = self.client.unread_count()
        except (ApiError, requests.RequestException) as e:
            logger.warning("unread_poll_failed", error=str(e))
            return None
        self.on_count(count)
        return count

    def _run(self) -> None:
        while not self._stop.is_set():
            self.poll_once()
            self._stop.wait(self.interval)

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="notification-poller", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=self.interval)
            self._thread = None
