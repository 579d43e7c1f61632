"""
Storefront cart state.

`reduce_cart` is a pure reducer over an immutable `CartState`. `CartSession`
owns the current state, persists it after every dispatch into a storage
port, and keeps one bucket per user (`cart:<user id>`) plus a guest bucket.
"""
import json
import os
import threading
from typing import List, Optional

import structlog
from pydantic import BaseModel, Field, ValidationError

logger = structlog.get_logger(__name__)

ADD_ITEM = "ADD_ITEM"
UPDATE_QUANTITY = "UPDATE_QUANTITY"
REMOVE_ITEM = "REMOVE_ITEM"
CLEAR = "CLEAR"
LOAD = "LOAD"

GUEST_BUCKET = "guest"


class CartItem(BaseModel):
    product_id: str
    name: Optional[str] = None
    unit: Optional[str] = None
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=0)


class CartState(BaseModel):
    items: List[CartItem] = []
    total: float = 0
    item_count: int = 0


def _state(items: List[CartItem]) -> CartState:
    return CartState(
        items=items,
        total=round(sum(i.price * i.quantity for i in items), 2),
        item_count=sum(i.quantity for i in items),
    )


def reduce_cart(state: CartState, action: dict) -> CartState:
    """Apply `action` ({"type": ..., "payload": {...}}) and return the new state."""
    kind = action.get("type")
    payload = action.get("payload") or {}

    if kind == ADD_ITEM:
        incoming = CartItem(**payload)
        items, merged = [], False
        for item in state.items:
            if item.product_id == incoming.product_id:
                item = item.model_copy(update={"quantity": item.quantity + incoming.quantity})
                merged = True
            items.append(item)
        if not merged:
            items.append(incoming)
        return _state([i for i in items if i.quantity > 0])

    if kind == UPDATE_QUANTITY:
        quantity = max(0, int(payload["quantity"]))
        items = [
            i.model_copy(update={"quantity": quantity}) if i.product_id == payload["product_id"] else i
            for i in state.items
        ]
        return _state([i for i in items if i.quantity > 0])

    if kind == REMOVE_ITEM:
        return _state([i for i in state.items if i.product_id != payload["product_id"]])

    if kind == CLEAR:
        return CartState()

    if kind == LOAD:
        return _state([CartItem(**i) if isinstance(i, dict) else i for i in payload.get("items", [])])

    return state


class MemoryStorage:
    def __init__(self):
        self._data = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStorage:
    """Key/value storage persisted as a single JSON object on disk."""

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    def _read(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as fh:
            return json.load(fh)

    def _write(self, data: dict) -> None:
        tmp = f"{self.path}.tmp"
        with open(tmp, "w", encoding="utf-8") as fh:
            json.dump(data, fh)
        os.replace(tmp, self.path)

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def remove(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if data.pop(key, None) is not None:
                self._write(data)


def cart_key(user_id: Optional[str]) -> str:
    return f"cart:{user_id or GUEST_BUCKET}"


class CartSession:
    def __init__(self, storage, user_id: Optional[str] = None):
        self.storage = storage
        self.user_id = user_id
        self.state = CartState()
        self._hydrate()

    def _hydrate(self) -> None:
        raw = self.storage.get(cart_key(self.user_id))
        if not raw:
            self.state = CartState()
            return
        try:
            self.state = reduce_cart(CartState(), {"type": LOAD, "payload": json.loads(raw)})
        except (ValueError, ValidationError):
            logger.warning("cart_load_failed", bucket=cart_key(self.user_id))
            self.state = CartState()

    def dispatch(self, action: dict) -> CartState:
        self.state = reduce_cart(self.state, action)
        self.storage.set(cart_key(self.user_id), self.state.model_dump_json())
        return self.state

    def switch_user(self, user_id: Optional[str]) -> None:
        if user_id == self.user_id:
            return
        self.state = CartState()
        self.user_id = user_id
        self._hydrate()

    def add_item(self, product: dict, quantity: int = 1, price: Optional[float] = None) -> CartState:
        return self.dispatch({"type": ADD_ITEM, "payload": {
            "product_id": product["id"],
            "name": product.get("name"),
            "unit": product.get("unit"),
            "price": price if price is not None else product.get("user_price", product.get("price", 0)),
            "quantity": quantity,
        }})

    def update_quantity(self, product_id: str, quantity: int) -> CartState:
        return self.dispatch({"type": UPDATE_QUANTITY, "payload": {"product_id": product_id, "quantity": quantity}})

    def remove_item(self, product_id: str) -> CartState:
        return self.dispatch({"type": REMOVE_ITEM, "payload": {"product_id": product_id}})

    def clear(self) -> CartState:
        return self.dispatch({"type": CLEAR})

    def quantity_of(self, product_id: str) -> int:
        return next((i.quantity for i in self.state.items if i.product_id == product_id), 0)

    def __contains__(self, product_id: str) -> bool:
        return self.quantity_of(product_id) > 0

    @property
    def items(self) -> List[CartItem]:
        return self.state.items

    @property
    def total(self) -> float:
        return self.state.total

    @property
    def item_count(self) -> int:
        return self.state.item_count
