"""
Turns a submitted cart into a persisted order.

Prices are always re-resolved from the live product documents by the
requester's role; any price the client sends is ignored.
"""
import re
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import structlog
from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException

from database import create_document, db, next_sequence
from pricing import resolve_price
from schemas import Order, OrderItem, TrackingEntry

logger = structlog.get_logger(__name__)

PAYMENT_METHODS = {
    "cod": "Cash on Delivery",
    "cash on delivery": "Cash on Delivery",
    "online": "Online Payment",
    "online payment": "Online Payment",
    "bank": "Bank Transfer",
    "bank transfer": "Bank Transfer",
}


def normalize_payment_method(value: Optional[str]) -> str:
    if not value:
        return "Cash on Delivery"
    return PAYMENT_METHODS.get(value.strip().lower(), "Cash on Delivery")


def find_delivery_zone(pincode: str, area: Optional[str] = None) -> Optional[dict]:
    """Active zone for (pincode, area), else any active zone for the pincode."""
    zone = None
    if area and area.strip():
        zone = db["deliveryzone"].find_one({
            "pincode": pincode,
            "area": {"$regex": f"^{re.escape(area.strip())}$", "$options": "i"},
            "is_active": True,
        })
    if zone is None:
        zone = db["deliveryzone"].find_one({"pincode": pincode, "is_active": True})
    return zone


def next_order_number(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"ORD-{now:%Y%m%d}-{next_sequence('order'):06d}"


def price_items(items: List[dict], role: str) -> List[OrderItem]:
    """Resolve each requested line against the catalog. Raises 400 on unknown or unavailable products."""
    priced = []
    for item in items:
        product_id = item["product"]
        try:
            product = db["product"].find_one({"_id": ObjectId(product_id)})
        except (InvalidId, TypeError):
            product = None
        if not product:
            raise HTTPException(status_code=400, detail=f"Product not found: {product_id}")
        if not product.get("availability", True):
            raise HTTPException(status_code=400, detail=f"Product not available: {product.get('name')}")
        priced.append(OrderItem(
            product_id=str(product["_id"]),
            name=product.get("name"),
            unit=product.get("unit"),
            quantity=item["quantity"],
            price_at_purchase=resolve_price(product, role),
        ))
    return priced


def build_order(user: dict, items: List[dict], shipping_address: dict, payment_method: Optional[str] = None,
                notes: Optional[str] = None) -> tuple:
    """Validate and price an order without persisting it. Returns (order, zone)."""
    zone = find_delivery_zone(shipping_address["pincode"], shipping_address.get("area"))
    if zone is None:
        logger.info("delivery_unavailable", pincode=shipping_address["pincode"])
        raise HTTPException(status_code=400, detail=f"Delivery not available to pincode {shipping_address['pincode']}")

    priced = price_items(items, user.get("role", "registered"))
    now = datetime.now(timezone.utc)
    order = Order(
        user_id=user["id"],
        order_number=next_order_number(now),
        items=priced,
        delivery_charge=zone.get("delivery_charge", 0),
        shipping_address=shipping_address,
        payment_method=normalize_payment_method(payment_method),
        estimated_delivery=now + timedelta(days=int(zone.get("estimated_delivery_days", 1))),
        notes=notes,
        tracking_history=[TrackingEntry(status="Processing", timestamp=now, notes="Order placed")],
    )
    return order, zone


def place_order(user: dict, items: List[dict], shipping_address: dict, payment_method: Optional[str] = None,
                notes: Optional[str] = None) -> tuple:
    order, zone = build_order(user, items, shipping_address, payment_method, notes)
    order_id = create_document("order", order)
    logger.info("order_created", order_id=order_id, order_number=order.order_number, total=order.total_amount)
    return order_id, order, zone
