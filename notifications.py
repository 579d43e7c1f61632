"""
Notification fan-out helpers.

These are side effects of other operations. Callers log and swallow
their failures so that the primary write (order, registration, contact
submission, admin update) is never rolled back by a notification problem.
"""
from datetime import datetime, timezone
from typing import Iterable, List, Optional

import structlog

from database import db, get_documents
from schemas import Notification

logger = structlog.get_logger(__name__)

STATUS_MESSAGES = {
    "Processing": "Your order is being processed",
    "Confirmed": "Your order has been confirmed and will be processed soon",
    "Out for Delivery": "Your order is out for delivery",
    "Delivered": "Your order has been delivered successfully",
    "Cancelled": "Your order has been cancelled",
}

ROLE_MESSAGES = {
    "registered": "Your account role has been updated to Registered Customer",
    "primary": "Your account has been upgraded to Primary Customer with special pricing benefits",
    "secondary": "Your account has been upgraded to Secondary Customer with wholesale pricing",
}


def _clip(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."


def admin_ids() -> List[str]:
    return [str(u["_id"]) for u in get_documents("user", {"role": "admin"})]


def insert_notifications(notifications: Iterable[Notification]) -> int:
    docs = [n.model_dump() for n in notifications]
    if not docs:
        return 0
    now = datetime.now(timezone.utc)
    for d in docs:
        d["created_at"] = now
        d["updated_at"] = now
    db["notification"].insert_many(docs)
    logger.info("notifications_created", count=len(docs), type=docs[0]["type"])
    return len(docs)


def notify_admins_of_order(order_id: str, order: dict, customer: dict) -> int:
    recipients = admin_ids()
    notes = [
        Notification(
            title="New Order Received",
            message=_clip(
                f"Order #{order['order_number']} has been placed by {customer.get('name') or 'Customer'} "
                f"for ₹{order['total_amount']}",
                500,
            ),
            type="order",
            priority="high",
            recipient_id=admin_id,
            related_order_id=order_id,
            related_user_id=customer.get("id"),
            metadata={
                "order_number": order["order_number"],
                "customer_name": customer.get("name"),
                "total_amount": order["total_amount"],
                "item_count": len(order.get("items", [])),
            },
        )
        for admin_id in recipients
    ]
    return insert_notifications(notes)


def notify_admins_of_registration(user: dict) -> int:
    notes = [
        Notification(
            title="New User Registration",
            message=_clip(f"{user['name']} ({user['email']}) has registered as a new customer", 500),
            type="user",
            priority="medium",
            recipient_id=admin_id,
            related_user_id=user["id"],
            metadata={"user_name": user["name"], "user_email": user["email"], "user_role": user.get("role")},
        )
        for admin_id in admin_ids()
    ]
    return insert_notifications(notes)


def notify_admins_of_contact(contact: dict) -> int:
    body = f"Subject: {contact['subject']}\n\nMessage: {contact['message']}\n\nFrom: {contact['name']} ({contact['email']})"
    if contact.get("phone"):
        body += f"\nPhone: {contact['phone']}"
    notes = [
        Notification(
            title="New Contact Form Submission",
            message=_clip(body, 500),
            type="contact",
            priority="medium",
            recipient_id=admin_id,
            metadata={
                "contact_type": "form_submission",
                "customer_name": contact["name"],
                "customer_email": contact["email"],
                "customer_phone": contact.get("phone"),
                "subject": contact["subject"],
                "full_message": contact["message"],
            },
        )
        for admin_id in admin_ids()
    ]
    return insert_notifications(notes)


def notify_order_status(order_id: str, order: dict, old_status: Optional[str], new_status: str) -> int:
    message = STATUS_MESSAGES.get(new_status, f"Order status changed to {new_status}")
    note = Notification(
        title="Order Status Update",
        message=_clip(f"{message} - Order #{order['order_number']}", 500),
        type="order",
        priority="high" if new_status == "Delivered" else "medium",
        recipient_id=order["user_id"],
        related_order_id=order_id,
        metadata={
            "order_number": order["order_number"],
            "old_status": old_status,
            "new_status": new_status,
            "total_amount": order.get("total_amount"),
        },
    )
    return insert_notifications([note])


def notify_role_change(user: dict, old_role: str, new_role: str) -> int:
    note = Notification(
        title="Account Role Updated",
        message=ROLE_MESSAGES.get(new_role, f"Your account role has been changed to {new_role}"),
        type="user",
        priority="high" if new_role in ("primary", "secondary") else "medium",
        recipient_id=user["id"],
        related_user_id=user["id"],
        metadata={"old_role": old_role, "new_role": new_role, "user_name": user.get("name"), "user_email": user.get("email")},
    )
    return insert_notifications([note])
