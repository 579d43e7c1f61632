"""
Database Schemas for the Construction Materials Store

Each Pydantic model corresponds to one MongoDB collection.
Collection name is the lowercase of the class name.
"""
import re
from datetime import datetime, timedelta, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, EmailStr, Field, field_validator, model_validator

from config import NOTIFICATION_TTL_DAYS

Role = Literal["registered", "primary", "secondary", "admin"]
ROLES = ("registered", "primary", "secondary", "admin")

Category = Literal[
    "Cement",
    "Bricks & Blocks",
    "Sand & Aggregates",
    "Stone Aggregates",
    "Tiles & Flooring",
    "Roofing Materials",
    "Plumbing Supplies",
    "Electrical Supplies",
    "Roof and Tiles Bonding",
    "Doors & Windows",
    "Other",
]

Unit = Literal[
    "Bags", "Tons", "Pieces", "Square Feet", "Cubic Feet", "Meters", "Inches", "Kilograms", "Liters", "Boxes"
]

OrderStatus = Literal["Processing", "Confirmed", "Out for Delivery", "Delivered", "Cancelled"]
TERMINAL_STATUSES = ("Delivered", "Cancelled")
PaymentStatus = Literal["Pending", "Paid", "Failed", "Refunded"]
PaymentMethod = Literal["Cash on Delivery", "Online Payment", "Bank Transfer"]

NotificationType = Literal["order", "user", "product", "system", "payment", "contact"]
Priority = Literal["low", "medium", "high", "urgent"]

NAME_RE = re.compile(r"^[a-zA-Z\s]+$")
PHONE_RE = re.compile(r"^[6-9]\d{9}$")
PINCODE_PATTERN = r"^[1-9][0-9]{5}$"
PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]).{6,}$")


def check_person_name(value: str) -> str:
    value = value.strip()
    if len(value) > 50:
        raise ValueError("Name cannot exceed 50 characters")
    if not NAME_RE.match(value):
        raise ValueError("Name can only contain letters and spaces, no numbers allowed")
    return value


def check_phone(value: str) -> str:
    value = value.strip()
    if not PHONE_RE.match(value):
        raise ValueError("Please enter a valid phone number")
    return value


def check_password(value: str) -> str:
    if not PASSWORD_RE.match(value):
        raise ValueError(
            "Password must contain at least one lowercase letter, one uppercase letter, "
            "one number, and one special character"
        )
    return value


PersonName = Annotated[str, AfterValidator(check_person_name)]
Phone = Annotated[str, AfterValidator(check_phone)]
Password = Annotated[str, AfterValidator(check_password)]


def money(value: float) -> float:
    return round(float(value), 2)


class Address(BaseModel):
    type: Literal["shipping", "billing"]
    street: str
    city: str
    state: str
    pincode: str = Field(..., pattern=PINCODE_PATTERN)
    is_default: bool = False


class User(BaseModel):
    name: PersonName = Field(..., description="Full name")
    email: EmailStr
    password_hash: str = Field(..., description="Hashed password")
    role: Role = "registered"
    phone: Phone
    address: Optional[str] = Field(None, max_length=200)
    addresses: List[Address] = []
    business_type: Optional[str] = Field(None, max_length=50)
    is_active: bool = True

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.lower()


class TierPrices(BaseModel):
    """Per-role price list. `registered` is accepted as a legacy alias of `standard`."""
    standard: Optional[float] = Field(None, ge=0)
    primary: Optional[float] = Field(None, ge=0)
    secondary: Optional[float] = Field(None, ge=0)

    @model_validator(mode="before")
    @classmethod
    def migrate_registered_key(cls, data: Any) -> Any:
        if isinstance(data, dict) and "registered" in data:
            data = dict(data)
            legacy = data.pop("registered")
            data.setdefault("standard", legacy)
        return data


class Product(BaseModel):
    name: str = Field(..., max_length=100)
    description: str = Field(..., max_length=1000)
    category: Category
    unit: Unit
    price: float = Field(..., ge=0, description="Base price")
    prices: TierPrices = Field(default_factory=TierPrices)
    stock: int = Field(0, ge=0)
    availability: bool = True
    weight: Optional[float] = Field(None, ge=0)
    specifications: Dict[str, str] = {}
    image: Optional[str] = None
    images: List[str] = []


class OrderItem(BaseModel):
    product_id: str
    name: Optional[str] = None
    unit: Optional[str] = None
    quantity: int = Field(..., ge=1)
    price_at_purchase: float = Field(..., ge=0)
    total: float = 0

    @model_validator(mode="after")
    def compute_total(self) -> "OrderItem":
        self.total = money(self.quantity * self.price_at_purchase)
        return self


class ShippingAddress(BaseModel):
    street: str
    area: Optional[str] = None
    city: str
    state: str
    pincode: str = Field(..., pattern=PINCODE_PATTERN)


class TrackingEntry(BaseModel):
    status: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    notes: Optional[str] = None


class Order(BaseModel):
    """
    Orders collection schema. Line totals, subtotal and total_amount are
    derived on construction, so a persisted order always satisfies
    total_amount == sum(quantity * price_at_purchase) + delivery_charge.
    """
    user_id: str
    order_number: str
    items: List[OrderItem] = Field(..., min_length=1)
    subtotal: float = 0
    delivery_charge: float = Field(0, ge=0)
    total_amount: float = 0
    shipping_address: ShippingAddress
    status: OrderStatus = "Processing"
    payment_status: PaymentStatus = "Pending"
    payment_method: PaymentMethod = "Cash on Delivery"
    estimated_delivery: Optional[datetime] = None
    actual_delivery: Optional[datetime] = None
    tracking_number: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=500)
    tracking_history: List[TrackingEntry] = []

    @model_validator(mode="after")
    def compute_totals(self) -> "Order":
        self.subtotal = money(sum(item.quantity * item.price_at_purchase for item in self.items))
        self.total_amount = money(self.subtotal + self.delivery_charge)
        return self


class DeliveryZone(BaseModel):
    pincode: str = Field(..., pattern=PINCODE_PATTERN)
    area: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    delivery_charge: float = Field(0, ge=0)
    estimated_delivery_days: int = Field(1, ge=0)
    is_active: bool = True
    special_instructions: Optional[str] = Field(None, max_length=500)

    @field_validator("area", "city", "state")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()


def _default_expiry() -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=NOTIFICATION_TTL_DAYS)


class Notification(BaseModel):
    title: str = Field(..., max_length=100)
    message: str = Field(..., max_length=500)
    type: NotificationType = "system"
    priority: Priority = "medium"
    is_read: bool = False
    recipient_id: str
    related_order_id: Optional[str] = None
    related_user_id: Optional[str] = None
    related_product_id: Optional[str] = None
    metadata: Dict[str, Any] = {}
    expires_at: datetime = Field(default_factory=_default_expiry)


class Contact(BaseModel):
    name: str
    email: EmailStr
    phone: Optional[str] = None
    subject: str
    message: str
    submitted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
