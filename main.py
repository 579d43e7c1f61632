import hashlib
import hmac
import math
import os
import re
import secrets
import time
import traceback
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import List, Literal, Optional

import jwt
import structlog
from bson.errors import InvalidId
from bson.objectid import ObjectId
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

import config
from checkout import find_delivery_zone, place_order
from database import create_document, db, ensure_indexes, is_database_connected
from notifications import (
    notify_admins_of_contact,
    notify_admins_of_order,
    notify_admins_of_registration,
    notify_order_status,
    notify_role_change,
)
from pricing import price_tier_info, resolve_price
from sample_data import DEMO_DELIVERY_ZONES, DEMO_PRODUCTS, SAMPLE_PRODUCTS, sample_categories
from schemas import (
    TERMINAL_STATUSES,
    Address,
    Category,
    Contact as ContactSchema,
    DeliveryZone as DeliveryZoneSchema,
    NotificationType,
    OrderStatus,
    Password,
    PaymentStatus,
    PersonName,
    Phone,
    Priority,
    Product as ProductSchema,
    Role,
    ShippingAddress,
    TierPrices,
    Unit,
    User as UserSchema,
)

config.configure_logging()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if is_database_connected():
        ensure_indexes()
        logger.info("database_ready", database=config.DATABASE_NAME)
    else:
        logger.warning("database_unavailable", hint="product listing will serve the sample catalog")
    yield


app = FastAPI(title="Construction Materials Store API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "request",
        method=request.method,
        path=request.url.path,
        status=response.status_code,
        duration_ms=round((time.perf_counter() - started) * 1000, 1),
    )
    return response


# ----------------------- Error handling -----------------------
def _flatten_errors(errors) -> List[str]:
    messages = []
    for err in errors:
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        msg = err.get("msg", "Invalid value")
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        messages.append(f"{'.'.join(loc)}: {msg}" if loc else msg)
    return messages


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail
    if exc.status_code == 404 and message == "Not Found":
        message = "Route not found"
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": message},
                        headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={
        "success": False, "message": "Validation error", "errors": _flatten_errors(exc.errors()),
    })


@app.exception_handler(ValidationError)
async def model_validation_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={
        "success": False, "message": "Validation error", "errors": _flatten_errors(exc.errors()),
    })


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    details = exc.details or {}
    fields = list((details.get("keyValue") or details.get("keyPattern") or {}).keys())
    message = f"{fields[0]} already exists" if fields else "Record already exists"
    return JSONResponse(status_code=400, content={"success": False, "message": message})


@app.exception_handler(InvalidId)
async def invalid_id_handler(request: Request, exc: InvalidId):
    return JSONResponse(status_code=400, content={"success": False, "message": "Invalid ID"})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error", path=request.url.path)
    content = {"success": False, "message": str(exc) or "Internal server error"}
    if not config.is_production():
        content["stack"] = traceback.format_exception(type(exc), exc, exc.__traceback__)
    return JSONResponse(status_code=500, content=content)


# ----------------------- Utils -----------------------
security = HTTPBearer(auto_error=False)

PBKDF2_ITERATIONS = 120_000


def serialize_doc(doc):
    if isinstance(doc, list):
        return [serialize_doc(d) for d in doc]
    if isinstance(doc, ObjectId):
        return str(doc)
    if isinstance(doc, datetime):
        return doc.isoformat()
    if not isinstance(doc, dict):
        return doc
    doc = dict(doc)
    _id = doc.pop("_id", None)
    if _id is not None:
        doc["id"] = str(_id)
    doc.pop("password_hash", None)
    return {k: serialize_doc(v) for k, v in doc.items()}


def ok(data=None, message: Optional[str] = None) -> dict:
    body = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body


def oid(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail="Invalid ID")


def hash_password(password: str) -> str:
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), PBKDF2_ITERATIONS).hex()
    return f"pbkdf2_sha256${PBKDF2_ITERATIONS}${salt}${digest}"


def verify_password(password: str, password_hash: str) -> bool:
    try:
        _, iterations, salt, digest = password_hash.split("$")
    except (AttributeError, ValueError):
        return False
    candidate = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), int(iterations)).hex()
    return hmac.compare_digest(candidate, digest)


def create_token(payload: dict) -> str:
    exp = datetime.now(timezone.utc) + timedelta(days=config.JWT_EXPIRES_DAYS)
    to_encode = {**payload, "exp": exp}
    return jwt.encode(to_encode, config.JWT_SECRET, algorithm=config.JWT_ALGO)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGO])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


def token_for(user: dict) -> str:
    return create_token({"id": user["id"], "email": user["email"], "role": user.get("role", "registered")})


def _load_user(token: str) -> dict:
    payload = decode_token(token)
    user_id = payload.get("id")
    if not user_id or not ObjectId.is_valid(user_id):
        raise HTTPException(status_code=401, detail="Invalid token payload")
    user = db["user"].find_one({"_id": ObjectId(user_id)})
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.get("is_active", True):
        raise HTTPException(status_code=401, detail="Account is deactivated")
    return serialize_doc(user)


async def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)):
    if credentials is None:
        raise HTTPException(status_code=401, detail="Access token required")
    return _load_user(credentials.credentials)


async def get_optional_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)):
    if credentials is None or not is_database_connected():
        return None
    try:
        return _load_user(credentials.credentials)
    except HTTPException:
        return None
    except PyMongoError as e:
        logger.warning("optional_user_lookup_failed", error=str(e)[:80])
        return None


async def require_admin(user=Depends(get_current_user)):
    if user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


def paginate(collection: str, filt: dict, page: int, limit: int, sort_by: str, sort_order: str):
    direction = ASCENDING if sort_order == "asc" else DESCENDING
    cursor = db[collection].find(filt).sort(sort_by, direction).skip((page - 1) * limit).limit(limit)
    docs = [serialize_doc(d) for d in cursor]
    total = db[collection].count_documents(filt)
    pagination = {"current": page, "pages": math.ceil(total / limit), "total": total, "limit": limit}
    return docs, pagination


def icontains(text: str) -> dict:
    return {"$regex": re.escape(text), "$options": "i"}


SortOrder = Literal["asc", "desc"]
ProductSort = Literal["created_at", "updated_at", "name", "price", "stock", "category"]
OrderSort = Literal["created_at", "updated_at", "order_number", "total_amount", "status"]
ZoneSort = Literal["created_at", "pincode", "area", "city", "state", "delivery_charge"]
NotificationSort = Literal["created_at", "priority", "type", "is_read"]
UserSort = Literal["created_at", "name", "email", "role"]


# ----------------------- Models -----------------------
class RegisterBody(BaseModel):
    name: PersonName
    email: EmailStr
    password: Password
    phone: Phone
    address: Optional[str] = Field(None, max_length=200)
    business_type: Optional[str] = Field(None, max_length=50)


class LoginBody(BaseModel):
    email: EmailStr
    password: str


class ProfileUpdateBody(BaseModel):
    name: Optional[PersonName] = None
    phone: Optional[Phone] = None
    address: Optional[str] = Field(None, max_length=200)
    addresses: Optional[List[Address]] = None
    business_type: Optional[str] = Field(None, max_length=50)


class ChangePasswordBody(BaseModel):
    current_password: str
    new_password: Password


class ProductCreateBody(ProductSchema):
    pass


class ProductUpdateBody(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[Category] = None
    unit: Optional[Unit] = None
    price: Optional[float] = None
    prices: Optional[TierPrices] = None
    stock: Optional[int] = None
    availability: Optional[bool] = None
    weight: Optional[float] = None
    specifications: Optional[dict] = None
    image: Optional[str] = None
    images: Optional[List[str]] = None


class BulkPricesBody(BaseModel):
    product_ids: List[str]


class OrderItemBody(BaseModel):
    product: str
    quantity: int = Field(..., ge=1)
    price: Optional[float] = Field(None, description="Ignored; prices are resolved server-side")


class OrderCreateBody(BaseModel):
    items: List[OrderItemBody] = Field(..., min_length=1)
    shipping_address: ShippingAddress
    payment_method: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=500)


class AdminOrderUpdateBody(BaseModel):
    status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None
    notes: Optional[str] = Field(None, max_length=500)
    estimated_delivery: Optional[datetime] = None
    tracking_number: Optional[str] = Field(None, max_length=100)


class RoleUpdateBody(BaseModel):
    role: Role


class DeliveryZoneCreateBody(DeliveryZoneSchema):
    pass


class DeliveryZoneUpdateBody(BaseModel):
    pincode: Optional[str] = None
    area: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    delivery_charge: Optional[float] = None
    estimated_delivery_days: Optional[int] = None
    is_active: Optional[bool] = None
    special_instructions: Optional[str] = None


class ContactBody(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: Optional[str] = None
    subject: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)


# ----------------------- Health -----------------------
@app.get("/")
def root():
    return ok(message="Construction Materials Store API", data={
        "version": app.version,
        "endpoints": {
            "health": "/health",
            "auth": "/api/auth",
            "products": "/api/products",
            "orders": "/api/orders",
            "admin": "/api/admin",
            "contact": "/api/contact",
        },
    })


@app.get("/health")
def health():
    return ok(message="Server is running", data={
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": config.ENVIRONMENT,
    })


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if config.DATABASE_URL else "❌ Not Set",
        "database_name": "✅ Set" if config.DATABASE_NAME else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        if db is not None:
            response["collections"] = db.list_collection_names()[:10]
            response["database"] = "✅ Connected & Working"
            response["connection_status"] = "Connected"
    except PyMongoError as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# ----------------------- Auth -----------------------
@app.post("/api/auth/register", status_code=201)
def register(body: RegisterBody):
    email = body.email.lower()
    if db["user"].find_one({"email": email}):
        raise HTTPException(status_code=400, detail="Email already registered")
    user = UserSchema(
        name=body.name,
        email=email,
        password_hash=hash_password(body.password),
        phone=body.phone,
        address=body.address,
        business_type=body.business_type,
    )
    user_id = create_document("user", user)
    created = serialize_doc(db["user"].find_one({"_id": ObjectId(user_id)}))
    logger.info("user_registered", user_id=user_id)

    try:
        notify_admins_of_registration(created)
    except Exception:
        logger.exception("registration_notification_failed", user_id=user_id)

    return ok(message="User registered successfully", data={"token": token_for(created), "user": created})


@app.post("/api/auth/login")
def login(body: LoginBody):
    user = db["user"].find_one({"email": body.email.lower()})
    if not user or not verify_password(body.password, user.get("password_hash", "")):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.get("is_active", True):
        raise HTTPException(status_code=401, detail="Account is deactivated")
    suser = serialize_doc(user)
    return ok(message="Login successful", data={"token": token_for(suser), "user": suser})


@app.get("/api/auth/profile")
def get_profile(user=Depends(get_current_user)):
    return ok(data={"user": user})


@app.put("/api/auth/profile")
def update_profile(body: ProfileUpdateBody, user=Depends(get_current_user)):
    update = body.model_dump(exclude_none=True)
    update["updated_at"] = datetime.now(timezone.utc)
    doc = db["user"].find_one_and_update(
        {"_id": ObjectId(user["id"])}, {"$set": update}, return_document=ReturnDocument.AFTER
    )
    return ok(message="Profile updated successfully", data={"user": serialize_doc(doc)})


@app.post("/api/auth/change-password")
def change_password(body: ChangePasswordBody, user=Depends(get_current_user)):
    stored = db["user"].find_one({"_id": ObjectId(user["id"])})
    if not verify_password(body.current_password, stored.get("password_hash", "")):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    db["user"].update_one(
        {"_id": stored["_id"]},
        {"$set": {"password_hash": hash_password(body.new_password), "updated_at": datetime.now(timezone.utc)}},
    )
    return ok(message="Password changed successfully")


# ----------------------- Products -----------------------
def _sample_listing(user: Optional[dict]):
    products = [_with_user_price(dict(p), user) for p in SAMPLE_PRODUCTS]
    return ok(data={
        "products": products,
        "pagination": {"current": 1, "pages": 1, "total": len(products), "limit": len(products)},
        "fallback": True,
    })


def _with_user_price(product: dict, user: Optional[dict]) -> dict:
    if user:
        product["user_price"] = resolve_price(product, user.get("role"))
    return product


@app.get("/api/products")
def list_products(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    category: Optional[str] = None,
    search: Optional[str] = None,
    availability: Optional[bool] = None,
    sort_by: ProductSort = "created_at",
    sort_order: SortOrder = "desc",
    user=Depends(get_optional_user),
):
    if not is_database_connected():
        logger.warning("products_fallback", reason="database not connected")
        return _sample_listing(user)

    filt = {}
    if category:
        filt["category"] = category
    if availability is not None:
        filt["availability"] = availability
    if search:
        filt["$or"] = [{"name": icontains(search)}, {"description": icontains(search)}]

    try:
        products, pagination = paginate("product", filt, page, limit, sort_by, sort_order)
    except PyMongoError:
        logger.exception("products_fallback", reason="query failed")
        return _sample_listing(user)

    return ok(data={"products": [_with_user_price(p, user) for p in products], "pagination": pagination})


@app.get("/api/products/categories")
def list_categories():
    if not is_database_connected():
        return ok(data={"categories": sample_categories()})
    try:
        categories = sorted(db["product"].distinct("category"))
    except PyMongoError:
        logger.exception("categories_fallback")
        categories = sample_categories()
    return ok(data={"categories": categories})


def _get_product_or_404(product_id: str) -> dict:
    product = db["product"].find_one({"_id": oid(product_id)})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@app.get("/api/products/{product_id}")
def get_product(product_id: str, user=Depends(get_optional_user)):
    product = serialize_doc(_get_product_or_404(product_id))
    return ok(data={"product": _with_user_price(product, user)})


@app.get("/api/products/{product_id}/price")
def get_product_price(product_id: str, user=Depends(get_current_user)):
    product = _get_product_or_404(product_id)
    info = price_tier_info(product, user["role"])
    return ok(data={
        "product_id": str(product["_id"]),
        "product_name": product.get("name"),
        "user_role": user["role"],
        "price": info["display_price"],
        "regular_price": info["regular_price"],
        "savings": info["savings"],
        "tier": info["tier"],
        "unit": product.get("unit"),
    })


@app.post("/api/products/bulk-prices")
def get_bulk_prices(body: BulkPricesBody, user=Depends(get_current_user)):
    ids = [ObjectId(pid) for pid in body.product_ids if ObjectId.is_valid(pid)]
    products = db["product"].find({"_id": {"$in": ids}})
    return ok(data={
        "user_role": user["role"],
        "products": [
            {
                "product_id": str(p["_id"]),
                "product_name": p.get("name"),
                "price": resolve_price(p, user["role"]),
                "unit": p.get("unit"),
                "availability": p.get("availability", True),
                "stock": p.get("stock", 0),
            }
            for p in products
        ],
    })


@app.post("/api/products", status_code=201)
@app.post("/api/admin/products", status_code=201)
def create_product(body: ProductCreateBody, admin=Depends(require_admin)):
    pid = create_document("product", body)
    logger.info("product_created", product_id=pid, admin_id=admin["id"])
    product = serialize_doc(db["product"].find_one({"_id": ObjectId(pid)}))
    return ok(message="Product created successfully", data={"product": product})


@app.put("/api/admin/products/{product_id}")
def update_product(product_id: str, body: ProductUpdateBody, admin=Depends(require_admin)):
    existing = _get_product_or_404(product_id)
    update = body.model_dump(exclude_none=True)
    current = {k: v for k, v in existing.items() if k in ProductSchema.model_fields}
    merged = ProductSchema(**{**current, **update})
    update = {k: v for k, v in merged.model_dump().items() if k in update}
    update["updated_at"] = datetime.now(timezone.utc)
    doc = db["product"].find_one_and_update(
        {"_id": existing["_id"]}, {"$set": update}, return_document=ReturnDocument.AFTER
    )
    return ok(message="Product updated successfully", data={"product": serialize_doc(doc)})


@app.delete("/api/admin/products/{product_id}")
def delete_product(product_id: str, admin=Depends(require_admin)):
    res = db["product"].delete_one({"_id": oid(product_id)})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Product not found")
    return ok(message="Product deleted successfully")


# ----------------------- Orders -----------------------
@app.post("/api/orders", status_code=201)
def create_order(body: OrderCreateBody, user=Depends(get_current_user)):
    order_id, order, zone = place_order(
        user,
        [item.model_dump() for item in body.items],
        body.shipping_address.model_dump(),
        body.payment_method,
        body.notes,
    )
    stored = serialize_doc(db["order"].find_one({"_id": ObjectId(order_id)}))

    try:
        notify_admins_of_order(order_id, stored, user)
    except Exception:
        logger.exception("order_notification_failed", order_id=order_id)

    return ok(message="Order created successfully", data={
        "order": stored,
        "delivery_charge": zone.get("delivery_charge", 0),
        "estimated_delivery_days": zone.get("estimated_delivery_days", 1),
    })


@app.get("/api/orders/my-orders")
def my_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[OrderStatus] = None,
    sort_by: OrderSort = "created_at",
    sort_order: SortOrder = "desc",
    user=Depends(get_current_user),
):
    filt = {"user_id": user["id"]}
    if status:
        filt["status"] = status
    orders, pagination = paginate("order", filt, page, limit, sort_by, sort_order)
    return ok(data={"orders": orders, "pagination": pagination})


@app.get("/api/orders/check-delivery/{pincode}")
def check_delivery_for_order(pincode: str):
    zone = find_delivery_zone(pincode)
    if zone is None:
        return ok(data={"available": False, "message": "Delivery not available to this pincode"})
    return ok(data={
        "available": True,
        "delivery_charge": zone.get("delivery_charge", 0),
        "estimated_delivery_days": zone.get("estimated_delivery_days", 1),
        "area": zone.get("area"),
        "city": zone.get("city"),
        "special_instructions": zone.get("special_instructions"),
    })


def _get_order_or_404(order_id: str) -> dict:
    order = db["order"].find_one({"_id": oid(order_id)})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


def _with_customer(order: dict) -> dict:
    customer = None
    if ObjectId.is_valid(order.get("user_id", "")):
        customer = db["user"].find_one(
            {"_id": ObjectId(order["user_id"])}, {"name": 1, "email": 1, "phone": 1, "role": 1}
        )
    order = serialize_doc(order)
    order["user"] = serialize_doc(customer)
    return order


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, user=Depends(get_current_user)):
    order = _get_order_or_404(order_id)
    if user["role"] != "admin" and order["user_id"] != user["id"]:
        raise HTTPException(status_code=403, detail="Access denied")
    return ok(data={"order": _with_customer(order)})


@app.put("/api/orders/{order_id}/cancel")
def cancel_order(order_id: str, user=Depends(get_current_user)):
    order = _get_order_or_404(order_id)
    if order["user_id"] != user["id"]:
        raise HTTPException(status_code=403, detail="Access denied")
    now = datetime.now(timezone.utc)
    updated = db["order"].find_one_and_update(
        {"_id": order["_id"], "status": {"$nin": list(TERMINAL_STATUSES)}},
        {
            "$set": {"status": "Cancelled", "updated_at": now},
            "$push": {"tracking_history": {"status": "Cancelled", "timestamp": now, "notes": "Cancelled by customer"}},
        },
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise HTTPException(status_code=400, detail="Order cannot be cancelled")
    logger.info("order_cancelled", order_id=order_id)
    return ok(message="Order cancelled successfully", data={"order": serialize_doc(updated)})


# ----------------------- Delivery zones -----------------------
@app.get("/api/delivery-zones")
def list_delivery_zones():
    zones = db["deliveryzone"].find({"is_active": True}).sort("delivery_charge", ASCENDING)
    return ok(data=[serialize_doc(z) for z in zones])


@app.get("/api/delivery-zones/check/{pincode}")
def check_delivery(pincode: str):
    zones = list(db["deliveryzone"].find({"pincode": pincode, "is_active": True}).sort("area", ASCENDING))
    if not zones:
        return JSONResponse(status_code=404, content={
            "success": False, "available": False, "message": "Delivery not available to this pincode",
        })
    return {"success": True, "available": True, "data": [serialize_doc(z) for z in zones]}


def _reject_zone_clash(pincode: str, area: str, exclude_id: Optional[ObjectId] = None) -> None:
    filt = {"pincode": pincode, "area": {"$regex": f"^{re.escape(area)}$", "$options": "i"}}
    if exclude_id is not None:
        filt["_id"] = {"$ne": exclude_id}
    if db["deliveryzone"].find_one(filt):
        raise HTTPException(status_code=400, detail=f"Delivery zone {pincode} / {area} already exists")


@app.post("/api/admin/delivery-zones", status_code=201)
def create_delivery_zone(body: DeliveryZoneCreateBody, admin=Depends(require_admin)):
    _reject_zone_clash(body.pincode, body.area)
    zid = create_document("deliveryzone", body)
    zone = serialize_doc(db["deliveryzone"].find_one({"_id": ObjectId(zid)}))
    return ok(message="Delivery zone added successfully", data={"delivery_zone": zone})


@app.get("/api/admin/delivery-zones")
def admin_list_delivery_zones(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    city: Optional[str] = None,
    state: Optional[str] = None,
    is_active: Optional[bool] = None,
    sort_by: ZoneSort = "pincode",
    sort_order: SortOrder = "asc",
    admin=Depends(require_admin),
):
    filt = {}
    if city:
        filt["city"] = icontains(city)
    if state:
        filt["state"] = icontains(state)
    if is_active is not None:
        filt["is_active"] = is_active
    zones, pagination = paginate("deliveryzone", filt, page, limit, sort_by, sort_order)
    return ok(data={"delivery_zones": zones, "pagination": pagination})


@app.put("/api/admin/delivery-zones/{zone_id}")
def update_delivery_zone(zone_id: str, body: DeliveryZoneUpdateBody, admin=Depends(require_admin)):
    existing = db["deliveryzone"].find_one({"_id": oid(zone_id)})
    if not existing:
        raise HTTPException(status_code=404, detail="Delivery zone not found")
    update = body.model_dump(exclude_none=True)
    current = {k: v for k, v in existing.items() if k in DeliveryZoneSchema.model_fields}
    merged = DeliveryZoneSchema(**{**current, **update})
    if "pincode" in update or "area" in update:
        _reject_zone_clash(merged.pincode, merged.area, exclude_id=existing["_id"])
    update = {k: v for k, v in merged.model_dump().items() if k in update}
    update["updated_at"] = datetime.now(timezone.utc)
    doc = db["deliveryzone"].find_one_and_update(
        {"_id": existing["_id"]}, {"$set": update}, return_document=ReturnDocument.AFTER
    )
    return ok(message="Delivery zone updated successfully", data={"delivery_zone": serialize_doc(doc)})


@app.delete("/api/admin/delivery-zones/{zone_id}")
def delete_delivery_zone(zone_id: str, admin=Depends(require_admin)):
    res = db["deliveryzone"].delete_one({"_id": oid(zone_id)})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Delivery zone not found")
    return ok(message="Delivery zone deleted successfully")


# ----------------------- Notifications -----------------------
@app.get("/api/notifications")
@app.get("/api/admin/notifications")
def list_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    is_read: Optional[bool] = None,
    type: Optional[NotificationType] = None,
    priority: Optional[Priority] = None,
    sort_by: NotificationSort = "created_at",
    sort_order: SortOrder = "desc",
    user=Depends(get_current_user),
):
    filt = {"recipient_id": user["id"]}
    if is_read is not None:
        filt["is_read"] = is_read
    if type:
        filt["type"] = type
    if priority:
        filt["priority"] = priority
    notifications, pagination = paginate("notification", filt, page, limit, sort_by, sort_order)
    unread = db["notification"].count_documents({"recipient_id": user["id"], "is_read": False})
    return ok(data={"notifications": notifications, "pagination": pagination, "unread_count": unread})


@app.get("/api/notifications/unread-count")
@app.get("/api/admin/notifications/unread-count")
def unread_count(user=Depends(get_current_user)):
    count = db["notification"].count_documents({"recipient_id": user["id"], "is_read": False})
    return ok(data={"unread_count": count})


@app.put("/api/notifications/mark-all-read")
@app.put("/api/admin/notifications/mark-all-read")
def mark_all_read(user=Depends(get_current_user)):
    res = db["notification"].update_many(
        {"recipient_id": user["id"], "is_read": False},
        {"$set": {"is_read": True, "updated_at": datetime.now(timezone.utc)}},
    )
    return ok(message=f"{res.modified_count} notifications marked as read", data={"modified_count": res.modified_count})


@app.put("/api/notifications/{notification_id}/read")
@app.put("/api/admin/notifications/{notification_id}/read")
def mark_read(notification_id: str, user=Depends(get_current_user)):
    doc = db["notification"].find_one_and_update(
        {"_id": oid(notification_id), "recipient_id": user["id"]},
        {"$set": {"is_read": True, "updated_at": datetime.now(timezone.utc)}},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        raise HTTPException(status_code=404, detail="Notification not found")
    return ok(message="Notification marked as read", data={"notification": serialize_doc(doc)})


@app.delete("/api/notifications/clear-read")
@app.delete("/api/admin/notifications/clear-read")
def clear_read(user=Depends(get_current_user)):
    res = db["notification"].delete_many({"recipient_id": user["id"], "is_read": True})
    return ok(message=f"{res.deleted_count} read notifications cleared", data={"deleted_count": res.deleted_count})


@app.delete("/api/notifications/clear-all")
@app.delete("/api/admin/notifications/clear-all")
def clear_all(user=Depends(get_current_user)):
    res = db["notification"].delete_many({"recipient_id": user["id"]})
    return ok(message=f"{res.deleted_count} notifications cleared", data={"deleted_count": res.deleted_count})


@app.delete("/api/notifications/{notification_id}")
@app.delete("/api/admin/notifications/{notification_id}")
def delete_notification(notification_id: str, user=Depends(get_current_user)):
    res = db["notification"].delete_one({"_id": oid(notification_id), "recipient_id": user["id"]})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Notification not found")
    return ok(message="Notification deleted successfully")


# ----------------------- Contact -----------------------
@app.post("/api/contact")
def submit_contact(body: ContactBody, request: Request):
    contact = ContactSchema(
        name=body.name,
        email=body.email.lower(),
        phone=body.phone or None,
        subject=body.subject,
        message=body.message,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    create_document("contact", contact)

    try:
        notified = notify_admins_of_contact(contact.model_dump())
        if not notified:
            logger.info("contact_no_admins")
    except Exception:
        logger.exception("contact_notification_failed")

    return ok(message="Thank you for your message! We will get back to you soon.",
              data={"submitted_at": contact.submitted_at.isoformat()})


@app.get("/api/contact/info")
def contact_info():
    return ok(data=config.BUSINESS_INFO)


# ----------------------- Admin -----------------------
def _order_stats(match: dict) -> dict:
    stats = list(db["order"].aggregate([
        {"$match": match},
        {"$group": {
            "_id": None,
            "total_orders": {"$sum": 1},
            "total_revenue": {"$sum": "$total_amount"},
            "avg_order_value": {"$avg": "$total_amount"},
        }},
    ]))
    if not stats:
        return {"total_orders": 0, "total_revenue": 0, "avg_order_value": 0}
    stats[0].pop("_id", None)
    stats[0]["avg_order_value"] = round(stats[0]["avg_order_value"] or 0, 2)
    return stats[0]


@app.get("/api/admin/orders")
def admin_list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[OrderStatus] = None,
    user_id: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    sort_by: OrderSort = "created_at",
    sort_order: SortOrder = "desc",
    admin=Depends(require_admin),
):
    filt = {}
    if status:
        filt["status"] = status
    if user_id:
        filt["user_id"] = user_id
    if start_date or end_date:
        filt["created_at"] = {}
        if start_date:
            filt["created_at"]["$gte"] = start_date
        if end_date:
            filt["created_at"]["$lte"] = end_date
    orders, pagination = paginate("order", filt, page, limit, sort_by, sort_order)
    return ok(data={"orders": orders, "pagination": pagination, "stats": _order_stats(filt)})


@app.get("/api/admin/orders/{order_id}")
def admin_get_order(order_id: str, admin=Depends(require_admin)):
    return ok(data={"order": _with_customer(_get_order_or_404(order_id))})


@app.put("/api/admin/orders/{order_id}")
def admin_update_order(order_id: str, body: AdminOrderUpdateBody, admin=Depends(require_admin)):
    original = _get_order_or_404(order_id)
    now = datetime.now(timezone.utc)
    update = body.model_dump(exclude_none=True)
    ops = {}

    status_changed = body.status is not None and body.status != original["status"]
    if status_changed:
        if original["status"] in TERMINAL_STATUSES:
            raise HTTPException(status_code=400, detail=f"Order is already {original['status']}")
        ops["$push"] = {"tracking_history": {
            "status": body.status, "timestamp": now, "notes": f"Order status changed to {body.status}",
        }}
        if body.status == "Delivered":
            update["actual_delivery"] = now
    update["updated_at"] = now
    ops["$set"] = update

    doc = db["order"].find_one_and_update({"_id": original["_id"]}, ops, return_document=ReturnDocument.AFTER)

    if status_changed:
        try:
            notify_order_status(order_id, doc, original["status"], body.status)
        except Exception:
            logger.exception("order_status_notification_failed", order_id=order_id)

    return ok(message="Order updated successfully", data={"order": _with_customer(doc)})


@app.get("/api/admin/users")
def admin_list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    role: Optional[Role] = None,
    search: Optional[str] = None,
    sort_by: UserSort = "created_at",
    sort_order: SortOrder = "desc",
    admin=Depends(require_admin),
):
    filt = {}
    if role:
        filt["role"] = role
    if search:
        filt["$or"] = [{"name": icontains(search)}, {"email": icontains(search)}]
    users, pagination = paginate("user", filt, page, limit, sort_by, sort_order)
    return ok(data={"users": users, "pagination": pagination})


@app.put("/api/admin/users/{user_id}/role")
def admin_update_role(user_id: str, body: RoleUpdateBody, admin=Depends(require_admin)):
    original = db["user"].find_one({"_id": oid(user_id)})
    if not original:
        raise HTTPException(status_code=404, detail="User not found")
    doc = db["user"].find_one_and_update(
        {"_id": original["_id"]},
        {"$set": {"role": body.role, "updated_at": datetime.now(timezone.utc)}},
        return_document=ReturnDocument.AFTER,
    )
    user = serialize_doc(doc)
    logger.info("user_role_updated", user_id=user_id, old_role=original.get("role"), new_role=body.role)

    if body.role != original.get("role") and body.role != "admin":
        try:
            notify_role_change(user, original.get("role"), body.role)
        except Exception:
            logger.exception("role_notification_failed", user_id=user_id)

    return ok(message="User role updated successfully", data={"user": user})


@app.get("/api/admin/dashboard")
def admin_dashboard(period: int = Query(30, ge=1), admin=Depends(require_admin)):
    start = datetime.now(timezone.utc) - timedelta(days=period)
    summary = {
        "total_users": db["user"].count_documents({}),
        "total_products": db["product"].count_documents({}),
        "total_orders": db["order"].count_documents({}),
        "total_delivery_zones": db["deliveryzone"].count_documents({"is_active": True}),
    }
    status_distribution = [
        {"status": s["_id"], "count": s["count"]}
        for s in db["order"].aggregate([{"$group": {"_id": "$status", "count": {"$sum": 1}}}])
    ]
    top_products = [
        {"product_id": t["_id"], "name": t["name"], "total_quantity": t["total_quantity"],
         "total_revenue": round(t["total_revenue"], 2)}
        for t in db["order"].aggregate([
            {"$unwind": "$items"},
            {"$group": {
                "_id": "$items.product_id",
                "name": {"$first": "$items.name"},
                "total_quantity": {"$sum": "$items.quantity"},
                "total_revenue": {"$sum": "$items.total"},
            }},
            {"$sort": {"total_quantity": -1}},
            {"$limit": 5},
        ])
    ]
    recent = [serialize_doc(o) for o in db["order"].find().sort("created_at", DESCENDING).limit(5)]
    return ok(data={
        "summary": summary,
        "period_stats": {"period": period, "orders": _order_stats({"created_at": {"$gte": start}})},
        "status_distribution": status_distribution,
        "top_products": top_products,
        "recent_orders": recent,
    })


@app.get("/api/admin/stats")
def admin_stats(admin=Depends(require_admin)):
    return ok(data={
        "users": db["user"].count_documents({}),
        "products": db["product"].count_documents({}),
        "orders": db["order"].count_documents({}),
        "delivery_zones": db["deliveryzone"].count_documents({}),
        "unread_notifications": db["notification"].count_documents({"recipient_id": admin["id"], "is_read": False}),
    })


# ----------------------- Seed Demo Data -----------------------
@app.post("/seed")
def seed():
    seeded = {"products": 0, "delivery_zones": 0, "admin": False}
    if db["product"].count_documents({}) == 0:
        for p in DEMO_PRODUCTS:
            create_document("product", ProductSchema(**p))
            seeded["products"] += 1
    if db["deliveryzone"].count_documents({}) == 0:
        for z in DEMO_DELIVERY_ZONES:
            create_document("deliveryzone", DeliveryZoneSchema(**z))
            seeded["delivery_zones"] += 1
    if db["user"].count_documents({"role": "admin"}) == 0:
        admin = UserSchema(
            name="Store Admin",
            email=os.getenv("SEED_ADMIN_EMAIL", "admin@jaibhavani.com"),
            password_hash=hash_password(os.getenv("SEED_ADMIN_PASSWORD", "Admin@123")),
            role="admin",
            phone="9876543211",
        )
        create_document("user", admin)
        seeded["admin"] = True
    logger.info("seed_completed", **seeded)
    return ok(data={"seeded": seeded, "products": db["product"].count_documents({})})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
