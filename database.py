"""
MongoDB access for the store API.

`db` is None when DATABASE_URL / DATABASE_NAME are not configured; callers
that can live without the database check `is_database_connected()` first.
"""
from datetime import datetime, timezone
from typing import Optional, Union

import structlog
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.errors import PyMongoError

from config import DATABASE_NAME, DATABASE_URL, DB_TIMEOUT_MS

logger = structlog.get_logger(__name__)

_client = None
db = None

if DATABASE_URL and DATABASE_NAME:
    try:
        _client = MongoClient(DATABASE_URL, serverSelectionTimeoutMS=DB_TIMEOUT_MS)
        db = _client[DATABASE_NAME]
    except PyMongoError as e:
        logger.warning("database_unavailable", error=str(e))
        db = None


def _require_db():
    if db is None:
        raise RuntimeError("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    return db


def is_database_connected() -> bool:
    if db is None:
        return False
    try:
        db.list_collection_names()
        return True
    except PyMongoError as e:
        logger.warning("database_ping_failed", error=str(e)[:80])
        return False


def create_document(collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document with created_at/updated_at stamps and return its id."""
    database = _require_db()
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = data.copy()
    now = datetime.now(timezone.utc)
    data_dict["created_at"] = now
    data_dict["updated_at"] = now
    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None) -> list:
    database = _require_db()
    cursor = database[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def next_sequence(name: str) -> int:
    """Atomically increment and return the named counter."""
    database = _require_db()
    doc = database["counter"].find_one_and_update(
        {"_id": name},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return int(doc["seq"])


def ensure_indexes() -> None:
    database = _require_db()
    database["user"].create_index("email", unique=True)
    database["product"].create_index("category")
    database["product"].create_index("availability")
    database["order"].create_index("order_number", unique=True)
    database["order"].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    database["order"].create_index("status")
    database["deliveryzone"].create_index([("pincode", ASCENDING), ("area", ASCENDING)], unique=True)
    database["deliveryzone"].create_index("city")
    database["notification"].create_index([("recipient_id", ASCENDING), ("created_at", DESCENDING)])
    database["notification"].create_index("is_read")
    database["notification"].create_index("expires_at", expireAfterSeconds=0)
