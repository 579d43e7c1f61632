import mongomock
import pytest

import database

database.db = mongomock.MongoClient()["construction_store_test"]
database.ensure_indexes()

from fastapi.testclient import TestClient  # noqa: E402

import main  # noqa: E402
from schemas import User  # noqa: E402

PASSWORD = "Secret@123"


@pytest.fixture(autouse=True)
def clean_db():
    yield
    for name in database.db.list_collection_names():
        database.db[name].delete_many({})


@pytest.fixture
def db():
    return database.db


@pytest.fixture
def client():
    return TestClient(main.app)


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role="registered", email=None, name="Test Customer", is_active=True):
        counter["n"] += 1
        email = email or f"user{counter['n']}@example.com"
        user = User(
            name=name,
            email=email,
            password_hash=main.hash_password(PASSWORD),
            role=role,
            phone="9876543210",
            is_active=is_active,
        )
        user_id = database.create_document("user", user)
        doc = main.serialize_doc(db["user"].find_one({"_id": main.ObjectId(user_id)}))
        return doc, {"Authorization": f"Bearer {main.token_for(doc)}"}

    return _make


@pytest.fixture
def customer(make_user):
    return make_user(role="primary", email="primary@example.com", name="Primary Buyer")


@pytest.fixture
def admin(make_user):
    return make_user(role="admin", email="admin@example.com", name="Store Admin")


@pytest.fixture
def make_product():
    def _make(**overrides):
        data = {
            "name": "PPC Cement",
            "description": "Portland pozzolana cement",
            "category": "Cement",
            "unit": "Bags",
            "price": 350,
            "prices": {"standard": 350, "primary": 320, "secondary": 330},
            "stock": 100,
            "availability": True,
        }
        data.update(overrides)
        return database.create_document("product", data)

    return _make


@pytest.fixture
def make_zone():
    def _make(**overrides):
        data = {
            "pincode": "421302",
            "area": "Kalher",
            "city": "Bhiwandi",
            "state": "Maharashtra",
            "delivery_charge": 60,
            "estimated_delivery_days": 1,
            "is_active": True,
        }
        data.update(overrides)
        return database.create_document("deliveryzone", data)

    return _make


@pytest.fixture
def shipping_address():
    return {"street": "12 Station Road", "area": "Kalher", "city": "Bhiwandi", "state": "Maharashtra", "pincode": "421302"}
