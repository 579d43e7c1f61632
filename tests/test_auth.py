from datetime import datetime, timedelta, timezone

import jwt
from bson import ObjectId

import config
import main
from conftest import PASSWORD

NEW_USER = {
    "name": "Ravi Patil",
    "email": "Ravi@Example.com",
    "password": "Build@2024",
    "phone": "9823456789",
    "business_type": "Contractor",
}


def test_register_returns_token_and_user(client, db):
    res = client.post("/api/auth/register", json=NEW_USER)
    assert res.status_code == 201
    body = res.json()
    assert body["success"] is True
    user = body["data"]["user"]
    assert user["email"] == "ravi@example.com"
    assert user["role"] == "registered"
    assert "password_hash" not in user
    assert body["data"]["token"]

    stored = db["user"].find_one({"email": "ravi@example.com"})
    assert stored["password_hash"] != NEW_USER["password"]
    assert main.verify_password(NEW_USER["password"], stored["password_hash"])


def test_register_duplicate_email_is_rejected(client, db):
    assert client.post("/api/auth/register", json=NEW_USER).status_code == 201
    res = client.post("/api/auth/register", json={**NEW_USER, "email": "ravi@example.com"})
    assert res.status_code == 400
    assert res.json() == {"success": False, "message": "Email already registered"}
    assert db["user"].count_documents({"email": "ravi@example.com"}) == 1


def test_register_rejects_weak_password_and_bad_phone(client, db):
    res = client.post("/api/auth/register", json={**NEW_USER, "password": "password"})
    assert res.status_code == 400
    assert res.json()["message"] == "Validation error"
    assert any(e.startswith("password") for e in res.json()["errors"])

    res = client.post("/api/auth/register", json={**NEW_USER, "phone": "12345"})
    assert res.status_code == 400
    assert db["user"].count_documents({}) == 0


def test_register_rejects_name_with_digits(client):
    res = client.post("/api/auth/register", json={**NEW_USER, "name": "Ravi 2"})
    assert res.status_code == 400
    assert "name: Name can only contain letters and spaces, no numbers allowed" in res.json()["errors"]


def test_register_notifies_admins(client, db, admin):
    admin_user, _ = admin
    client.post("/api/auth/register", json=NEW_USER)
    notes = list(db["notification"].find({"recipient_id": admin_user["id"]}))
    assert len(notes) == 1
    assert notes[0]["type"] == "user"
    assert notes[0]["title"] == "New User Registration"


def test_login(client, customer):
    user, _ = customer
    res = client.post("/api/auth/login", json={"email": "PRIMARY@example.com", "password": PASSWORD})
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["user"]["id"] == user["id"]
    payload = jwt.decode(data["token"], config.JWT_SECRET, algorithms=[config.JWT_ALGO])
    assert payload["id"] == user["id"]
    assert payload["role"] == "primary"


def test_login_with_wrong_password(client, customer):
    res = client.post("/api/auth/login", json={"email": "primary@example.com", "password": "Wrong@123"})
    assert res.status_code == 401
    assert res.json()["message"] == "Invalid credentials"


def test_login_unknown_email(client):
    res = client.post("/api/auth/login", json={"email": "nobody@example.com", "password": PASSWORD})
    assert res.status_code == 401


def test_deactivated_account_is_refused(client, make_user):
    _, headers = make_user(email="gone@example.com", is_active=False)
    assert client.get("/api/auth/profile", headers=headers).status_code == 401
    res = client.post("/api/auth/login", json={"email": "gone@example.com", "password": PASSWORD})
    assert res.status_code == 401
    assert res.json()["message"] == "Account is deactivated"


def test_profile_requires_token(client):
    res = client.get("/api/auth/profile")
    assert res.status_code == 401
    assert res.json() == {"success": False, "message": "Access token required"}


def test_profile_rejects_bad_tokens(client):
    res = client.get("/api/auth/profile", headers={"Authorization": "Bearer not-a-jwt"})
    assert res.status_code == 401
    assert res.json()["message"] == "Invalid token"

    ghost = main.create_token({"id": str(ObjectId()), "email": "ghost@example.com", "role": "registered"})
    res = client.get("/api/auth/profile", headers={"Authorization": f"Bearer {ghost}"})
    assert res.status_code == 401
    assert res.json()["message"] == "User not found"


def test_expired_token(client, customer):
    user, _ = customer
    token = jwt.encode(
        {"id": user["id"], "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
        config.JWT_SECRET,
        algorithm=config.JWT_ALGO,
    )
    res = client.get("/api/auth/profile", headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 401
    assert res.json()["message"] == "Token expired"


def test_get_and_update_profile(client, customer):
    user, headers = customer
    res = client.get("/api/auth/profile", headers=headers)
    assert res.json()["data"]["user"]["email"] == "primary@example.com"

    res = client.put("/api/auth/profile", headers=headers, json={"name": "Primary Trader", "address": "Kalher"})
    assert res.status_code == 200
    updated = res.json()["data"]["user"]
    assert updated["name"] == "Primary Trader"
    assert updated["address"] == "Kalher"
    assert updated["role"] == "primary"
    assert "password_hash" not in updated


def test_update_profile_validates_fields(client, customer):
    _, headers = customer
    res = client.put("/api/auth/profile", headers=headers, json={"phone": "5555555555"})
    assert res.status_code == 400


def test_change_password(client, customer):
    _, headers = customer
    res = client.post("/api/auth/change-password", headers=headers,
                      json={"current_password": "Wrong@123", "new_password": "Fresh@456"})
    assert res.status_code == 400
    assert res.json()["message"] == "Current password is incorrect"

    res = client.post("/api/auth/change-password", headers=headers,
                      json={"current_password": PASSWORD, "new_password": "Fresh@456"})
    assert res.status_code == 200

    login = client.post("/api/auth/login", json={"email": "primary@example.com", "password": "Fresh@456"})
    assert login.status_code == 200
    old = client.post("/api/auth/login", json={"email": "primary@example.com", "password": PASSWORD})
    assert old.status_code == 401
