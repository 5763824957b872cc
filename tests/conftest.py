import mongomock
import pytest
from fastapi.testclient import TestClient

import auth
import database
import main
from schemas import Role


@pytest.fixture
def db(monkeypatch):
    mock_db = mongomock.MongoClient().db
    monkeypatch.setattr(database, "db", mock_db)
    auth.login_throttle.reset()
    return mock_db


@pytest.fixture
def client(db):
    return TestClient(main.app)


def make_user(role=Role.CUSTOMER, email=None, password="secret123", **extra):
    email = email or f"{Role(role).value}@carbooking.io"
    doc = auth.register_user(f"{Role(role).value.title()} User", email, password, role=role, **extra)
    return doc


def auth_header(doc):
    token = auth.create_access_token(str(doc["_id"]), doc["role"], name=doc.get("name"), email=doc.get("email"))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def customer(db):
    return make_user(Role.CUSTOMER)


@pytest.fixture
def driver(db):
    return make_user(Role.DRIVER, phone="555-0100", license_number="DL-1", is_available=True)


@pytest.fixture
def admin(db):
    return make_user(Role.ADMIN)


@pytest.fixture
def car_id(db):
    return database.create_document("car", {
        "name": "Toyota Camry", "type": "Sedan", "price_per_km": 2.0,
        "is_available": True, "features": ["Bluetooth"],
    })
