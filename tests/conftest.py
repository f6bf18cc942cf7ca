import mongomock
import pytest
from fastapi.testclient import TestClient

from auth import create_token
from database import ensure_indexes, get_db
from main import app
from settings import Settings, get_settings


@pytest.fixture
def settings():
    return Settings(jwt_secret="test-secret", jwt_expires_in=3600)


@pytest.fixture
def db():
    database = mongomock.MongoClient()["vlxd_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def client(db, settings):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(settings):
    token = create_token("user-1", "owner@example.com", settings)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def cement(db):
    """The store's best seller, as stored by the product endpoints."""
    res = db["product"].insert_one(
        {"name": "Xi măng Hà Tiên", "unit": "Bao", "price": 90000, "category": "Xi măng", "quantity": 10}
    )
    return str(res.inserted_id)
