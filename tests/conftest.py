import mongomock
import pytest
from fastapi.testclient import TestClient

import database
import main
import slugs
from auth import SessionContext, create_admin

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "s3cret-pass"


@pytest.fixture
def db(monkeypatch):
    """Swap the MongoDB handle for an in-memory mongomock database."""
    mock_db = mongomock.MongoClient()["storefront_test"]
    monkeypatch.setattr(database, "db", mock_db)
    monkeypatch.setattr(slugs, "SLUG_CHECK_DELAY", 0)
    monkeypatch.delenv("NOTIFY_URL", raising=False)
    return mock_db


@pytest.fixture
def client(db):
    main.app.state.sessions = SessionContext()
    with TestClient(main.app) as c:
        yield c


@pytest.fixture
def admin_headers(client):
    create_admin(ADMIN_EMAIL, ADMIN_PASSWORD)
    resp = client.post("/api/admin/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


@pytest.fixture
def product_id(db):
    return database.create_document("products", {
        "title": "Sundarban Honey",
        "description": "Raw forest honey",
        "price": 500,
        "images": ["https://img.example.com/honey.jpg"],
        "category": "honey",
        "slug": "sundarban-honey",
    })
