from pathlib import Path

import pytest

from finance_tracker.webapp import create_app


@pytest.fixture()
def app(tmp_path: Path):
    db_path = tmp_path / "test.sqlite"
    app = create_app({"TESTING": True, "SECRET_KEY": "test", "DATABASE": str(db_path)})
    yield app


@pytest.fixture()
def client(app):
    return app.test_client()


def register(client, email="user1@example.com", password="password123", **extra):
    payload = {"email": email, "password": password, "firstName": "Test", "lastName": "User"}
    payload.update(extra)
    return client.post("/api/auth/register", json=payload)


def login(client, email="user1@example.com", password="password123"):
    return client.post("/api/auth/login", json={"email": email, "password": password})


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def auth_headers(client):
    response = register(client)
    assert response.status_code == 201
    return bearer(response.get_json()["accessToken"])
