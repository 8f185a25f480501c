import re

import pytest
from fastapi.testclient import TestClient

import api as api_module
from config import settings

HEADERS = {"X-API-Key": settings.api_key}


@pytest.fixture
def client(lib, monkeypatch):
    # Point the app's global Library at the per-test database
    monkeypatch.setattr(api_module, "library", lib)
    return TestClient(api_module.app)


def _add_ai_book(client, isbn="978-1"):
    payload = {"isbn": isbn, "title": "T", "author": "A", "year": 2020, "category": "AI"}
    return client.post("/books", headers=HEADERS, json=payload)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["db"] is True
    assert body["total_books"] == 0


def test_get_books_empty(client):
    response = client.get("/books")
    assert response.status_code == 200
    assert response.json() == []


def test_add_book_with_valid_api_key(client):
    response = _add_ai_book(client)
    assert response.status_code == 201
    assert response.json() == {
        "isbn": "978-1",
        "title": "T",
        "author": "A",
        "year": 2020,
        "category": "Artificial Intelligence",
        "is_available": True,
    }


def test_add_book_with_invalid_api_key(client):
    payload = {"isbn": "978-1", "title": "T", "author": "A", "year": 2020, "category": "AI"}
    response = client.post("/books", headers={"X-API-Key": "invalid-key"}, json=payload)
    assert response.status_code == 403


def test_add_book_unknown_category(client):
    payload = {"isbn": "978-1", "title": "T", "author": "A", "year": 2020, "category": "Poetry"}
    response = client.post("/books", headers=HEADERS, json=payload)
    assert response.status_code == 400
    assert "Poetry" in response.json()["detail"]


def test_add_book_malformed_year(client):
    payload = {"isbn": "978-1", "title": "T", "author": "A", "year": "soon", "category": "SE"}
    response = client.post("/books", headers=HEADERS, json=payload)
    assert response.status_code == 400


def test_add_duplicate_book(client):
    assert _add_ai_book(client).status_code == 201
    assert _add_ai_book(client).status_code == 409


def test_get_update_delete_book(client):
    _add_ai_book(client)

    assert client.get("/books/978-1").json()["title"] == "T"
    assert client.get("/books/unknown").status_code == 404

    response = client.put("/books/978-1", headers=HEADERS, json={"title": "New", "year": "2021"})
    assert response.status_code == 200
    assert response.json()["title"] == "New"
    assert response.json()["year"] == 2021
    assert client.put("/books/unknown", headers=HEADERS, json={"title": "X"}).status_code == 404

    assert client.delete("/books/978-1", headers=HEADERS).status_code == 200
    assert client.delete("/books/978-1", headers=HEADERS).status_code == 404


def test_users_crud(client):
    payload = {"user_id": "u1", "username": "alice", "password": "pw", "email": "a@x", "role": "RegularUser"}
    response = client.post("/users", headers=HEADERS, json=payload)
    assert response.status_code == 201
    assert response.json()["role"] == "Regular User"
    assert "password" not in response.json()

    assert client.post("/users", headers=HEADERS, json=payload).status_code == 409
    assert client.post("/users", headers=HEADERS, json={**payload, "user_id": "u2", "username": "b",
                                                        "role": "librarian"}).status_code == 400

    users = client.get("/users", headers=HEADERS).json()
    assert {u["user_id"] for u in users} == {"admin001", "u1"}

    response = client.put("/users/u1", headers=HEADERS, json={"email": "alice@x"})
    assert response.status_code == 200
    assert response.json()["email"] == "alice@x"
    assert client.put("/users/u1", headers=HEADERS, json={"username": "admin"}).status_code == 409

    assert client.delete("/users/u1", headers=HEADERS).status_code == 200
    assert client.get("/users/u1", headers=HEADERS).status_code == 404


def test_users_require_api_key(client):
    assert client.get("/users").status_code == 403


def test_login(client):
    response = client.post("/login", json={"username": "admin", "password": "admin123"})
    assert response.status_code == 200
    assert response.json()["is_admin"] is True

    assert client.post("/login", json={"username": "admin", "password": "nope"}).status_code == 401


def test_borrow_return_flow(client):
    _add_ai_book(client)
    request = {"user_id": "admin001", "isbn": "978-1"}

    assert client.post("/borrow", headers=HEADERS, json=request).status_code == 200
    assert client.get("/books/978-1").json()["is_available"] is False
    assert client.post("/borrow", headers=HEADERS, json=request).status_code == 409
    assert len(client.get("/borrow-records", params={"active": True}).json()) == 1

    assert client.post("/return", headers=HEADERS, json=request).status_code == 200
    assert client.post("/return", headers=HEADERS, json=request).status_code == 409

    records = client.get("/borrow-records", params={"user_id": "admin001"}).json()
    assert len(records) == 1
    assert records[0]["is_returned"] is True
    assert records[0]["return_date"] == records[0]["borrow_date"]
    assert client.get("/borrow-records", params={"active": True}).json() == []


def test_filter_books(client):
    _add_ai_book(client, "1")
    client.post("/books", headers=HEADERS,
                json={"isbn": "2", "title": "The Goal", "author": "Goldratt", "year": 1984, "category": "mgmt"})
    client.post("/borrow", headers=HEADERS, json={"user_id": "admin001", "isbn": "1"})

    assert [b["isbn"] for b in client.get("/books", params={"q": "goal"}).json()] == ["2"]
    assert [b["isbn"] for b in client.get("/books", params={"available": True}).json()] == ["2"]


def test_service_events_reach_the_log_file(lib, monkeypatch):
    monkeypatch.setattr(api_module, "library", lib)

    # Entering the client runs the app's startup and shutdown
    with TestClient(api_module.app) as client:
        assert _add_ai_book(client).status_code == 201

    with open(settings.log_file, encoding="utf-8") as f:
        content = f.read()
    assert re.search(
        r"^\[\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\] \[INFO\] Book added: 978-1 - T$", content, re.MULTILINE
    )
