from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from school_library import api as api_module
from school_library.config import settings

HEADERS = {"X-API-Key": settings.api_key}


@pytest.fixture
def client(lib):
    api_module.app.dependency_overrides[api_module.get_library] = lambda: lib
    try:
        with TestClient(api_module.app) as test_client:
            yield test_client
    finally:
        api_module.app.dependency_overrides.clear()


@pytest.fixture
def student_id(client):
    response = client.post("/students", headers=HEADERS, json={"name": "Amina Wanjiru", "admission_number": "ADM-1001"})
    assert response.status_code == 200
    return response.json()["id"]


@pytest.fixture
def book_id(client):
    response = client.post("/books", headers=HEADERS, json={"title": "Kigogo", "author": "Pauline Kea", "copies": 1})
    assert response.status_code == 200
    return response.json()["id"]


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["storage_backend"] == "sqlite"


def test_write_requires_api_key(client):
    response = client.post("/students", json={"name": "Amina"})
    assert response.status_code == 403
    response = client.post("/students", headers={"X-API-Key": "invalid-key"}, json={"name": "Amina"})
    assert response.status_code == 403


def test_add_book_reports_availability(client):
    payload = {"title": "Kigogo", "author": "Pauline Kea", "copies": 2, "due_period_value": 2, "due_period_unit": "weeks"}
    response = client.post("/books", headers=HEADERS, json=payload)
    assert response.status_code == 200
    body = response.json()
    assert body["total_copies"] == 2
    assert body["available_copies"] == 2
    assert body["due_period_unit"] == "weeks"

    assert client.get(f"/books/{body['id']}").json()["available_copies"] == 2
    assert len(client.get("/books").json()) == 1


def test_borrow_and_return(client, student_id, book_id):
    response = client.post("/borrowing", headers=HEADERS, json={"student_id": student_id, "book_id": book_id})
    assert response.status_code == 200
    record = response.json()
    assert record["status"] == "borrowed"
    assert record["book_title"] == "Kigogo"
    due = datetime.fromisoformat(record["due_date"]) - datetime.fromisoformat(record["borrow_date"])
    assert due == timedelta(hours=24)
    assert client.get(f"/books/{book_id}").json()["available_copies"] == 0

    response = client.put(f"/borrowing/{record['id']}/return", headers=HEADERS)
    assert response.status_code == 200
    assert response.json()["status"] == "returned"
    assert client.get(f"/books/{book_id}").json()["available_copies"] == 1
    assert client.get(f"/students/{student_id}/borrowing").json()[0]["id"] == record["id"]


def test_borrow_requires_exactly_one_target(client, student_id, book_id):
    response = client.post("/borrowing", headers=HEADERS, json={"student_id": student_id})
    assert response.status_code == 422


def test_no_available_copy_is_conflict(client, student_id, book_id):
    client.post("/borrowing", headers=HEADERS, json={"student_id": student_id, "book_id": book_id})
    other = client.post("/students", headers=HEADERS, json={"name": "Brian Otieno"}).json()["id"]

    response = client.post("/borrowing", headers=HEADERS, json={"student_id": other, "book_id": book_id})

    assert response.status_code == 409
    assert response.json()["code"] == "no_available_copy"


def test_not_found_errors(client, student_id):
    response = client.post("/borrowing", headers=HEADERS, json={"student_id": student_id, "book_id": "missing"})
    assert response.status_code == 404
    assert response.json()["code"] == "book_not_found"
    assert client.get("/students/missing").status_code == 404
    assert client.post("/borrowing/missing/return", headers=HEADERS).status_code == 404


def test_return_by_code(client, student_id):
    payload = {"title": "Kigogo", "author": "Pauline Kea", "catalog_codes": ["9789966561234"]}
    book_id = client.post("/books", headers=HEADERS, json=payload).json()["id"]
    client.post("/borrowing", headers=HEADERS, json={"student_id": student_id, "book_id": book_id})

    response = client.post("/borrowing/return-by-code", headers=HEADERS, json={"catalog_code": "978-9966561234"})

    assert response.status_code == 200
    assert response.json()["catalog_code"] == "9789966561234"


def test_sweep_and_unblacklist(client, lib, student_id):
    start = datetime.now(timezone.utc) - timedelta(days=5)
    for i in range(3):
        book = lib.add_book(f"Book {i}", "Author")
        lib.borrow(student_id, book.id, now=start)

    response = client.post("/borrowing/sweep", headers=HEADERS)
    assert response.json() == {"promoted": 3, "blacklisted": 1, "unblacklisted": 0}
    assert len(client.get("/borrowing/overdue").json()) == 3
    assert client.get("/students/blacklisted").json()[0]["id"] == student_id
    assert client.get("/stats").json()["blacklisted_students"] == 1

    response = client.post(f"/students/{student_id}/unblacklist", headers=HEADERS, json={"reason": "ok", "admin_id": "admin-7"})
    assert response.status_code == 400
    assert response.json()["code"] == "invalid_reason"

    response = client.post(
        f"/students/{student_id}/unblacklist",
        headers=HEADERS,
        json={"reason": "Parent came in and paid", "admin_id": "admin-7"},
    )
    assert response.status_code == 200
    assert response.json()["blacklisted"] is False

    actions = client.get("/admin/actions", headers=HEADERS).json()
    assert actions[0]["action_type"] == "unblacklist"


def test_blacklisted_student_rejected(client, lib, student_id, book_id):
    start = datetime.now(timezone.utc) - timedelta(days=5)
    for i in range(3):
        lib.borrow(student_id, lib.add_book(f"Book {i}", "Author").id, now=start)
    client.post("/borrowing/sweep", headers=HEADERS)

    response = client.post("/borrowing", headers=HEADERS, json={"student_id": student_id, "book_id": book_id})

    assert response.status_code == 400
    assert response.json()["code"] == "student_blacklisted"


def test_list_records_filter(client, student_id, book_id):
    client.post("/borrowing", headers=HEADERS, json={"student_id": student_id, "book_id": book_id})
    assert len(client.get("/borrowing", params={"status": "borrowed"}).json()) == 1
    assert client.get("/borrowing", params={"status": "returned"}).json() == []
    assert client.get("/borrowing", params={"status": "lost"}).status_code == 422


def test_out_of_range_due_period_is_rejected(client, student_id, book_id):
    payload = {"student_id": student_id, "book_id": book_id, "due_period_value": 10000, "due_period_unit": "years"}

    response = client.post("/borrowing", headers=HEADERS, json=payload)

    assert response.status_code == 422
    assert response.json()["code"] == "invalid_due_period"
    assert client.get(f"/books/{book_id}").json()["available_copies"] == 1
