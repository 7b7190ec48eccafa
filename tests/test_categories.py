"""Tests for Categories module."""
import pytest

from tests.helpers import add_user


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def admin_headers(app):
    return add_user(app, "admin@example.com", role="admin")[1]


def test_categories_list_is_public(client):
    r = client.get("/api/v1/categories/")
    assert r.status_code == 200
    assert r.json == {"categories": [], "count": 0, "limit": 50, "offset": 0}


def test_category_create_requires_admin(app, client):
    _, author = add_user(app, "author@example.com", role="author")
    r = client.post("/api/v1/categories/", json={"name": "Invoices"})
    assert r.status_code == 401
    r = client.post("/api/v1/categories/", json={"name": "Invoices"}, headers=author)
    assert r.status_code == 403
    assert r.json["error"] == "Admin access required"


def test_category_crud(client, admin_headers):
    r = client.post(
        "/api/v1/categories/", json={"name": "Invoices", "description": "Billing docs"}, headers=admin_headers
    )
    assert r.status_code == 201
    cid = r.json["category"]["id"]

    client.post("/api/v1/categories/", json={"name": "Contracts"}, headers=admin_headers)
    r = client.get("/api/v1/categories/")
    assert [c["name"] for c in r.json["categories"]] == ["Contracts", "Invoices"]

    r = client.put(f"/api/v1/categories/{cid}", json={"description": "Bills"}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json["category"]["description"] == "Bills"

    r = client.delete(f"/api/v1/categories/{cid}", headers=admin_headers)
    assert r.status_code == 200
    assert r.json["message"] == "Category deleted successfully"

    r = client.get(f"/api/v1/categories/{cid}")
    assert r.status_code == 404


def test_category_name_unique_among_live_rows(client, admin_headers):
    r = client.post("/api/v1/categories/", json={"name": "Invoices"}, headers=admin_headers)
    cid = r.json["category"]["id"]

    r = client.post("/api/v1/categories/", json={"name": "invoices"}, headers=admin_headers)
    assert r.status_code == 400
    assert r.json["error"] == "Category with this name already exists"

    # A deleted category frees its name.
    client.delete(f"/api/v1/categories/{cid}", headers=admin_headers)
    r = client.post("/api/v1/categories/", json={"name": "Invoices"}, headers=admin_headers)
    assert r.status_code == 201


def test_category_requires_name(client, admin_headers):
    r = client.post("/api/v1/categories/", json={"description": "x"}, headers=admin_headers)
    assert r.status_code == 400
    assert r.json["error"] == "Name is required"


def test_pagination_is_clamped(client, admin_headers):
    for name in ("A", "B", "C"):
        client.post("/api/v1/categories/", json={"name": name}, headers=admin_headers)
    r = client.get("/api/v1/categories/?limit=2&offset=1")
    assert [c["name"] for c in r.json["categories"]] == ["B", "C"]

    r = client.get("/api/v1/categories/?limit=1000&offset=-5")
    assert r.json["limit"] == 100
    assert r.json["offset"] == 0
    assert r.json["count"] == 3
