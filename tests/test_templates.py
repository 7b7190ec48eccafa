"""Tests for Templates module."""
import io
from decimal import Decimal

import pytest

from app.store.db import session_scope
from app.store.modules.categories.models import Category
from app.store.modules.orders.models import Order
from app.store.modules.templates.models import Template
from tests.helpers import add_user


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def author(app):
    return add_user(app, "author@example.com", role="author")


@pytest.fixture()
def category_id(app):
    with session_scope(app) as s:
        c = Category(name="Invoices")
        s.add(c)
        s.flush()
        return c.id


def _create(client, headers, **fields):
    payload = {"name": "Invoice Pro", "description": "Clean invoice", "price": "19.99"}
    payload.update(fields)
    return client.post("/api/v1/templates/", json=payload, headers=headers)


def _upload(client, headers, template_id, *, kind="file", data=b"%PDF-1.4 template", name="t.pdf", mime="application/pdf"):
    return client.post(
        f"/api/v1/templates/{template_id}/files",
        data={"file": (io.BytesIO(data), name, mime), "kind": kind},
        headers=headers,
        content_type="multipart/form-data",
    )


def test_create_template_as_author(client, author, category_id):
    _, headers = author
    r = _create(client, headers, category_id=category_id, variables={"company": "string"})
    assert r.status_code == 201
    t = r.json["template"]
    assert t["price"] == 19.99
    assert t["category"] == "Invoices"
    assert t["has_file"] is False
    assert t["downloads"] == 0

    r = client.get(f"/api/v1/templates/{t['id']}/variables")
    assert r.json == {"variables": {"company": "string"}}


def test_create_template_requires_author_role(app, client):
    _, headers = add_user(app, "buyer@example.com")
    r = _create(client, headers)
    assert r.status_code == 403
    assert r.json["error"] == "Insufficient permissions"


@pytest.mark.parametrize(
    "fields,error",
    [
        ({"name": ""}, "Name is required"),
        ({"price": "-1"}, "Price must be a number greater than or equal to 0"),
        ({"price": "abc"}, "Price must be a number greater than or equal to 0"),
        ({"category_id": 999}, "Category not found"),
    ],
)
def test_create_template_validation(client, author, fields, error):
    _, headers = author
    r = _create(client, headers, **fields)
    assert r.status_code == 400
    assert r.json["error"] == error


def test_list_filters_and_hides_inactive(client, author, category_id):
    _, headers = author
    _create(client, headers, name="Invoice Pro", category_id=category_id)
    _create(client, headers, name="Resume Classic", description="One page CV")
    hidden = _create(client, headers, name="Invoice Draft").json["template"]["id"]
    client.put(f"/api/v1/templates/{hidden}", json={"active": False}, headers=headers)

    r = client.get("/api/v1/templates/")
    assert {t["name"] for t in r.json["templates"]} == {"Invoice Pro", "Resume Classic"}

    r = client.get("/api/v1/templates/?q=invoice")
    assert [t["name"] for t in r.json["templates"]] == ["Invoice Pro"]

    r = client.get(f"/api/v1/templates/category/{category_id}")
    assert [t["name"] for t in r.json["templates"]] == ["Invoice Pro"]

    # Inactive templates are only visible to managers.
    assert client.get(f"/api/v1/templates/{hidden}").status_code == 404
    assert client.get(f"/api/v1/templates/{hidden}", headers=headers).status_code == 200


def test_update_and_delete(client, author):
    _, headers = author
    tid = _create(client, headers).json["template"]["id"]
    r = client.put(f"/api/v1/templates/{tid}", json={"price": 5}, headers=headers)
    assert r.status_code == 200
    assert r.json["template"]["price"] == 5.0

    r = client.delete(f"/api/v1/templates/{tid}", headers=headers)
    assert r.status_code == 200
    assert client.get(f"/api/v1/templates/{tid}").status_code == 404


def test_upload_rejects_bad_preview_type(client, author):
    _, headers = author
    tid = _create(client, headers).json["template"]["id"]
    r = _upload(client, headers, tid, kind="preview", data=b"zip", name="x.zip", mime="application/zip")
    assert r.status_code == 400
    r = _upload(client, headers, tid, kind="banner")
    assert r.status_code == 400


def test_download_requires_purchase(app, client, author):
    _, author_headers = author
    tid = _create(client, author_headers).json["template"]["id"]
    buyer_id, buyer = add_user(app, "buyer@example.com")

    r = client.get(f"/api/v1/templates/{tid}/download", headers=author_headers)
    assert r.status_code == 404
    assert r.json["error"] == "Template file not available"

    r = _upload(client, author_headers, tid)
    assert r.status_code == 200
    assert r.json["template"]["has_file"] is True

    r = client.get(f"/api/v1/templates/{tid}/download", headers=buyer)
    assert r.status_code == 403
    assert r.json["error"] == "You have not purchased this template"

    with session_scope(app) as s:
        s.add(
            Order(
                user_id=buyer_id,
                template_id=tid,
                amount=Decimal("19.99"),
                currency="usd",
                status="completed",
                delivery_status="pending",
                stripe_session_id="cs_test_paid",
            )
        )

    r = client.get(f"/api/v1/templates/{tid}/download", headers=buyer)
    assert r.status_code == 200
    assert r.json["download_url"].startswith("/storage/templates/")
    assert r.json["expires_in"] == 3600

    r = client.get(r.json["download_url"])
    assert r.data == b"%PDF-1.4 template"

    with session_scope(app) as s:
        t = s.get(Template, tid)
        order = s.query(Order).filter(Order.stripe_session_id == "cs_test_paid").one()
        assert t.downloads == 1
        assert order.delivery_status == "delivered"
        assert order.download_url


def test_download_requires_auth(client, author):
    _, headers = author
    tid = _create(client, headers).json["template"]["id"]
    r = client.get(f"/api/v1/templates/{tid}/download")
    assert r.status_code == 401
