"""Tests for the admin API."""
from decimal import Decimal

import pytest
import stripe

from app.store.db import session_scope
from app.store.models import ActivityLog, User
from app.store.modules.orders.models import Order
from app.store.modules.templates.models import Template
from tests.helpers import add_user


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def admin(app):
    return add_user(app, "admin@example.com", role="admin", name="Admin")


def _order(app, user_id, *, status="completed", intent="pi_1", session_id="cs_1"):
    with session_scope(app) as s:
        t = Template(name=f"Template {session_id}", price=Decimal("10.00"), active=True, variables={})
        s.add(t)
        s.flush()
        o = Order(
            user_id=user_id,
            template_id=t.id,
            amount=Decimal("10.00"),
            currency="usd",
            status=status,
            delivery_status="pending",
            stripe_session_id=session_id,
            stripe_payment_intent_id=intent,
        )
        s.add(o)
        s.flush()
        return o.id


def test_admin_routes_require_admin(app, client):
    _, headers = add_user(app, "user@example.com")
    r = client.get("/api/v1/admin/users", headers=headers)
    assert r.status_code == 403
    assert r.json["error"] == "Admin access required"
    assert client.get("/api/v1/admin/dashboard").status_code == 401


def test_list_users_with_filters(app, client, admin):
    _, headers = admin
    add_user(app, "carol@example.com", name="Carol", role="author")
    add_user(app, "dave@example.com", name="Dave")

    r = client.get("/api/v1/admin/users?limit=2&sort=email&order=asc", headers=headers)
    assert r.status_code == 200
    assert r.json["total"] == 3
    assert r.json["count"] == 2
    assert [u["email"] for u in r.json["users"]] == ["admin@example.com", "carol@example.com"]

    r = client.get("/api/v1/admin/users?role=author", headers=headers)
    assert [u["name"] for u in r.json["users"]] == ["Carol"]

    r = client.get("/api/v1/admin/users?q=dav", headers=headers)
    assert [u["name"] for u in r.json["users"]] == ["Dave"]


def test_user_detail_includes_stats(app, client, admin):
    _, headers = admin
    user_id, _ = add_user(app, "buyer@example.com")
    _order(app, user_id)

    r = client.get(f"/api/v1/admin/users/{user_id}", headers=headers)
    assert r.status_code == 200
    assert r.json["stats"]["total_orders"] == 1
    assert r.json["stats"]["completed_orders"] == 1
    assert r.json["stats"]["total_spent"] == 10.0

    assert client.get("/api/v1/admin/users/9999", headers=headers).status_code == 404


def test_suspend_and_unsuspend(app, client, admin):
    admin_id, headers = admin
    user_id, user_headers = add_user(app, "bad@example.com")

    r = client.post(f"/api/v1/admin/users/{user_id}/suspend", json={"reason": "spam"}, headers=headers)
    assert r.status_code == 200
    assert ("suspended", "bad@example.com", "spam") in app.extensions["email_sender"].sent

    r = client.get("/api/v1/profile/", headers=user_headers)
    assert r.status_code == 403
    assert r.json["error"] == "Account suspended"

    r = client.post(f"/api/v1/admin/users/{user_id}/suspend", json={}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "User is already suspended"

    with session_scope(app) as s:
        u = s.get(User, user_id)
        assert u.suspended_by_user_id == admin_id
        assert u.suspension_reason == "spam"
        entry = s.query(ActivityLog).filter(ActivityLog.action == "user_suspended").one()
        assert entry.user_id == user_id
        assert entry.actor_user_id == admin_id

    r = client.post(f"/api/v1/admin/users/{user_id}/unsuspend", headers=headers)
    assert r.status_code == 200
    assert client.get("/api/v1/profile/", headers=user_headers).status_code == 200


def test_admin_cannot_act_on_self(client, admin):
    admin_id, headers = admin
    r = client.post(f"/api/v1/admin/users/{admin_id}/suspend", json={}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "Cannot suspend yourself"

    r = client.put(f"/api/v1/admin/users/{admin_id}/role", json={"role": "user"}, headers=headers)
    assert r.status_code == 400

    r = client.put(f"/api/v1/admin/users/{admin_id}", json={"status": "suspended"}, headers=headers)
    assert r.status_code == 400

    r = client.delete(f"/api/v1/admin/users/{admin_id}", headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "Cannot delete yourself"


def test_role_change_and_update(app, client, admin):
    _, headers = admin
    user_id, user_headers = add_user(app, "pat@example.com")

    r = client.put(f"/api/v1/admin/users/{user_id}/role", json={"role": "wizard"}, headers=headers)
    assert r.status_code == 400

    r = client.put(f"/api/v1/admin/users/{user_id}/role", json={"role": "author"}, headers=headers)
    assert r.status_code == 200
    # New role takes effect on the next request.
    r = client.post("/api/v1/blog/", json={"title": "T", "content": "C"}, headers=user_headers)
    assert r.status_code == 201

    r = client.put(f"/api/v1/admin/users/{user_id}", json={"name": "Patricia"}, headers=headers)
    assert r.status_code == 200
    assert r.json["user"]["name"] == "Patricia"

    r = client.get(f"/api/v1/admin/users/{user_id}/activity", headers=headers)
    actions = [a["action"] for a in r.json["activity"]]
    assert "role_changed" in actions
    assert "user_updated" in actions


def test_delete_user_is_soft(app, client, admin):
    _, headers = admin
    user_id, user_headers = add_user(app, "gone@example.com")
    r = client.delete(f"/api/v1/admin/users/{user_id}", headers=headers)
    assert r.status_code == 200

    assert client.get(f"/api/v1/admin/users/{user_id}", headers=headers).status_code == 404
    assert client.get("/api/v1/profile/", headers=user_headers).status_code == 401
    with session_scope(app) as s:
        assert s.get(User, user_id).deleted_at is not None


def test_dashboard(app, client, admin):
    _, headers = admin
    user_id, _ = add_user(app, "buyer@example.com")
    _order(app, user_id, session_id="cs_a")
    _order(app, user_id, status="pending", intent=None, session_id="cs_b")

    r = client.get("/api/v1/admin/dashboard", headers=headers)
    assert r.status_code == 200
    assert r.json["users"]["total"] == 2
    assert r.json["users"]["by_role"] == {"admin": 1, "user": 1}
    assert r.json["orders"]["total"] == 2
    assert r.json["orders"]["by_status"] == {"completed": 1, "pending": 1}
    assert r.json["revenue"]["total"] == 10.0

    r = client.get("/api/v1/admin/orders?status=pending", headers=headers)
    assert r.json["total"] == 1
    assert r.json["orders"][0]["stripe_session_id"] == "cs_b"


def test_refund_order(app, client, admin, monkeypatch):
    _, headers = admin
    user_id, _ = add_user(app, "buyer@example.com")
    completed = _order(app, user_id, session_id="cs_a")
    pending = _order(app, user_id, status="pending", intent=None, session_id="cs_b")

    refunds = []

    def create_refund(**kwargs):
        refunds.append(kwargs)
        return {"id": "re_1", "payment_intent": kwargs["payment_intent"]}

    monkeypatch.setattr(stripe.Refund, "create", create_refund)

    r = client.post(f"/api/v1/admin/orders/{pending}/refund", headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "Only completed orders can be refunded"

    r = client.post(f"/api/v1/admin/orders/{completed}/refund", headers=headers)
    assert r.status_code == 200
    assert r.json["order"]["status"] == "refunded"
    assert r.json["order"]["metadata"]["refund_id"] == "re_1"
    assert refunds == [{"payment_intent": "pi_1"}]

    r = client.post(f"/api/v1/admin/orders/{completed}/refund", headers=headers)
    assert r.status_code == 200
    assert r.json["message"] == "Order already refunded"
    assert len(refunds) == 1
