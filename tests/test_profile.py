"""Tests for the self-service profile endpoints."""
import io
from datetime import datetime, timedelta

import pytest

from app.store.db import session_scope
from app.store.models import EmailVerificationToken, User
from tests.helpers import add_user


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def alice(app):
    return add_user(app, "alice@example.com", name="Alice")


def test_update_profile_whitelisted_fields(app, client, alice):
    user_id, headers = alice
    r = client.put(
        "/api/v1/profile/",
        json={"name": "Alice Smith", "city": "Lisbon", "role": "admin", "email": "evil@example.com"},
        headers=headers,
    )
    assert r.status_code == 200
    assert r.json["user"]["name"] == "Alice Smith"
    assert r.json["user"]["city"] == "Lisbon"
    assert r.json["user"]["role"] == "user"
    assert r.json["user"]["email"] == "alice@example.com"


def test_update_profile_rejects_empty_name(client, alice):
    _, headers = alice
    r = client.put("/api/v1/profile/", json={"name": "  "}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "Name cannot be empty"


def test_preferences_round_trip(client, alice):
    _, headers = alice
    r = client.get("/api/v1/profile/preferences", headers=headers)
    assert r.status_code == 200
    assert r.json["preferences"]["email_notifications"] is True

    r = client.put(
        "/api/v1/profile/preferences",
        json={"email_notifications": False, "language": "pt", "preferences": {"theme": "dark"}},
        headers=headers,
    )
    assert r.status_code == 200
    prefs = r.json["preferences"]
    assert prefs["email_notifications"] is False
    assert prefs["language"] == "pt"
    assert prefs["preferences"] == {"theme": "dark"}


def test_email_change_flow(app, client, alice):
    user_id, headers = alice
    r = client.post("/api/v1/profile/email", json={"new_email": "Alice.New@example.com"}, headers=headers)
    assert r.status_code == 200

    sent = app.extensions["email_sender"].of_kind("verification")
    assert len(sent) == 1
    _, to, token = sent[0]
    assert to == "alice.new@example.com"

    r = client.post("/api/v1/profile/email/verify", json={"token": token}, headers=headers)
    assert r.status_code == 200
    assert r.json["user"]["email"] == "alice.new@example.com"
    assert r.json["user"]["email_verified"] is True

    # Tokens are single use.
    r = client.post("/api/v1/profile/email/verify", json={"token": token}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "Invalid or already used token"


def test_email_change_rejects_taken_address(app, client, alice):
    add_user(app, "bob@example.com")
    _, headers = alice
    r = client.post("/api/v1/profile/email", json={"new_email": "bob@example.com"}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "Email already in use"


def test_email_change_expired_token(app, client, alice):
    user_id, headers = alice
    with session_scope(app) as s:
        s.add(
            EmailVerificationToken(
                user_id=user_id,
                email="late@example.com",
                token="expired-token",
                expires_at=datetime.utcnow() - timedelta(minutes=1),
                used=False,
            )
        )
    r = client.post("/api/v1/profile/email/verify", json={"token": "expired-token"}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "Token has expired"


def test_email_token_bound_to_requesting_user(app, client, alice):
    _, headers = alice
    bob_id, _ = add_user(app, "bob@example.com")
    with session_scope(app) as s:
        s.add(
            EmailVerificationToken(
                user_id=bob_id,
                email="bob2@example.com",
                token="bobs-token",
                expires_at=datetime.utcnow() + timedelta(hours=1),
                used=False,
            )
        )
    r = client.post("/api/v1/profile/email/verify", json={"token": "bobs-token"}, headers=headers)
    assert r.status_code == 400


def test_avatar_upload_and_remove(app, client, alice):
    user_id, headers = alice
    r = client.post(
        "/api/v1/profile/avatar",
        data={"avatar": (io.BytesIO(b"\x89PNG fake"), "me.png", "image/png")},
        headers=headers,
        content_type="multipart/form-data",
    )
    assert r.status_code == 200
    url = r.json["avatar_url"]
    assert url.startswith("/storage/avatars/")

    r = client.get(url)
    assert r.status_code == 200
    assert r.data == b"\x89PNG fake"

    r = client.delete("/api/v1/profile/avatar", headers=headers)
    assert r.status_code == 200
    with session_scope(app) as s:
        assert s.get(User, user_id).avatar_url is None


def test_avatar_rejects_non_images(client, alice):
    _, headers = alice
    r = client.post(
        "/api/v1/profile/avatar",
        data={"avatar": (io.BytesIO(b"text"), "notes.txt", "text/plain")},
        headers=headers,
        content_type="multipart/form-data",
    )
    assert r.status_code == 400


def test_login_history_and_activity(client, alice):
    _, headers = alice
    client.post("/api/v1/auth/login", json={"email": "alice@example.com", "password": "Passw0rd!"})
    client.put("/api/v1/profile/", json={"bio": "hello"}, headers=headers)

    r = client.get("/api/v1/profile/login-history", headers=headers)
    assert r.status_code == 200
    assert r.json["count"] == 1
    assert r.json["history"][0]["successful"] is True

    r = client.get("/api/v1/profile/activity", headers=headers)
    actions = [a["action"] for a in r.json["activity"]]
    assert "profile_updated" in actions
    assert "login_success" in actions


def test_empty_orders_and_purchases(client, alice):
    _, headers = alice
    r = client.get("/api/v1/profile/orders", headers=headers)
    assert r.status_code == 200
    assert r.json["orders"] == []
    r = client.get("/api/v1/profile/purchased-templates", headers=headers)
    assert r.json == {"templates": [], "count": 0}


def test_deactivate_blocks_further_access(client, alice):
    _, headers = alice
    r = client.post("/api/v1/profile/deactivate", headers=headers)
    assert r.status_code == 200

    r = client.get("/api/v1/profile/", headers=headers)
    assert r.status_code == 403
    assert r.json["error"] == "Account deactivated"


def test_email_change_rolled_back_when_provider_rejects(app, client, alice):
    user_id, headers = alice
    client.post("/api/v1/profile/email", json={"new_email": "claimed@example.com"}, headers=headers)
    _, _, token = app.extensions["email_sender"].of_kind("verification")[0]
    app.extensions["identity_client"].add_account("claimed@example.com", "x", "sub-someone-else")

    r = client.post("/api/v1/profile/email/verify", json={"token": token}, headers=headers)
    assert r.status_code == 400
    with session_scope(app) as s:
        assert s.get(User, user_id).email == "alice@example.com"
        assert s.query(EmailVerificationToken).filter(EmailVerificationToken.token == token).one().used is False


def test_profile_bare_path(client, alice):
    _, headers = alice
    r = client.get("/api/v1/profile", headers=headers)
    assert r.status_code == 200
    r = client.put("/api/v1/profile", json={"bio": "no slash"}, headers=headers)
    assert r.status_code == 200
    assert r.json["user"]["bio"] == "no slash"
