import pytest

from tests.helpers import add_user


@pytest.fixture()
def client(app):
    return app.test_client()


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["status"] == "ok"
    assert r.json["service"] == "template-store"
    assert r.json["timestamp"]


def test_healthz_plain(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_index_names_api_prefix(client):
    r = client.get("/")
    assert r.status_code == 200
    assert r.json["api"] == "/api/v1"


def test_unknown_route_is_json_404(client):
    r = client.get("/api/v1/nope")
    assert r.status_code == 404
    assert r.json == {"error": "Not Found"}


def test_request_id_echoed(client):
    r = client.get("/api/v1/categories/", headers={"X-Request-ID": "req-123"})
    assert r.status_code == 200
    assert r.headers["X-Request-ID"] == "req-123"

    r = client.get("/api/v1/categories/")
    assert r.headers.get("X-Request-ID")


def test_protected_route_without_token(client):
    r = client.get("/api/v1/profile/")
    assert r.status_code == 401
    assert r.json["error"] == "No authorization token provided"


def test_protected_route_with_bad_token(client):
    r = client.get("/api/v1/profile/", headers={"Authorization": "Bearer not-a-token"})
    assert r.status_code == 401
    assert r.json["error"] == "Invalid or expired token"


def test_valid_token_without_local_user(app, client):
    token = app.extensions["identity_client"].issue("sub-ghost")
    r = client.get("/api/v1/profile/", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401
    assert r.json["error"] == "User not found"


def test_valid_token_loads_user(app, client):
    _, headers = add_user(app, "alice@example.com", name="Alice")
    r = client.get("/api/v1/profile/", headers=headers)
    assert r.status_code == 200
    assert r.json["user"]["email"] == "alice@example.com"
    assert r.json["user"]["role"] == "user"


def test_dev_user_bypass_only_in_development(app, client):
    user_id, _ = add_user(app, "dev@example.com")
    app.config["DEV_USER_ID"] = str(user_id)

    r = client.get("/api/v1/profile/")
    assert r.status_code == 401

    app.config["ENV"] = "development"
    r = client.get("/api/v1/profile/")
    assert r.status_code == 200
    assert r.json["user"]["id"] == user_id


def test_production_requires_postgres(monkeypatch, tmp_path):
    from app.store import create_app

    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("SECRET_KEY", "a-strong-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'prod.db'}")
    with pytest.raises(RuntimeError, match="Postgres"):
        create_app()


@pytest.mark.parametrize("path", ["/api/v1/templates", "/api/v1/categories", "/api/v1/blog"])
def test_collection_paths_without_trailing_slash(client, path):
    r = client.get(path)
    assert r.status_code == 200
    assert r.json["count"] == 0


def test_create_on_collection_paths_without_trailing_slash(app, client):
    _, headers = add_user(app, "root@example.com", role="admin")
    r = client.post("/api/v1/categories", json={"name": "Letters"}, headers=headers)
    assert r.status_code == 201
    cid = r.json["category"]["id"]

    r = client.post("/api/v1/templates", json={"name": "Cover letter", "price": "4.50", "category_id": cid}, headers=headers)
    assert r.status_code == 201
    r = client.post("/api/v1/blog", json={"title": "Hello", "content": "World"}, headers=headers)
    assert r.status_code == 201
