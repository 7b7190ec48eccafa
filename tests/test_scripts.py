"""Tests for the release/seed/start scripts."""
import pytest
from sqlalchemy import inspect

from app.store.db import build_engine, make_sessionmaker, session_scope
from app.store.models import Base, User
from app.store.modules.categories.models import Category
from scripts.init_db import DEFAULT_CATEGORIES, seed_only
from scripts.release import release_database_url, run_release
from scripts.start import gunicorn_argv


def test_seed_is_idempotent(app, monkeypatch):
    monkeypatch.setenv("ADMIN_EMAIL", "Root@Example.com")
    monkeypatch.setenv("ADMIN_PASSWORD", "seed-pass")
    monkeypatch.setenv("ADMIN_COGNITO_SUB", "sub-root")
    db_url = app.config["DATABASE_URL"]

    seed_only(database_url=db_url)
    seed_only(database_url=db_url)

    with session_scope(app) as s:
        admins = s.query(User).filter(User.role == "admin").all()
        assert [(u.email, u.cognito_subject) for u in admins] == [("root@example.com", "sub-root")]
        assert admins[0].preferences is not None
        assert s.query(Category).count() == len(DEFAULT_CATEGORIES)


def test_seeded_admin_can_use_admin_api(app, monkeypatch):
    monkeypatch.setenv("ADMIN_EMAIL", "root@example.com")
    monkeypatch.setenv("ADMIN_COGNITO_SUB", "sub-root")
    seed_only(database_url=app.config["DATABASE_URL"])

    token = app.extensions["identity_client"].issue("sub-root")
    r = app.test_client().get("/api/v1/admin/dashboard", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    assert r.json["users"]["by_role"] == {"admin": 1}


def test_release_migrates_and_seeds(tmp_path, monkeypatch):
    db_url = f"sqlite:///{tmp_path/'release.db'}"
    monkeypatch.setenv("DATABASE_URL", db_url)
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("ADMIN_EMAIL", "ops@example.com")

    run_release()
    run_release()

    engine = build_engine(db_url)
    try:
        tables = set(inspect(engine).get_table_names())
        assert set(Base.metadata.tables) <= tables
        assert "alembic_version" in tables
        with make_sessionmaker(engine)() as s:
            assert s.query(User).filter(User.email == "ops@example.com").count() == 1
            assert s.query(Category).count() == len(DEFAULT_CATEGORIES)
    finally:
        engine.dispose()


def test_release_refuses_sqlite_in_production():
    with pytest.raises(RuntimeError):
        release_database_url({"DATABASE_URL": "sqlite:///prod.db", "ENV": "production"})
    with pytest.raises(RuntimeError):
        release_database_url({"ENV": "test"})
    assert release_database_url({"DATABASE_URL": "postgresql://db/store", "ENV": "production"}) == "postgresql://db/store"


def test_gunicorn_argv():
    argv = gunicorn_argv({"PORT": "9000", "WEB_CONCURRENCY": "4"})
    assert argv[:2] == ["gunicorn", "app.wsgi:app"]
    assert argv[argv.index("--bind") + 1] == "0.0.0.0:9000"
    assert argv[argv.index("--workers") + 1] == "4"
    assert argv[argv.index("--timeout") + 1] == "60"

    assert "0.0.0.0:8080" in gunicorn_argv({})
    with pytest.raises(ValueError):
        gunicorn_argv({"PORT": "70000"})
    with pytest.raises(ValueError):
        gunicorn_argv({"WEB_CONCURRENCY": "many"})
