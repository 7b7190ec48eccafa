"""
Release phase: schema migrations, then the idempotent seed.

Usage:
  python scripts/release.py              # migrate + seed
  python scripts/release.py --no-seed    # migrate only
  python scripts/release.py --revision <rev>
"""
from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

from alembic import command
from alembic.config import Config

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def release_database_url(environ: dict[str, str] | None = None) -> str:
    """DATABASE_URL for the release; sqlite is refused when ENV is production."""
    environ = os.environ if environ is None else environ
    db_url = (environ.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise RuntimeError("DATABASE_URL must be set for the release phase.")
    env = (environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and db_url.startswith("sqlite"):
        raise RuntimeError("Refusing to release against sqlite in production; point DATABASE_URL at Postgres.")
    return db_url


def alembic_config(db_url: str) -> Config:
    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    return cfg


def run_release(*, revision: str = "head", seed: bool = True) -> None:
    db_url = release_database_url()
    print(f"[release] upgrading schema to {revision}", flush=True)
    command.upgrade(alembic_config(db_url), revision)

    if seed:
        from scripts import init_db

        print("[release] seeding categories and admin", flush=True)
        init_db.seed_only(database_url=db_url)
    print("[release] done", flush=True)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Run migrations and seed the store database.")
    parser.add_argument("--revision", default="head")
    parser.add_argument("--no-seed", action="store_true")
    args = parser.parse_args(argv)
    run_release(revision=args.revision, seed=not args.no_seed)


if __name__ == "__main__":
    main()
