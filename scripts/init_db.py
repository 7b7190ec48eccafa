"""
Idempotent seed: default categories plus one admin account.

Usage:
  python scripts/init_db.py

ADMIN_EMAIL / ADMIN_PASSWORD / ADMIN_COGNITO_SUB configure the admin. The Cognito
subject links the row to a provider account so the admin can authenticate with a
bearer token; the password hash only serves the local change-password path.
"""
from __future__ import annotations

import os
import sys
from contextlib import contextmanager
from pathlib import Path

from werkzeug.security import generate_password_hash

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.store.db import build_engine, make_sessionmaker  # noqa: E402
from app.store.models import User, UserPreferences  # noqa: E402
from app.store.modules.categories.models import Category  # noqa: E402

DEFAULT_CATEGORIES = (
    ("Business", "Business plans, proposals, invoices and reports"),
    ("Marketing", "Flyers, social media kits and campaign briefs"),
    ("Resume", "Resumes and cover letters"),
    ("Legal", "Contracts, NDAs and agreements"),
    ("Education", "Lesson plans, worksheets and certificates"),
    ("Personal", "Planners, invitations and letters"),
)


@contextmanager
def seed_session(db_url: str):
    # Runs in the release phase, before any app object exists.
    engine = build_engine(db_url, pooled=False)
    try:
        with make_sessionmaker(engine).begin() as s:
            yield s
    finally:
        engine.dispose()


def _seed_categories(s) -> int:
    live = {name.lower() for (name,) in s.query(Category.name).filter(Category.deleted_at.is_(None))}
    added = 0
    for name, description in DEFAULT_CATEGORIES:
        if name.lower() not in live:
            s.add(Category(name=name, description=description))
            added += 1
    return added


def _seed_admin(s, *, email: str, password: str, subject: str | None) -> bool:
    """Creates the admin once. An existing row keeps its password and role."""
    user = s.query(User).filter(User.email == email).one_or_none()
    if user is not None:
        if subject and not user.cognito_subject:
            user.cognito_subject = subject
        return False
    user = User(
        email=email,
        name="Administrator",
        role="admin",
        status="active",
        email_verified=True,
        cognito_subject=subject,
        password_hash=generate_password_hash(password),
    )
    user.preferences = UserPreferences(email_notifications=True, marketing_emails=False, preferences={})
    s.add(user)
    return True


def seed_only(*, database_url: str | None = None) -> None:
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@templatestore.com").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"
    admin_subject = (os.environ.get("ADMIN_COGNITO_SUB") or "").strip() or None
    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///template_store.db").strip()

    with seed_session(db_url) as s:
        added = _seed_categories(s)
        created = _seed_admin(s, email=admin_email, password=admin_password, subject=admin_subject)

    print(f"Seeded {added} categories.")
    print(f"Admin {admin_email}: {'created' if created else 'already present'}"
          f"{'' if admin_subject else ' (no ADMIN_COGNITO_SUB; bearer login unavailable)'}")


def main() -> None:
    seed_only()


if __name__ == "__main__":
    main()
