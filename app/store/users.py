from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, or_

from app.store.errors import Conflict, NotFound, ValidationError
from app.store.models import (
    USER_ROLES,
    USER_STATUSES,
    ActivityLog,
    EmailVerificationToken,
    LoginHistory,
    User,
    UserPreferences,
    money,
)
from app.store.modules.orders.models import Order
from app.store.modules.orders.service import revenue_total
from app.store.utils import parse_bool

if TYPE_CHECKING:
    from sqlalchemy.orm import Query, Session

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("name", "avatar_url", "bio", "phone_number", "address", "city", "state", "postal_code", "country")
SORT_FIELDS = ("id", "name", "email", "created_at", "last_login_at", "role", "status")
EMAIL_TOKEN_TTL = timedelta(hours=24)


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def _live(s: "Session") -> "Query":
    return s.query(User).filter(User.deleted_at.is_(None))


def get_user(s: "Session", user_id: int) -> User:
    u = _live(s).filter(User.id == user_id).one_or_none()
    if u is None:
        raise NotFound("User not found")
    return u


def get_user_by_email(s: "Session", email: str) -> User | None:
    return _live(s).filter(func.lower(User.email) == normalize_email(email)).one_or_none()


def get_user_by_subject(s: "Session", subject: str) -> User | None:
    return _live(s).filter(User.cognito_subject == subject).one_or_none()


def email_taken(s: "Session", email: str, *, exclude_id: int | None = None) -> bool:
    # Deleted accounts keep their address reserved (email is unique at the DB level).
    q = s.query(User.id).filter(func.lower(User.email) == normalize_email(email))
    if exclude_id is not None:
        q = q.filter(User.id != exclude_id)
    return q.first() is not None


def create_user(
    s: "Session",
    *,
    email: str,
    name: str,
    cognito_subject: str | None = None,
    password_hash: str | None = None,
    role: str = "user",
    email_verified: bool = False,
) -> User:
    email = normalize_email(email)
    if not email or not (name or "").strip():
        raise ValidationError("Email and name are required")
    if role not in USER_ROLES:
        raise ValidationError(f"Invalid role. Must be one of: {', '.join(USER_ROLES)}")
    if email_taken(s, email):
        raise Conflict("User already exists")
    u = User(
        email=email,
        name=name.strip(),
        cognito_subject=cognito_subject,
        password_hash=password_hash,
        role=role,
        status="active",
        email_verified=email_verified,
    )
    u.preferences = UserPreferences(email_notifications=True, marketing_emails=False, preferences={})
    s.add(u)
    s.flush()
    logger.info("User created id=%s email=%s role=%s", u.id, u.email, u.role)
    return u


def update_profile(s: "Session", user: User, payload: dict) -> list[str]:
    """Applies whitelisted profile fields only. Returns the names of changed fields."""
    changed: list[str] = []
    for field in PROFILE_FIELDS:
        if field not in payload:
            continue
        value = payload.get(field)
        value = str(value).strip() if value is not None else None
        if field == "name":
            if not value:
                raise ValidationError("Name cannot be empty")
        else:
            value = value or None
        if getattr(user, field) != value:
            setattr(user, field, value)
            changed.append(field)
    s.flush()
    if changed:
        logger.info("Profile updated user_id=%s fields=%s", user.id, changed)
    return changed


def get_preferences(s: "Session", user: User) -> UserPreferences:
    if user.preferences is None:
        user.preferences = UserPreferences(email_notifications=True, marketing_emails=False, preferences={})
        s.flush()
    return user.preferences


def update_preferences(s: "Session", user: User, payload: dict) -> UserPreferences:
    prefs = get_preferences(s, user)
    for flag in ("email_notifications", "marketing_emails"):
        if flag in payload:
            setattr(prefs, flag, parse_bool(payload.get(flag)))
    for field in ("language", "timezone"):
        if field in payload:
            setattr(prefs, field, (str(payload.get(field) or "")).strip() or None)
    if "preferences" in payload:
        extra = payload.get("preferences") or {}
        if not isinstance(extra, dict):
            raise ValidationError("Preferences must be an object")
        prefs.preferences = {**(prefs.preferences or {}), **extra}
    s.flush()
    return prefs


def record_login(
    s: "Session",
    user: User,
    *,
    successful: bool,
    ip_address: str | None,
    user_agent: str | None,
    failure_reason: str | None = None,
    method: str = "password",
) -> LoginHistory:
    entry = LoginHistory(
        user_id=user.id,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:512] or None,
        login_method=method,
        successful=successful,
        failure_reason=failure_reason,
    )
    s.add(entry)
    if successful:
        user.last_login_at = datetime.utcnow()
    s.flush()
    return entry


def login_history(s: "Session", user: User, *, limit: int, offset: int) -> list[LoginHistory]:
    return (
        s.query(LoginHistory)
        .filter(LoginHistory.user_id == user.id)
        .order_by(LoginHistory.created_at.desc(), LoginHistory.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def activity_for(s: "Session", user_id: int, *, limit: int, offset: int) -> list[ActivityLog]:
    return (
        s.query(ActivityLog)
        .filter(ActivityLog.user_id == user_id)
        .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def issue_email_change(s: "Session", user: User, new_email: str) -> EmailVerificationToken:
    new_email = normalize_email(new_email)
    if not new_email or "@" not in new_email:
        raise ValidationError("A valid email address is required")
    if new_email == normalize_email(user.email):
        raise ValidationError("New email must be different from the current one")
    if email_taken(s, new_email, exclude_id=user.id):
        raise Conflict("Email already in use")
    tok = EmailVerificationToken(
        user_id=user.id,
        email=new_email,
        token=secrets.token_urlsafe(32),
        expires_at=datetime.utcnow() + EMAIL_TOKEN_TTL,
        used=False,
    )
    s.add(tok)
    s.flush()
    logger.info("Email change requested user_id=%s", user.id)
    return tok


def apply_email_change(s: "Session", token: str, *, user: User | None = None) -> tuple[User, str]:
    """Consumes a verification token. Returns (user, old_email)."""
    tok = s.query(EmailVerificationToken).filter(EmailVerificationToken.token == (token or "").strip()).one_or_none()
    if tok is None or tok.used or (user is not None and tok.user_id != user.id):
        raise ValidationError("Invalid or already used token")
    if tok.expires_at < datetime.utcnow():
        raise ValidationError("Token has expired")
    user = user or get_user(s, tok.user_id)
    if email_taken(s, tok.email, exclude_id=user.id):
        raise Conflict("Email already in use")
    old_email = user.email
    user.email = tok.email
    user.email_verified = True
    tok.used = True
    s.flush()
    logger.info("Email changed user_id=%s", user.id)
    return user, old_email


def deactivate(s: "Session", user: User) -> None:
    user.status = "deactivated"
    s.flush()
    logger.info("Account deactivated user_id=%s", user.id)


# ---------- Admin ----------


def list_users(
    s: "Session",
    *,
    search: str | None = None,
    role: str | None = None,
    status: str | None = None,
    sort: str = "created_at",
    order: str = "desc",
    limit: int,
    offset: int,
) -> tuple[list[User], int]:
    q = _live(s)
    if search:
        like = f"%{search}%"
        q = q.filter(or_(User.name.ilike(like), User.email.ilike(like)))
    if role:
        q = q.filter(User.role == role)
    if status:
        q = q.filter(User.status == status)
    total = q.count()
    column = getattr(User, sort if sort in SORT_FIELDS else "created_at")
    column = column.asc() if (order or "").lower() == "asc" else column.desc()
    return q.order_by(column, User.id.asc()).offset(offset).limit(limit).all(), total


def user_stats(s: "Session", user: User) -> dict[str, Any]:
    orders = s.query(Order).filter(Order.user_id == user.id, Order.deleted_at.is_(None))
    spent = (
        s.query(func.coalesce(func.sum(Order.amount), 0))
        .filter(Order.user_id == user.id, Order.status == "completed", Order.deleted_at.is_(None))
        .scalar()
    )
    return {
        "total_orders": orders.count(),
        "completed_orders": orders.filter(Order.status == "completed").count(),
        "total_spent": float(spent or 0),
        "login_count": s.query(LoginHistory).filter(LoginHistory.user_id == user.id, LoginHistory.successful.is_(True)).count(),
        "last_login_at": user.last_login_at.isoformat() if user.last_login_at else None,
    }


def admin_update_user(s: "Session", user: User, payload: dict) -> list[str]:
    changed: list[str] = []
    if "name" in payload:
        name = (payload.get("name") or "").strip()
        if not name:
            raise ValidationError("Name cannot be empty")
        if name != user.name:
            user.name = name
            changed.append("name")
    if "role" in payload and payload.get("role") != user.role:
        set_role(s, user, payload.get("role"))
        changed.append("role")
    if "status" in payload and payload.get("status") != user.status:
        status = payload.get("status")
        if status not in USER_STATUSES:
            raise ValidationError(f"Invalid status. Must be one of: {', '.join(USER_STATUSES)}")
        user.status = status
        if status != "suspended":
            user.suspended_at = None
            user.suspended_by_user_id = None
            user.suspension_reason = None
        changed.append("status")
    s.flush()
    return changed


def set_role(s: "Session", user: User, role: Any) -> None:
    if role not in USER_ROLES:
        raise ValidationError(f"Invalid role. Must be one of: {', '.join(USER_ROLES)}")
    logger.info("Role change user_id=%s %s -> %s", user.id, user.role, role)
    user.role = role
    s.flush()


def suspend(s: "Session", user: User, *, by: User, reason: str | None) -> None:
    if user.id == by.id:
        raise ValidationError("Cannot suspend yourself")
    if user.status == "suspended":
        raise ValidationError("User is already suspended")
    user.status = "suspended"
    user.suspended_at = datetime.utcnow()
    user.suspended_by_user_id = by.id
    user.suspension_reason = reason
    s.flush()
    logger.info("User suspended user_id=%s by=%s", user.id, by.id)


def unsuspend(s: "Session", user: User) -> None:
    if user.status != "suspended":
        raise ValidationError("User is not suspended")
    user.status = "active"
    user.suspended_at = None
    user.suspended_by_user_id = None
    user.suspension_reason = None
    s.flush()
    logger.info("User unsuspended user_id=%s", user.id)


def delete_user(s: "Session", user: User, *, by: User) -> None:
    if user.id == by.id:
        raise ValidationError("Cannot delete yourself")
    user.soft_delete()
    s.flush()
    logger.info("User deleted user_id=%s by=%s", user.id, by.id)


def dashboard(s: "Session") -> dict[str, Any]:
    now = datetime.utcnow()
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    users = _live(s)
    orders = s.query(Order).filter(Order.deleted_at.is_(None))

    users_by_role = dict(users.with_entities(User.role, func.count(User.id)).group_by(User.role).all())
    orders_by_status = dict(orders.with_entities(Order.status, func.count(Order.id)).group_by(Order.status).all())

    return {
        "users": {
            "total": users.count(),
            "active": users.filter(User.status == "active").count(),
            "suspended": users.filter(User.status == "suspended").count(),
            "new_last_30_days": users.filter(User.created_at >= now - timedelta(days=30)).count(),
            "by_role": users_by_role,
        },
        "orders": {
            "total": orders.count(),
            "by_status": orders_by_status,
        },
        "revenue": {
            "total": money(revenue_total(s)),
            "this_month": money(revenue_total(s, since=month_start)),
        },
        "recent_users": [u.to_dict() for u in users.order_by(User.created_at.desc()).limit(5).all()],
        "recent_orders": [o.to_dict() for o in orders.order_by(Order.created_at.desc()).limit(5).all()],
    }
