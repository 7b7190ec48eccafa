from typing import Any

from flask import g, has_request_context, request
from sqlalchemy.orm import Session

from app.store.models import ActivityLog, User

# Activity actions
PROFILE_UPDATED = "profile_updated"
PREFERENCES_UPDATED = "preferences_updated"
PASSWORD_CHANGED = "password_changed"
PASSWORD_RESET_REQUESTED = "password_reset_requested"
PASSWORD_RESET = "password_reset"
EMAIL_VERIFIED = "email_verified"
EMAIL_CHANGE_REQUESTED = "email_change_requested"
EMAIL_CHANGED = "email_changed"
ACCOUNT_CREATED = "account_created"
ACCOUNT_DEACTIVATED = "account_deactivated"
LOGIN_SUCCESS = "login_success"
LOGIN_FAILED = "login_failed"
ORDER_PLACED = "order_placed"
ORDER_FAILED = "order_failed"
ORDER_REFUNDED = "order_refunded"
TEMPLATE_DOWNLOADED = "template_downloaded"
USER_SUSPENDED = "user_suspended"
USER_UNSUSPENDED = "user_unsuspended"
USER_UPDATED = "user_updated"
ROLE_CHANGED = "role_changed"
USER_DELETED = "user_deleted"
CONTENT_CREATED = "content_created"
CONTENT_UPDATED = "content_updated"
CONTENT_DELETED = "content_deleted"


def record_activity(
    s: Session,
    *,
    user: User | int | None,
    action: str,
    actor: User | None = None,
    resource_type: str | None = None,
    resource_id: Any = None,
    details: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> ActivityLog:
    """
    Append-only activity helper. `actor` defaults to the subject user.
    """
    user_id = user.id if isinstance(user, User) else user
    in_request = has_request_context()
    rid = request_id or (getattr(g, "request_id", None) if in_request else None)
    user_agent = (request.headers.get("User-Agent") or "")[:512] if in_request else ""
    ev = ActivityLog(
        request_id=rid,
        user_id=user_id,
        actor_user_id=actor.id if actor else user_id,
        action=action,
        resource_type=resource_type,
        resource_id=str(resource_id) if resource_id is not None else None,
        details=details or None,
        ip_address=request.remote_addr if in_request else None,
        user_agent=user_agent or None,
    )
    s.add(ev)
    return ev
