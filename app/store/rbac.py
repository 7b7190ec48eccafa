from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import current_app, g, request

from app.store.models import User
from app.store.utils import error_response

# Messages for g.auth_error set by auth.load_current_user.
NO_TOKEN = "No authorization token provided"
INVALID_TOKEN = "Invalid or expired token"
USER_NOT_FOUND = "User not found"


def current_user() -> User | None:
    return getattr(g, "current_user", None)


def user_has_role(user: User | None, *roles: str) -> bool:
    if not user or not user.is_active:
        return False
    return user.role in roles


def _auth_failure():
    user = current_user()
    if user is None:
        return error_response(getattr(g, "auth_error", None) or NO_TOKEN, 401)
    if user.status == "suspended":
        current_app.logger.warning("Forbidden: suspended user_id=%s path=%s", user.id, request.path)
        return error_response("Account suspended", 403)
    if user.status == "deactivated":
        current_app.logger.warning("Forbidden: deactivated user_id=%s path=%s", user.id, request.path)
        return error_response("Account deactivated", 403)
    return None


def require_auth(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        failure = _auth_failure()
        if failure is not None:
            return failure
        return fn(*args, **kwargs)

    return wrapped


def require_role(*roles: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            failure = _auth_failure()
            if failure is not None:
                return failure
            user = current_user()
            if not user_has_role(user, *roles):
                current_app.logger.warning(
                    "Forbidden: user_id=%s role=%s required=%s path=%s request_id=%s",
                    user.id,
                    user.role,
                    ",".join(roles),
                    request.path,
                    getattr(g, "request_id", None),
                )
                return error_response("Insufficient permissions", 403)
            return fn(*args, **kwargs)

        return wrapped

    return decorator


def require_admin(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        failure = _auth_failure()
        if failure is not None:
            return failure
        user = current_user()
        if user.role != "admin":
            current_app.logger.warning(
                "Forbidden: admin required user_id=%s path=%s request_id=%s",
                user.id,
                request.path,
                getattr(g, "request_id", None),
            )
            return error_response("Admin access required", 403)
        return fn(*args, **kwargs)

    return wrapped
