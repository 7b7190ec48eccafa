from __future__ import annotations

import uuid

from flask import Blueprint, current_app, g, jsonify, request
from werkzeug.security import check_password_hash, generate_password_hash

from app.store import audit
from app.store.db import db_session
from app.store.errors import StoreError
from app.store.identity import IdentityError, TokenError
from app.store.mailer import EmailError
from app.store.models import User
from app.store.rbac import INVALID_TOKEN, NO_TOKEN, USER_NOT_FOUND, current_user, require_auth
from app.store.users import create_user, email_taken, get_user_by_email, get_user_by_subject, normalize_email, record_login
from app.store.utils import client_ip, error_from_exception, error_response, first_of, json_body, parse_int, server_error

bp = Blueprint("auth", __name__)

MIN_PASSWORD_LENGTH = 8


def _identity():
    return current_app.extensions["identity_client"]


def _bearer_token() -> str | None:
    header = (request.headers.get("Authorization") or "").strip()
    if header[:7].lower() != "bearer ":
        return None
    return header[7:].strip() or None


def load_current_user() -> None:
    """
    Resolves g.current_user from the bearer access token.
    Suspended/deactivated users are still loaded so the role decorators can answer 403;
    g.auth_error carries the 401 message otherwise.
    Also assigns a per-request request_id (for activity/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = (request.headers.get("X-Request-ID") or "").strip()[:64] or uuid.uuid4().hex
    g.current_user = None
    g.auth_error = None

    token = _bearer_token()
    if not token:
        dev_user_id = parse_int(current_app.config.get("DEV_USER_ID"))
        env = (current_app.config.get("ENV") or "").strip().lower()
        if dev_user_id is not None and env == "development":
            _load_dev_user(dev_user_id)
            return
        g.auth_error = NO_TOKEN
        return

    try:
        claims = _identity().verify_access_token(token)
    except TokenError as e:
        current_app.logger.info("Rejected access token (request_id=%s): %s", g.request_id, e.message)
        g.auth_error = INVALID_TOKEN
        return

    try:
        user = get_user_by_subject(db_session(), claims["sub"])
    except Exception as e:
        current_app.logger.error("load_current_user DB error (request_id=%s): %s", g.request_id, e)
        g.auth_error = USER_NOT_FOUND
        return
    if user is None:
        g.auth_error = USER_NOT_FOUND
        return
    g.current_user = user


def _load_dev_user(user_id: int) -> None:
    user = db_session().get(User, user_id)
    if user is None or user.deleted_at is not None:
        current_app.logger.warning("DEV_USER_ID=%s does not match a user", user_id)
        g.auth_error = USER_NOT_FOUND
        return
    g.current_user = user


@bp.post("/register")
def register():
    payload = json_body()
    email = normalize_email(payload.get("email"))
    password = payload.get("password") or ""
    name = (payload.get("name") or "").strip()
    if not email or not password or not name:
        return error_response("Email, password and name are required", 400)

    s = db_session()
    # Includes deleted accounts, before any provider account exists.
    if email_taken(s, email):
        return error_response("User already exists", 400)

    try:
        signup = _identity().sign_up(email=email, password=password, name=name)
    except IdentityError as e:
        return error_response(e.message, 400)

    try:
        user = create_user(s, email=email, name=name, cognito_subject=signup.user_sub)
        audit.record_activity(s, user=user, action=audit.ACCOUNT_CREATED, resource_type="user", resource_id=user.id)
        s.commit()
    except StoreError as e:
        s.rollback()
        return error_from_exception(e)
    except Exception as e:
        return server_error("Failed to create user", e)

    try:
        current_app.extensions["email_sender"].send_welcome(user.email, user.name)
    except EmailError:
        current_app.logger.exception("Welcome email failed user_id=%s", user.id)

    return (
        jsonify(
            {
                "message": "User registered successfully",
                "user_id": user.id,
                "email_verification_required": signup.email_verification_required,
            }
        ),
        201,
    )


@bp.post("/login")
def login():
    payload = json_body()
    email = normalize_email(payload.get("email"))
    password = payload.get("password") or ""
    if not email or not password:
        return error_response("Email and password are required", 400)

    s = db_session()
    user = get_user_by_email(s, email)
    ip = client_ip()
    ua = request.headers.get("User-Agent")

    try:
        tokens = _identity().sign_in(email=email, password=password)
    except IdentityError as e:
        if user is not None:
            record_login(s, user, successful=False, ip_address=ip, user_agent=ua, failure_reason=e.code or e.message)
            audit.record_activity(s, user=user, action=audit.LOGIN_FAILED, details={"reason": e.code or e.message})
            s.commit()
        current_app.logger.info("Login failed email=%s code=%s", email, e.code)
        return error_response("Invalid email or password", 401)

    # The provider username can lag behind a verified local email change; the subject cannot.
    try:
        claims = _identity().verify_access_token(tokens.access_token)
    except TokenError as e:
        current_app.logger.error("Provider issued an unverifiable access token email=%s: %s", email, e.message)
        return error_response("Invalid email or password", 401)
    user = get_user_by_subject(s, claims["sub"])
    if user is None:
        return error_response("User not found", 404)
    if user.status in ("suspended", "deactivated"):
        record_login(s, user, successful=False, ip_address=ip, user_agent=ua, failure_reason=f"account {user.status}")
        s.commit()
        return error_response("Account suspended" if user.status == "suspended" else "Account deactivated", 403)

    try:
        record_login(s, user, successful=True, ip_address=ip, user_agent=ua)
        audit.record_activity(s, user=user, action=audit.LOGIN_SUCCESS)
        s.commit()
    except Exception as e:
        return server_error("Failed to record login", e)

    return jsonify({"message": "Login successful", "user": user.to_dict(), "tokens": tokens.to_dict()})


@bp.post("/confirm")
def confirm():
    payload = json_body()
    email = normalize_email(payload.get("email"))
    code = str(payload.get("code") or "").strip()
    if not email or not code:
        return error_response("Email and code are required", 400)
    try:
        _identity().confirm_sign_up(email=email, code=code)
    except IdentityError as e:
        return error_response(e.message, 400)

    s = db_session()
    user = get_user_by_email(s, email)
    if user is not None and not user.email_verified:
        user.email_verified = True
        audit.record_activity(s, user=user, action=audit.EMAIL_VERIFIED)
        s.commit()
    return jsonify({"message": "Email confirmed successfully"})


@bp.post("/forgot-password")
def forgot_password():
    email = normalize_email(json_body().get("email"))
    if not email:
        return error_response("Email is required", 400)
    try:
        _identity().forgot_password(email=email)
    except IdentityError as e:
        # Same answer either way; don't reveal whether the address exists.
        current_app.logger.info("Forgot-password not started email=%s code=%s", email, e.code)
    else:
        s = db_session()
        user = get_user_by_email(s, email)
        if user is not None:
            audit.record_activity(s, user=user, action=audit.PASSWORD_RESET_REQUESTED)
            s.commit()
    return jsonify({"message": "If the email exists, a password reset code has been sent"})


@bp.post("/reset-password")
def reset_password():
    payload = json_body()
    email = normalize_email(payload.get("email"))
    code = str(payload.get("code") or "").strip()
    new_password = first_of(payload, "new_password", "newPassword") or ""
    if not email or not code or not new_password:
        return error_response("Email, code and new password are required", 400)
    if len(new_password) < MIN_PASSWORD_LENGTH:
        return error_response(f"Password must be at least {MIN_PASSWORD_LENGTH} characters", 400)
    try:
        _identity().confirm_forgot_password(email=email, code=code, new_password=new_password)
    except IdentityError as e:
        return error_response(e.message, 400)

    s = db_session()
    user = get_user_by_email(s, email)
    if user is not None:
        audit.record_activity(s, user=user, action=audit.PASSWORD_RESET)
        s.commit()
    return jsonify({"message": "Password reset successfully"})


@bp.post("/change-password")
@require_auth
def change_password():
    payload = json_body()
    current_password = first_of(payload, "current_password", "currentPassword") or ""
    new_password = first_of(payload, "new_password", "newPassword") or ""
    if not current_password or not new_password:
        return error_response("Current password and new password are required", 400)
    if len(new_password) < MIN_PASSWORD_LENGTH:
        return error_response(f"Password must be at least {MIN_PASSWORD_LENGTH} characters", 400)

    s = db_session()
    user = current_user()
    if user.password_hash:
        if not check_password_hash(user.password_hash, current_password):
            return error_response("Current password is incorrect", 401)
        user.password_hash = generate_password_hash(new_password)
    else:
        token = _bearer_token()
        if not token:
            return error_response("An access token is required to change the password", 400)
        try:
            _identity().change_password(access_token=token, current_password=current_password, new_password=new_password)
        except IdentityError as e:
            if e.code == "NotAuthorizedException":
                return error_response("Current password is incorrect", 401)
            return error_response(e.message, 400)

    try:
        audit.record_activity(s, user=user, action=audit.PASSWORD_CHANGED)
        s.commit()
    except Exception as e:
        return server_error("Failed to change password", e)
    return jsonify({"message": "Password changed successfully"})
