from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from app.store import audit
from app.store.db import db_session
from app.store.errors import StoreError
from app.store.identity import IdentityError
from app.store.mailer import EmailError
from app.store.modules.orders.service import list_user_orders, purchased_templates
from app.store.rbac import current_user, require_auth
from app.store.storage import StorageError, storage_from_config, upload_bytes
from app.store.users import (
    activity_for,
    apply_email_change,
    deactivate,
    get_preferences,
    issue_email_change,
    login_history,
    update_preferences,
    update_profile,
)
from app.store.utils import error_from_exception, error_response, first_of, json_body, parse_pagination, server_error

bp = Blueprint("profile", __name__)

AVATAR_TYPES = ("image/png", "image/jpeg", "image/gif", "image/webp")
MAX_AVATAR_BYTES = 5 * 1024 * 1024


@bp.get("/", strict_slashes=False)
@require_auth
def profile_get():
    return jsonify({"user": current_user().to_dict()})


@bp.put("/", strict_slashes=False)
@require_auth
def profile_update():
    s = db_session()
    user = current_user()
    try:
        changed = update_profile(s, user, json_body())
        if changed:
            audit.record_activity(s, user=user, action=audit.PROFILE_UPDATED, details={"fields": changed})
        s.commit()
    except StoreError as e:
        s.rollback()
        return error_from_exception(e)
    except Exception as e:
        return server_error("Failed to update profile", e)
    return jsonify({"message": "Profile updated successfully", "user": user.to_dict()})


@bp.post("/avatar")
@require_auth
def avatar_upload():
    s = db_session()
    user = current_user()
    f = request.files.get("avatar") or request.files.get("file")
    if not f or not f.filename:
        return error_response("Avatar file is required", 400)
    if (f.mimetype or "").lower() not in AVATAR_TYPES:
        return error_response("Avatar must be a PNG, JPEG, GIF or WebP image", 400)
    data = f.read()
    if len(data) > MAX_AVATAR_BYTES:
        return error_response("Avatar must be 5MB or smaller", 400)
    try:
        result = upload_bytes(
            storage_from_config(current_app.config),
            folder=f"avatars/{user.id}",
            filename=f.filename,
            data=data,
            content_type=f.mimetype,
        )
        user.avatar_url = result.url
        audit.record_activity(s, user=user, action=audit.PROFILE_UPDATED, details={"fields": ["avatar_url"]})
        s.commit()
    except StorageError as e:
        return server_error("Failed to store avatar", e)
    except Exception as e:
        return server_error("Failed to update avatar", e)
    return jsonify({"avatar_url": user.avatar_url})


@bp.delete("/avatar")
@require_auth
def avatar_delete():
    s = db_session()
    user = current_user()
    user.avatar_url = None
    audit.record_activity(s, user=user, action=audit.PROFILE_UPDATED, details={"fields": ["avatar_url"]})
    s.commit()
    return jsonify({"message": "Avatar removed successfully"})


@bp.get("/orders")
@require_auth
def my_orders():
    limit, offset = parse_pagination()
    status = (request.args.get("status") or "").strip() or None
    try:
        orders = list_user_orders(db_session(), current_user(), status=status, limit=limit, offset=offset)
    except Exception as e:
        return server_error("Failed to list orders", e)
    return jsonify({"orders": [o.to_dict() for o in orders], "count": len(orders), "limit": limit, "offset": offset})


@bp.get("/purchased-templates")
@require_auth
def my_templates():
    try:
        templates = purchased_templates(db_session(), current_user())
    except Exception as e:
        return server_error("Failed to list purchased templates", e)
    return jsonify({"templates": [t.to_dict() for t in templates], "count": len(templates)})


@bp.get("/preferences")
@require_auth
def preferences_get():
    s = db_session()
    prefs = get_preferences(s, current_user())
    s.commit()
    return jsonify({"preferences": prefs.to_dict()})


@bp.put("/preferences")
@require_auth
def preferences_update():
    s = db_session()
    user = current_user()
    payload = json_body()
    try:
        prefs = update_preferences(s, user, payload)
        audit.record_activity(s, user=user, action=audit.PREFERENCES_UPDATED, details={"fields": sorted(payload.keys())})
        s.commit()
    except StoreError as e:
        s.rollback()
        return error_from_exception(e)
    except Exception as e:
        return server_error("Failed to update preferences", e)
    return jsonify({"message": "Preferences updated successfully", "preferences": prefs.to_dict()})


@bp.get("/login-history")
@require_auth
def my_login_history():
    limit, offset = parse_pagination()
    entries = login_history(db_session(), current_user(), limit=limit, offset=offset)
    return jsonify({"history": [e.to_dict() for e in entries], "count": len(entries), "limit": limit, "offset": offset})


@bp.get("/activity")
@require_auth
def my_activity():
    limit, offset = parse_pagination()
    entries = activity_for(db_session(), current_user().id, limit=limit, offset=offset)
    return jsonify({"activity": [e.to_dict() for e in entries], "count": len(entries), "limit": limit, "offset": offset})


@bp.post("/email")
@require_auth
def email_change_request():
    s = db_session()
    user = current_user()
    new_email = first_of(json_body(), "new_email", "newEmail", "email")
    try:
        tok = issue_email_change(s, user, new_email or "")
        audit.record_activity(s, user=user, action=audit.EMAIL_CHANGE_REQUESTED, details={"new_email": tok.email})
        s.commit()
    except StoreError as e:
        s.rollback()
        return error_from_exception(e)
    except Exception as e:
        return server_error("Failed to request email change", e)

    try:
        current_app.extensions["email_sender"].send_email_verification(tok.email, tok.token)
    except EmailError as e:
        return server_error("Failed to send verification email", e)
    return jsonify({"message": "Verification email sent"})


@bp.post("/email/verify")
@require_auth
def email_change_verify():
    s = db_session()
    token = str(json_body().get("token") or "").strip()
    if not token:
        return error_response("Token is required", 400)
    try:
        user, old_email = apply_email_change(s, token, user=current_user())
        if user.cognito_subject:
            current_app.extensions["identity_client"].update_email(username=old_email, new_email=user.email)
        audit.record_activity(
            s, user=user, action=audit.EMAIL_CHANGED, details={"old_email": old_email, "new_email": user.email}
        )
        s.commit()
    except StoreError as e:
        s.rollback()
        return error_from_exception(e)
    except IdentityError as e:
        s.rollback()
        current_app.logger.warning("Provider rejected email change user_id=%s: %s", current_user().id, e.message)
        return error_response(e.message, 400)
    except Exception as e:
        return server_error("Failed to verify email", e)
    return jsonify({"message": "Email verified successfully", "user": user.to_dict()})


@bp.post("/deactivate")
@require_auth
def deactivate_account():
    s = db_session()
    user = current_user()
    try:
        deactivate(s, user)
        audit.record_activity(s, user=user, action=audit.ACCOUNT_DEACTIVATED)
        s.commit()
    except Exception as e:
        return server_error("Failed to deactivate account", e)
    return jsonify({"message": "Account deactivated successfully"})
